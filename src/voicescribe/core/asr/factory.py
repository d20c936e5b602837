"""
Backend construction and pooling.

BackendFactory turns a backend type plus configuration into a ready backend.
BackendPool keeps backends alive across jobs and hands each one to a single
session at a time.
"""

import asyncio
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, AsyncIterator, Dict, Optional, Tuple, Union

from ...utils.logger import get_logger
from ..settings.config import DEFAULT_CLOUD_ENDPOINT, DEFAULT_CLOUD_MODEL
from .backends import BackendType, TranscriptionBackend
from .cloud_backend import CloudAPIBackend
from .errors import ConfigurationError
from .local_backend import LocalEngineBackend
from .retry import RetryPolicy

if TYPE_CHECKING:
    from ..settings.settings import SessionConfig

logger = get_logger(__name__)


@dataclass(frozen=True)
class CloudConfig:
    api_endpoint: str = DEFAULT_CLOUD_ENDPOINT
    api_key: str = ""
    model_name: str = DEFAULT_CLOUD_MODEL


class BackendFactory:
    def __init__(
        self,
        default_cloud_config: Optional[CloudConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._default_cloud_config = default_cloud_config or CloudConfig()
        self._config_lock = threading.Lock()
        self.retry_policy = retry_policy

    @property
    def default_cloud_config(self) -> CloudConfig:
        with self._config_lock:
            return self._default_cloud_config

    def update_default_cloud_config(
        self,
        api_endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
    ) -> CloudConfig:
        changes = {
            key: value
            for key, value in (
                ("api_endpoint", api_endpoint),
                ("api_key", api_key),
                ("model_name", model_name),
            )
            if value is not None
        }
        with self._config_lock:
            self._default_cloud_config = replace(self._default_cloud_config, **changes)
            updated = self._default_cloud_config
        logger.debug("Updated default cloud configuration")
        return updated

    async def create(
        self,
        backend_type: Union[BackendType, str],
        config: Optional["SessionConfig"] = None,
    ) -> TranscriptionBackend:
        try:
            backend_type = BackendType.parse(backend_type)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        logger.info(f"Creating {backend_type.value} transcription backend")

        if backend_type is BackendType.LOCAL:
            model_path = config.model_path if config is not None else None
            return await self.create_local(model_path or "")

        if config is None:
            return await self.create_cloud()
        return await self.create_cloud(
            api_key=config.cloud_api_key,
            endpoint=config.cloud_api_endpoint,
            model_name=config.cloud_model_name,
        )

    async def create_local(self, model_path: str) -> LocalEngineBackend:
        logger.info(f"Creating local transcription backend with model: {model_path}")
        # Model loading reads from disk; keep it off the event loop.
        return await asyncio.to_thread(LocalEngineBackend.load, model_path)

    async def create_cloud(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        model_name: Optional[str] = None,
    ) -> CloudAPIBackend:
        defaults = self.default_cloud_config
        configuration = CloudConfig(
            api_endpoint=endpoint or defaults.api_endpoint,
            api_key=api_key if api_key is not None else defaults.api_key,
            model_name=model_name or defaults.model_name,
        )
        logger.info(
            f"Creating cloud transcription backend with endpoint: {configuration.api_endpoint}"
        )
        return CloudAPIBackend(
            api_key=configuration.api_key,
            api_endpoint=configuration.api_endpoint,
            model_name=configuration.model_name,
            retry_policy=self.retry_policy,
        )


PoolKey = Tuple[str, ...]


def _pool_key(backend_type: BackendType, config: Optional["SessionConfig"]) -> PoolKey:
    if config is None:
        return (backend_type.value,)
    if backend_type is BackendType.LOCAL:
        return (backend_type.value, config.model_path or "")
    return (
        backend_type.value,
        config.cloud_api_endpoint or "",
        config.cloud_api_key or "",
        config.cloud_model_name or "",
    )


class _PoolEntry:
    def __init__(self, backend: TranscriptionBackend):
        self.backend = backend
        self.lock = asyncio.Lock()


class BackendPool:
    """
    Reuses backends across jobs of the same configuration.

    A lease holds the entry's lock for its whole duration, so the
    configure-then-transcribe sequence of one session is never interleaved with
    another session's calls on the same backend.
    """

    def __init__(self, factory: Optional[BackendFactory] = None):
        self.factory = factory or BackendFactory()
        self._entries: Dict[PoolKey, _PoolEntry] = {}
        self._create_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def _get_entry(
        self, backend_type: BackendType, config: Optional["SessionConfig"]
    ) -> _PoolEntry:
        key = _pool_key(backend_type, config)
        async with self._create_lock:
            entry = self._entries.get(key)
            if entry is None or entry.backend.is_released:
                backend = await self.factory.create(backend_type, config)
                entry = _PoolEntry(backend)
                self._entries[key] = entry
            return entry

    @asynccontextmanager
    async def lease(
        self,
        backend_type: Union[BackendType, str],
        config: Optional["SessionConfig"] = None,
    ) -> AsyncIterator[TranscriptionBackend]:
        try:
            backend_type = BackendType.parse(backend_type)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        while True:
            entry = await self._get_entry(backend_type, config)
            async with entry.lock:
                if not self._is_current(entry):
                    # Discarded by the lease we were queued behind.
                    logger.debug("Pooled backend was discarded while waiting, retrying")
                    continue
                try:
                    yield entry.backend
                except BaseException:
                    # A failed job may leave the engine in a bad state; drop it.
                    self._discard(entry)
                    raise
                return

    def _is_current(self, entry: _PoolEntry) -> bool:
        if entry.backend.is_released:
            return False
        return any(candidate is entry for candidate in self._entries.values())

    def _discard(self, entry: _PoolEntry) -> None:
        for key, candidate in list(self._entries.items()):
            if candidate is entry:
                del self._entries[key]
        entry.backend.release()

    def close(self) -> None:
        for entry in self._entries.values():
            entry.backend.release()
        self._entries.clear()
        logger.debug("Backend pool closed")
