import asyncio
import threading
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, Union

from ...utils.logger import get_logger
from .cancellation import CancellationToken
from .errors import EngineFailure

logger = get_logger(__name__)

T = TypeVar("T")

AUTO_LANGUAGE = "auto"


class BackendType(Enum):
    LOCAL = "local"
    CLOUD = "cloud"

    @classmethod
    def parse(cls, value: Union[str, "BackendType"]) -> "BackendType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown backend type {value!r}. Expected 'local' or 'cloud'."
            ) from None


def effective_language(language: Optional[str]) -> Optional[str]:
    """Return the language code to send to an engine, or None for auto-detect."""
    if language is None:
        return None
    language = language.strip()
    if not language or language.lower() == AUTO_LANGUAGE:
        return None
    return language


class TranscriptionBackend(ABC):
    """
    Capability contract shared by the local engine and the cloud API.

    A backend owns exactly one engine resource. Calls to ``transcribe`` are
    serialized by an instance lock, so the underlying engine never sees two
    concurrent callers.
    """

    name: str = "base"
    backend_type: BackendType

    def __init__(self):
        self._language: Optional[str] = None
        self._prompt: Optional[str] = None
        self._lock = asyncio.Lock()
        self._released = False
        self._state_lock = threading.Lock()
        self._workers = 0
        self._release_deferred = False
        self.cancel_token: Optional[CancellationToken] = None

    @property
    def language(self) -> Optional[str]:
        return self._language

    @property
    def prompt(self) -> Optional[str]:
        return self._prompt

    @property
    def is_released(self) -> bool:
        return self._released

    def configure(
        self, language: Optional[str] = None, prompt: Optional[str] = None
    ) -> None:
        self._language = language
        self._prompt = prompt or None
        logger.debug(
            f"{self.name}: language={language or AUTO_LANGUAGE}, "
            f"prompt={'set' if self._prompt else 'none'}"
        )

    def set_cancel_token(self, token: Optional[CancellationToken]) -> None:
        """Token consulted during long waits inside ``transcribe`` (retry backoff)."""
        self.cancel_token = token

    async def transcribe(self, audio_path: Union[str, Path]) -> str:
        async with self._lock:
            if self._released:
                raise EngineFailure(f"{self.name} backend has been released")
            return await self._transcribe(Path(audio_path))

    async def _run_in_worker(self, func: Callable[..., T], *args: Any) -> T:
        """
        Run blocking engine work in a worker thread.

        Cancelling the awaiting task does not stop the thread, so a release
        requested while a worker is still running is deferred until it exits.
        """
        return await asyncio.to_thread(self._tracked_call, func, *args)

    def _tracked_call(self, func: Callable[..., T], *args: Any) -> T:
        with self._state_lock:
            if self._released:
                raise EngineFailure(f"{self.name} backend has been released")
            self._workers += 1
        try:
            return func(*args)
        finally:
            with self._state_lock:
                self._workers -= 1
                free_now = self._release_deferred and self._workers == 0
                if free_now:
                    self._release_deferred = False
            if free_now:
                self._free_resources()

    def release(self) -> None:
        with self._state_lock:
            if self._released:
                return
            self._released = True
            if self._workers:
                self._release_deferred = True
                logger.debug(f"{self.name}: release deferred until the worker exits")
                return
        self._free_resources()

    def _free_resources(self) -> None:
        self._release_resources()
        logger.debug(f"{self.name}: resources released")

    @abstractmethod
    async def _transcribe(self, audio_path: Path) -> str:
        """Run one transcription. Called with the instance lock held."""

    @abstractmethod
    def _release_resources(self) -> None:
        pass
