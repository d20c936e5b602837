"""
Transcription session: one job through the full pipeline.

Loads a backend, transcribes a durable copy of the audio, applies
post-processing and persists the result. Every run ends in exactly one of
COMPLETED, ERROR or CANCELLED, and the backend is released on every path.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Union

from ...utils.logger import get_logger
from ..asr.backends import BackendType, TranscriptionBackend
from ..asr.cancellation import CancellationToken
from ..asr.errors import (
    AudioDecodeError,
    AudioFileNotFoundError,
    BackendError,
    ConfigurationError,
    EnhancementError,
    ErrorKind,
    OperationCancelled,
)
from ..asr.factory import BackendFactory, BackendPool
from ..asr.file_utils import get_recordings_dir
from ..audio.audio_file import get_audio_duration, make_durable_copy
from ..settings.settings import SessionConfig, TranscriptionResult, add_history_record
from ..transcript_processor.chain import PostProcessingChain

logger = get_logger(__name__)


class ProcessingPhase(Enum):
    IDLE = "idle"
    LOADING = "loading"
    PROCESSING_AUDIO = "processing_audio"
    TRANSCRIBING = "transcribing"
    ENHANCING = "enhancing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def message(self) -> str:
        return _PHASE_MESSAGES[self]


_PHASE_MESSAGES = {
    ProcessingPhase.IDLE: "",
    ProcessingPhase.LOADING: "Loading transcription service...",
    ProcessingPhase.PROCESSING_AUDIO: "Processing audio file for transcription...",
    ProcessingPhase.TRANSCRIBING: "Transcribing audio...",
    ProcessingPhase.ENHANCING: "Enhancing transcription with AI...",
    ProcessingPhase.COMPLETED: "Transcription completed!",
    ProcessingPhase.ERROR: "Transcription failed",
    ProcessingPhase.CANCELLED: "Transcription was cancelled",
}


class SessionStatus(Enum):
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class TranscriptionJob:
    audio_path: Path
    backend_type: BackendType = BackendType.LOCAL
    language: Optional[str] = None
    prompt: Optional[str] = None
    cancel_token: CancellationToken = field(default_factory=CancellationToken)

    def __post_init__(self):
        self.audio_path = Path(self.audio_path)
        self.backend_type = BackendType.parse(self.backend_type)

    @classmethod
    def from_config(
        cls, audio_path: Union[str, Path], config: SessionConfig
    ) -> "TranscriptionJob":
        return cls(
            audio_path=Path(audio_path),
            backend_type=config.backend_type,
            language=config.language,
            prompt=config.prompt,
        )

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_token.is_cancelled

    def cancel(self) -> None:
        self.cancel_token.cancel()


@dataclass
class SessionOutcome:
    status: SessionStatus
    result: Optional[TranscriptionResult] = None
    error: Optional[BaseException] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def is_completed(self) -> bool:
        return self.status is SessionStatus.COMPLETED

    @property
    def is_error(self) -> bool:
        return self.status is SessionStatus.ERROR

    @property
    def is_cancelled(self) -> bool:
        return self.status is SessionStatus.CANCELLED


class TranscriptionSession:
    """
    Runs one TranscriptionJob.

    Phases: IDLE -> LOADING -> PROCESSING_AUDIO -> TRANSCRIBING
    -> [ENHANCING] -> COMPLETED, with ERROR and CANCELLED reachable from any
    phase. Cancellation is cooperative: it is checked between stages and
    around the backend call, never in the middle of it.

    Example:
        session = TranscriptionSession(job, settings.to_session_config())
        outcome = await session.run()
    """

    def __init__(
        self,
        job: TranscriptionJob,
        config: Optional[SessionConfig] = None,
        factory: Optional[BackendFactory] = None,
        pool: Optional[BackendPool] = None,
        chain: Optional[PostProcessingChain] = None,
        persist: Optional[Callable[[TranscriptionResult], None]] = add_history_record,
        recordings_dir: Optional[Path] = None,
        on_phase_change: Optional[Callable[[ProcessingPhase, str], None]] = None,
    ):
        self.job = job
        if config is None:
            config = SessionConfig(backend_type=job.backend_type)
        self.config = config
        self.factory = factory or BackendFactory()
        self.pool = pool
        self.chain = chain or PostProcessingChain.from_session_config(self.config)
        self.persist = persist
        if recordings_dir is None and self.config.keep_recordings:
            recordings_dir = get_recordings_dir()
        self.recordings_dir = recordings_dir
        self.on_phase_change = on_phase_change

        self._phase = ProcessingPhase.IDLE
        self._started = False
        self.message_log: List[str] = []
        self.outcome: Optional[SessionOutcome] = None

    @property
    def phase(self) -> ProcessingPhase:
        return self._phase

    def cancel(self) -> None:
        logger.info("Cancellation requested")
        self.job.cancel()

    def _set_phase(self, phase: ProcessingPhase, message: str = "") -> None:
        self._phase = phase
        message = message or phase.message
        if message:
            self.message_log.append(message)
        logger.debug(f"Session phase -> {phase.name}: {message}")
        if self.on_phase_change:
            self.on_phase_change(phase, message)

    def _checkpoint(self) -> None:
        self.job.cancel_token.raise_if_cancelled()

    async def run(self) -> SessionOutcome:
        if self._started:
            raise RuntimeError("A TranscriptionSession can only be run once")
        self._started = True

        try:
            self._checkpoint()
            self._set_phase(ProcessingPhase.LOADING)
            result = await self._run_pipeline()
        except OperationCancelled:
            return self._finish_cancelled()
        except ConfigurationError as e:
            logger.error(f"Failed to create transcription service: {e}")
            return self._finish_error(e, ErrorKind.CONFIGURATION_FAILED)
        except BackendError as e:
            logger.error(f"Transcription failed: {e}")
            return self._finish_error(e, e.kind)
        except asyncio.CancelledError:
            self._finish_cancelled()
            raise
        except Exception as e:
            logger.exception(f"Unexpected transcription error: {e}")
            return self._finish_error(e, ErrorKind.UNKNOWN)

        self._set_phase(ProcessingPhase.COMPLETED)
        self.outcome = SessionOutcome(status=SessionStatus.COMPLETED, result=result)
        return self.outcome

    def _finish_cancelled(self) -> SessionOutcome:
        self._set_phase(ProcessingPhase.CANCELLED)
        self.outcome = SessionOutcome(status=SessionStatus.CANCELLED)
        return self.outcome

    def _finish_error(self, error: BaseException, kind: ErrorKind) -> SessionOutcome:
        self._set_phase(ProcessingPhase.ERROR, f"Error: {error}")
        self.outcome = SessionOutcome(
            status=SessionStatus.ERROR, error=error, error_kind=kind
        )
        return self.outcome

    @asynccontextmanager
    async def _acquire_backend(self) -> AsyncIterator[TranscriptionBackend]:
        if self.pool is not None:
            async with self.pool.lease(self.job.backend_type, self.config) as backend:
                yield backend
            return

        backend = await self.factory.create(self.job.backend_type, self.config)
        try:
            yield backend
        finally:
            backend.release()

    async def _run_pipeline(self) -> TranscriptionResult:
        async with self._acquire_backend() as backend:
            self.message_log.append("Transcription service loaded successfully.")
            self._checkpoint()

            self._set_phase(ProcessingPhase.PROCESSING_AUDIO)
            audio_path, duration = await self._prepare_audio()
            self._checkpoint()

            self._set_phase(ProcessingPhase.TRANSCRIBING)
            backend.configure(language=self.job.language, prompt=self.job.prompt)
            backend.set_cancel_token(self.job.cancel_token)
            if self.job.prompt:
                self.message_log.append(f"Setting prompt: {self.job.prompt}")

            self._checkpoint()
            raw_text = await backend.transcribe(audio_path)
            self._checkpoint()

        text = raw_text.strip()
        logger.info(f"Transcription completed successfully, length: {len(text)} characters")

        replaced = self.chain.apply_replacements(text)
        if replaced != text:
            logger.info("Word replacements applied")
        text = replaced

        enhanced_text = None
        enhancement_name = None
        if self.config.enhancement_enabled and self.chain.should_enhance():
            self._checkpoint()
            self._set_phase(ProcessingPhase.ENHANCING)
            try:
                response = await self.chain.enhance(text)
                enhanced_text = response.content
                enhancement_name = self.chain.enhancement.title
                self.message_log.append("Enhancement completed.")
            except EnhancementError as e:
                logger.error(f"Enhancement failed: {e}")
                self.message_log.append(
                    f"Enhancement failed: {e}. Using original transcription."
                )
            self._checkpoint()

        result = TranscriptionResult(
            text=text,
            duration=duration,
            enhanced_text=enhanced_text,
            enhancement_name=enhancement_name,
            audio_file=str(audio_path),
        )
        self._persist(result)
        self.message_log.append(f"Done: {result.final_text}")
        return result

    async def _prepare_audio(self) -> tuple[Path, float]:
        source = self.job.audio_path
        if not source.exists():
            logger.error(f"Audio file not found at path: {source}")
            raise AudioFileNotFoundError(f"Audio file not found: {source}")

        try:
            duration = await asyncio.to_thread(get_audio_duration, source)
        except AudioDecodeError as e:
            # Cloud APIs accept containers we cannot read; the backend decides.
            logger.warning(f"Could not determine audio duration: {e}")
            duration = 0.0

        if self.recordings_dir is None:
            return source, duration

        durable = await asyncio.to_thread(make_durable_copy, source, self.recordings_dir)
        return durable, duration

    def _persist(self, result: TranscriptionResult) -> None:
        if self.persist is None:
            return
        try:
            self.persist(result)
        except Exception as e:
            logger.error(f"Failed to save transcription: {e}")
            self.message_log.append(f"Failed to save transcription: {e}")


async def retranscribe(
    audio_path: Union[str, Path],
    config: SessionConfig,
    chain: Optional[PostProcessingChain] = None,
    factory: Optional[BackendFactory] = None,
    persist: Optional[Callable[[TranscriptionResult], None]] = add_history_record,
    recordings_dir: Optional[Path] = None,
) -> SessionOutcome:
    """Run a fresh session over an existing recording."""
    session = TranscriptionSession(
        TranscriptionJob.from_config(audio_path, config),
        config=config,
        factory=factory,
        chain=chain,
        persist=persist,
        recordings_dir=recordings_dir,
    )
    return await session.run()
