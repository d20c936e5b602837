"""
On-device transcription backend built on sherpa-onnx.

The recognizer is not reentrant; all decoding happens on a worker thread while
the backend's instance lock is held.
"""

import os
import re
from pathlib import Path
from typing import List, Optional

import numpy as np

from ...utils.logger import get_logger
from ..audio.audio_file import decode_audio_file, is_silent, split_segments
from ..settings.config import MAX_ENGINE_THREADS, RESERVED_CPU_CORES
from .backends import BackendType, TranscriptionBackend, effective_language
from .errors import (
    AudioFileNotFoundError,
    ConfigurationError,
    EngineFailure,
    ModelNotFoundError,
)
from .file_utils import (
    TRANSDUCER_DECODERS,
    TRANSDUCER_ENCODERS,
    TRANSDUCER_JOINERS,
    WHISPER_DECODER_SUFFIXES,
    WHISPER_ENCODER_SUFFIXES,
    WHISPER_TOKENS_SUFFIXES,
    detect_model_type,
    find_file_by_suffix,
    find_file_exact,
    resolve_model_path,
)

logger = get_logger(__name__)

# Segments consisting only of punctuation/whitespace are engine noise on non-speech input.
_NON_SPEECH_RE = re.compile(r"^[\W_]*$")


def engine_thread_count(cpu_count: Optional[int] = None) -> int:
    """Worker threads for the engine, leaving headroom for the host system."""
    if cpu_count is None:
        cpu_count = os.cpu_count() or 1
    return max(1, min(MAX_ENGINE_THREADS, cpu_count - RESERVED_CPU_CORES))


def _import_sherpa():
    try:
        import sherpa_onnx
    except ImportError as e:
        raise ConfigurationError(
            "sherpa-onnx is not installed; local transcription is unavailable"
        ) from e
    return sherpa_onnx


class LocalEngineBackend(TranscriptionBackend):
    name = "local"
    backend_type = BackendType.LOCAL

    def __init__(
        self, model_path: str, model_type: str, num_threads: Optional[int] = None
    ):
        super().__init__()
        self.model_path = model_path
        self.model_type = model_type
        self.num_threads = num_threads or engine_thread_count()
        self._recognizer = None
        self._recognizer_language: Optional[str] = None

    @classmethod
    def load(cls, model_path: str) -> "LocalEngineBackend":
        """Validate the model directory and load the recognizer. Blocking."""
        if not model_path or not model_path.strip():
            raise ModelNotFoundError("No local model selected")

        full_model_path = resolve_model_path(model_path)
        if not os.path.isdir(full_model_path):
            raise ModelNotFoundError(
                f"Model directory not found: {full_model_path}. "
                f"Please download the model first."
            )

        model_type = detect_model_type(full_model_path)
        if model_type is None:
            raise ModelNotFoundError(
                f"No usable whisper or transducer model files in {full_model_path}"
            )

        logger.info(f"Loading model '{os.path.basename(full_model_path)}' as type '{model_type}'")
        backend = cls(full_model_path, model_type)
        backend._ensure_recognizer(None)
        return backend

    @property
    def is_loaded(self) -> bool:
        return self._recognizer is not None

    def _ensure_recognizer(self, language: Optional[str]):
        if self._recognizer is not None:
            # Whisper binds the language at construction; transducers are language-agnostic.
            if self.model_type != "whisper" or self._recognizer_language == language:
                return self._recognizer

        sherpa_onnx = _import_sherpa()
        try:
            if self.model_type == "whisper":
                recognizer = self._create_whisper_recognizer(sherpa_onnx, language)
            else:
                recognizer = self._create_transducer_recognizer(sherpa_onnx)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Failed to load model from '{self.model_path}': {e}"
            ) from e

        self._recognizer = recognizer
        self._recognizer_language = language
        return recognizer

    def _create_whisper_recognizer(self, sherpa_onnx, language: Optional[str]):
        encoder = find_file_by_suffix(self.model_path, *WHISPER_ENCODER_SUFFIXES)
        decoder = find_file_by_suffix(self.model_path, *WHISPER_DECODER_SUFFIXES)
        tokens = find_file_by_suffix(self.model_path, *WHISPER_TOKENS_SUFFIXES)
        if not encoder or not decoder or not tokens:
            raise ModelNotFoundError(f"Missing Whisper model files in {self.model_path}")

        logger.info(
            f"Creating Whisper recognizer: language={language or 'auto'}, "
            f"threads={self.num_threads}"
        )
        return sherpa_onnx.OfflineRecognizer.from_whisper(
            encoder=encoder,
            decoder=decoder,
            tokens=tokens,
            # An empty language makes multilingual models detect it themselves.
            language=language or "",
            task="transcribe",
            num_threads=self.num_threads,
            provider="cpu",
            debug=False,
            decoding_method="greedy_search",
        )

    def _create_transducer_recognizer(self, sherpa_onnx):
        encoder = find_file_exact(self.model_path, TRANSDUCER_ENCODERS)
        decoder = find_file_exact(self.model_path, TRANSDUCER_DECODERS)
        joiner = find_file_exact(self.model_path, TRANSDUCER_JOINERS)
        tokens = find_file_exact(self.model_path, ["tokens.txt"])
        if not all([encoder, decoder, joiner, tokens]):
            raise ModelNotFoundError(f"Missing Transducer model files in {self.model_path}")

        logger.info(f"Creating Transducer recognizer: threads={self.num_threads}")
        return sherpa_onnx.OfflineRecognizer.from_transducer(
            encoder=encoder,
            decoder=decoder,
            joiner=joiner,
            tokens=tokens,
            num_threads=self.num_threads,
            provider="cpu",
            debug=False,
            decoding_method="greedy_search",
            model_type="nemo_transducer",
        )

    async def _transcribe(self, audio_path: Path) -> str:
        if not audio_path.exists():
            logger.error(f"Audio file not found at path: {audio_path}")
            raise AudioFileNotFoundError(f"Audio file not found: {audio_path}")

        return await self._run_in_worker(self._transcribe_blocking, audio_path)

    def _transcribe_blocking(self, audio_path: Path) -> str:
        audio = decode_audio_file(audio_path)
        language = effective_language(self.language)

        if language:
            logger.info(f"Using language: {language}")
        else:
            logger.info("Using auto language detection")
        if self.prompt:
            # TODO: feed the prompt as hotwords once transducers are built with modified_beam_search
            logger.debug("sherpa-onnx offline recognizers take no guidance prompt; ignoring it")

        recognizer = self._ensure_recognizer(language)
        segments = split_segments(audio.samples, audio.sample_rate)

        try:
            texts = self._decode_segments(recognizer, segments, audio.sample_rate)
        except Exception as e:
            logger.error(f"Failed to run the local model: {e}")
            raise EngineFailure(f"Local engine failed: {e}") from e

        logger.info(
            f"Local transcription finished: audio_len={audio.duration_seconds:.2f}s, "
            f"segments={len(texts)}"
        )
        return " ".join(texts)

    def _decode_segments(
        self, recognizer, segments: List[np.ndarray], sample_rate: int
    ) -> List[str]:
        texts = []
        for index, segment in enumerate(segments):
            if is_silent(segment):
                logger.debug(f"Skipping silent segment {index + 1}/{len(segments)}")
                continue

            stream = recognizer.create_stream()
            stream.accept_waveform(sample_rate, segment)
            recognizer.decode_stream(stream)

            text = (stream.result.text or "").strip()
            if _NON_SPEECH_RE.match(text):
                continue
            texts.append(text)
        return texts

    def _release_resources(self) -> None:
        if self._recognizer is not None:
            del self._recognizer
            self._recognizer = None
        self._recognizer_language = None
