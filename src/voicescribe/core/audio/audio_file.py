"""
Audio file helpers for the transcription pipeline.

Decodes WAV containers into normalized mono float32 samples at the engine
sample rate, splits long recordings into engine-sized segments and keeps a
durable copy of each recording before it is transcribed.
"""

import shutil
import struct
import uuid
import warnings
from dataclasses import dataclass
from math import gcd
from pathlib import Path
from typing import List, Union

import numpy as np
from scipy.io import wavfile
from scipy.signal import resample_poly

from ...utils.logger import get_logger
from ..asr.errors import AudioDecodeError, AudioFileNotFoundError
from ..settings.config import LOCAL_SAMPLE_RATE

logger = get_logger(__name__)

MAX_SEGMENT_SECONDS = 30.0
MIN_SEGMENT_SECONDS = 1.0
SILENCE_RMS_THRESHOLD = 0.003


@dataclass
class DecodedAudio:
    samples: np.ndarray
    sample_rate: int

    @property
    def duration_seconds(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / self.sample_rate


def _to_float32(data: np.ndarray) -> np.ndarray:
    if data.dtype == np.int16:
        audio = data.astype(np.float32) / 32768.0
    elif data.dtype == np.int32:
        audio = data.astype(np.float32) / 2147483648.0
    elif data.dtype == np.uint8:
        audio = (data.astype(np.float32) - 128.0) / 128.0
    else:
        audio = data.astype(np.float32)

    if audio.ndim > 1:
        audio = audio.mean(axis=1) if audio.shape[1] > 1 else audio.flatten()

    return np.clip(audio, -1.0, 1.0)


def _read_wav(path: Path):
    if not path.exists():
        raise AudioFileNotFoundError(f"Audio file not found: {path}")

    try:
        with warnings.catch_warnings():
            # Truncated files only warn in scipy; treat them as decode failures.
            warnings.simplefilter("error", wavfile.WavFileWarning)
            return wavfile.read(str(path))
    except (ValueError, EOFError, struct.error, wavfile.WavFileWarning) as e:
        raise AudioDecodeError(f"Could not decode audio file {path.name}: {e}") from e


def decode_audio_file(
    path: Union[str, Path], target_rate: int = LOCAL_SAMPLE_RATE
) -> DecodedAudio:
    path = Path(path)
    sample_rate, data = _read_wav(path)

    if data.size == 0:
        raise AudioDecodeError(f"Audio file {path.name} contains no samples")

    samples = _to_float32(data)

    if sample_rate != target_rate:
        divisor = gcd(int(sample_rate), int(target_rate))
        samples = resample_poly(
            samples, target_rate // divisor, int(sample_rate) // divisor
        ).astype(np.float32)
        logger.debug(f"Resampled {path.name} from {sample_rate}Hz to {target_rate}Hz")

    return DecodedAudio(samples=samples, sample_rate=target_rate)


def get_audio_duration(path: Union[str, Path]) -> float:
    """Duration in seconds, read from the container without resampling."""
    sample_rate, data = _read_wav(Path(path))
    if sample_rate <= 0:
        return 0.0
    return len(data) / float(sample_rate)


def split_segments(
    samples: np.ndarray,
    sample_rate: int,
    max_seconds: float = MAX_SEGMENT_SECONDS,
    min_seconds: float = MIN_SEGMENT_SECONDS,
) -> List[np.ndarray]:
    max_samples = int(max_seconds * sample_rate)
    min_samples = int(min_seconds * sample_rate)

    if len(samples) <= max_samples:
        return [samples]

    segments = []
    start = 0
    while start < len(samples):
        end = min(start + max_samples, len(samples))
        # Fold a short tail into the previous segment.
        if segments and end - start < min_samples:
            segments[-1] = np.concatenate([segments[-1], samples[start:end]])
            break
        segments.append(samples[start:end])
        start = end

    return segments


def is_silent(samples: np.ndarray, threshold: float = SILENCE_RMS_THRESHOLD) -> bool:
    if samples.size == 0:
        return True
    rms = float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))
    return rms < threshold


def make_durable_copy(source: Union[str, Path], recordings_dir: Path) -> Path:
    source = Path(source)
    if not source.exists():
        raise AudioFileNotFoundError(f"Audio file not found: {source}")

    recordings_dir.mkdir(parents=True, exist_ok=True)
    destination = recordings_dir / f"{uuid.uuid4()}{source.suffix or '.wav'}"
    shutil.copy2(source, destination)
    logger.debug(f"Saved recording permanently: {destination}")
    return destination
