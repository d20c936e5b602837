"""
Pytest configuration.

Points the platform directories at a throwaway location before the package is
imported so logs, settings and history never touch the real user profile.
"""

import os
import tempfile
import wave
from pathlib import Path

import numpy as np
import pytest

_SANDBOX = tempfile.mkdtemp(prefix="voicescribe-tests-")
for _var in ("XDG_CONFIG_HOME", "XDG_DATA_HOME", "XDG_STATE_HOME", "XDG_CACHE_HOME"):
    os.environ[_var] = os.path.join(_SANDBOX, _var.lower())


@pytest.fixture
def config_dir(tmp_path):
    """Redirect settings and history files into a per-test directory."""
    from unittest.mock import patch

    directory = tmp_path / "config"
    directory.mkdir()
    with patch(
        "src.voicescribe.core.settings.settings.get_config_dir",
        return_value=directory,
    ):
        yield directory


def write_wav(path: Path, seconds: float = 1.0, rate: int = 16000, amplitude=0.3):
    """Write a mono 16-bit sine tone."""
    t = np.arange(int(seconds * rate)) / rate
    samples = (amplitude * np.sin(2 * np.pi * 440 * t) * 32767).astype(np.int16)
    with wave.open(str(path), "wb") as f:
        f.setnchannels(1)
        f.setsampwidth(2)
        f.setframerate(rate)
        f.writeframes(samples.tobytes())
    return path


@pytest.fixture
def wav_file(tmp_path):
    return write_wav(tmp_path / "speech.wav")
