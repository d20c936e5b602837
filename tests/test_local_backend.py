"""Tests for the sherpa-onnx local backend, with the engine replaced by fakes."""

import asyncio
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from conftest import write_wav
from src.voicescribe.core.asr.errors import (
    AudioDecodeError,
    AudioFileNotFoundError,
    ConfigurationError,
    EngineFailure,
    ModelNotFoundError,
)
from src.voicescribe.core.asr.local_backend import LocalEngineBackend, engine_thread_count


class FakeStream:
    def __init__(self, text):
        self.result = SimpleNamespace(text=text)
        self.waveforms = []

    def accept_waveform(self, sample_rate, samples):
        self.waveforms.append((sample_rate, len(samples)))


class FakeRecognizer:
    def __init__(self, texts=("hello",)):
        self.texts = list(texts)
        self.streams = []

    def create_stream(self):
        stream = FakeStream(self.texts.pop(0) if self.texts else "")
        self.streams.append(stream)
        return stream

    def decode_stream(self, stream):
        pass


@pytest.fixture
def recognizer():
    return FakeRecognizer()


@pytest.fixture
def fake_sherpa(recognizer):
    module = MagicMock()
    module.OfflineRecognizer.from_whisper.return_value = recognizer
    module.OfflineRecognizer.from_transducer.return_value = recognizer
    with patch.dict(sys.modules, {"sherpa_onnx": module}):
        yield module


@pytest.fixture
def whisper_dir(tmp_path):
    model_dir = tmp_path / "sherpa-onnx-whisper-tiny"
    model_dir.mkdir()
    for name in ("tiny-encoder.onnx", "tiny-decoder.onnx", "tiny-tokens.txt"):
        (model_dir / name).write_bytes(b"")
    return model_dir


@pytest.fixture
def transducer_dir(tmp_path):
    model_dir = tmp_path / "sherpa-onnx-nemo-parakeet"
    model_dir.mkdir()
    for name in ("encoder.int8.onnx", "decoder.int8.onnx", "joiner.int8.onnx", "tokens.txt"):
        (model_dir / name).write_bytes(b"")
    return model_dir


class TestThreadCount:
    @pytest.mark.parametrize(
        "cpus, expected",
        [(1, 1), (2, 1), (3, 1), (4, 2), (10, 8), (64, 8)],
    )
    def test_reserves_headroom(self, cpus, expected):
        assert engine_thread_count(cpus) == expected


class TestLoad:
    def test_empty_model_path(self, fake_sherpa):
        with pytest.raises(ModelNotFoundError):
            LocalEngineBackend.load("")

    def test_missing_model_directory(self, fake_sherpa, tmp_path):
        with pytest.raises(ModelNotFoundError, match="download the model"):
            LocalEngineBackend.load(str(tmp_path / "nope"))

    def test_directory_without_model_files(self, fake_sherpa, tmp_path):
        with pytest.raises(ConfigurationError):
            LocalEngineBackend.load(str(tmp_path))

    def test_loads_whisper(self, fake_sherpa, whisper_dir):
        backend = LocalEngineBackend.load(str(whisper_dir))

        assert backend.model_type == "whisper"
        assert backend.is_loaded
        kwargs = fake_sherpa.OfflineRecognizer.from_whisper.call_args.kwargs
        assert kwargs["encoder"].endswith("tiny-encoder.onnx")
        assert kwargs["language"] == ""
        assert kwargs["num_threads"] == backend.num_threads

    def test_loads_transducer(self, fake_sherpa, transducer_dir):
        backend = LocalEngineBackend.load(str(transducer_dir))

        assert backend.model_type == "transducer"
        kwargs = fake_sherpa.OfflineRecognizer.from_transducer.call_args.kwargs
        assert kwargs["joiner"].endswith("joiner.int8.onnx")
        assert kwargs["model_type"] == "nemo_transducer"

    def test_engine_construction_failure(self, fake_sherpa, whisper_dir):
        fake_sherpa.OfflineRecognizer.from_whisper.side_effect = RuntimeError("bad onnx")
        with pytest.raises(ConfigurationError, match="bad onnx"):
            LocalEngineBackend.load(str(whisper_dir))


class TestTranscribe:
    def test_transcribes_file(self, fake_sherpa, recognizer, whisper_dir, wav_file):
        backend = LocalEngineBackend.load(str(whisper_dir))

        assert asyncio.run(backend.transcribe(wav_file)) == "hello"
        assert recognizer.streams[0].waveforms == [(16000, 16000)]

    def test_resamples_to_engine_rate(self, fake_sherpa, recognizer, whisper_dir, tmp_path):
        audio = write_wav(tmp_path / "44k.wav", seconds=1.0, rate=44100)
        backend = LocalEngineBackend.load(str(whisper_dir))

        asyncio.run(backend.transcribe(audio))

        rate, length = recognizer.streams[0].waveforms[0]
        assert rate == 16000
        assert length == 16000

    def test_missing_file_never_reaches_engine(
        self, fake_sherpa, recognizer, whisper_dir, tmp_path
    ):
        backend = LocalEngineBackend.load(str(whisper_dir))

        with pytest.raises(AudioFileNotFoundError):
            asyncio.run(backend.transcribe(tmp_path / "missing.wav"))
        assert recognizer.streams == []

    @pytest.mark.parametrize("content", [b"definitely not audio", b"RIFF\x10"])
    def test_corrupt_container(self, fake_sherpa, recognizer, whisper_dir, tmp_path, content):
        broken = tmp_path / "broken.wav"
        broken.write_bytes(content)
        backend = LocalEngineBackend.load(str(whisper_dir))

        with pytest.raises(AudioDecodeError):
            asyncio.run(backend.transcribe(broken))
        assert recognizer.streams == []

    def test_long_audio_is_segmented_in_order(self, fake_sherpa, whisper_dir, tmp_path):
        recognizer = FakeRecognizer(["one", "two", "three"])
        fake_sherpa.OfflineRecognizer.from_whisper.return_value = recognizer
        audio = write_wav(tmp_path / "long.wav", seconds=65.0)
        backend = LocalEngineBackend.load(str(whisper_dir))

        assert asyncio.run(backend.transcribe(audio)) == "one two three"
        assert [s.waveforms[0][1] for s in recognizer.streams] == [
            30 * 16000,
            30 * 16000,
            5 * 16000,
        ]

    def test_non_speech_output_dropped(self, fake_sherpa, whisper_dir, tmp_path):
        recognizer = FakeRecognizer(["hello", " ... ", "world"])
        fake_sherpa.OfflineRecognizer.from_whisper.return_value = recognizer
        audio = write_wav(tmp_path / "long.wav", seconds=75.0)
        backend = LocalEngineBackend.load(str(whisper_dir))

        assert asyncio.run(backend.transcribe(audio)) == "hello world"

    def test_silence_is_not_decoded(self, fake_sherpa, recognizer, whisper_dir, tmp_path):
        audio = write_wav(tmp_path / "silence.wav", amplitude=0.0)
        backend = LocalEngineBackend.load(str(whisper_dir))

        assert asyncio.run(backend.transcribe(audio)) == ""
        assert recognizer.streams == []

    def test_language_rebuilds_whisper_recognizer(self, fake_sherpa, whisper_dir, wav_file):
        backend = LocalEngineBackend.load(str(whisper_dir))
        backend.configure(language="de")

        asyncio.run(backend.transcribe(wav_file))

        calls = fake_sherpa.OfflineRecognizer.from_whisper.call_args_list
        assert [c.kwargs["language"] for c in calls] == ["", "de"]

    def test_auto_language_keeps_recognizer(self, fake_sherpa, whisper_dir, wav_file):
        backend = LocalEngineBackend.load(str(whisper_dir))
        backend.configure(language="Auto", prompt="Glossary: sherpa")

        asyncio.run(backend.transcribe(wav_file))

        assert fake_sherpa.OfflineRecognizer.from_whisper.call_count == 1

    def test_engine_exception_becomes_engine_failure(
        self, fake_sherpa, recognizer, whisper_dir, wav_file
    ):
        recognizer.decode_stream = MagicMock(side_effect=RuntimeError("onnx crashed"))
        backend = LocalEngineBackend.load(str(whisper_dir))

        with pytest.raises(EngineFailure, match="onnx crashed"):
            asyncio.run(backend.transcribe(wav_file))


class TestRelease:
    def test_double_release_is_noop(self, fake_sherpa, whisper_dir):
        backend = LocalEngineBackend.load(str(whisper_dir))

        backend.release()
        backend.release()

        assert backend.is_released
        assert not backend.is_loaded

    def test_transcribe_after_release(self, fake_sherpa, whisper_dir, wav_file):
        backend = LocalEngineBackend.load(str(whisper_dir))
        backend.release()

        with pytest.raises(EngineFailure):
            asyncio.run(backend.transcribe(wav_file))
