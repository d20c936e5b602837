import os
from pathlib import Path
from typing import Optional

import platformdirs

APP_NAME = "voicescribe"

WHISPER_ENCODER_SUFFIXES = ("-encoder.onnx", "-encoder.int8.onnx")
WHISPER_DECODER_SUFFIXES = ("-decoder.onnx", "-decoder.int8.onnx")
WHISPER_TOKENS_SUFFIXES = ("-tokens.txt", "tokens.txt")

TRANSDUCER_ENCODERS = ["encoder.onnx", "encoder.int8.onnx", "encoder.fp16.onnx"]
TRANSDUCER_DECODERS = ["decoder.onnx", "decoder.int8.onnx", "decoder.fp16.onnx"]
TRANSDUCER_JOINERS = ["joiner.onnx", "joiner.int8.onnx", "joiner.fp16.onnx"]


def get_models_dir() -> str:
    return os.path.join(platformdirs.user_data_dir(APP_NAME, appauthor=False), "models")


def get_recordings_dir() -> Path:
    return platformdirs.user_data_path(APP_NAME, appauthor=False) / "recordings"


def resolve_model_path(model_path: str) -> str:
    """Relative model names are looked up in the models directory."""
    if os.path.isabs(model_path):
        return model_path
    return os.path.join(get_models_dir(), model_path)


def find_file_by_suffix(directory: str, *suffixes: str) -> Optional[str]:
    try:
        for filename in sorted(os.listdir(directory)):
            if filename.endswith(suffixes):
                return os.path.join(directory, filename)
    except OSError:
        pass
    return None


def find_file_exact(directory: str, candidates: list[str]) -> Optional[str]:
    for name in candidates:
        path = os.path.join(directory, name)
        if os.path.exists(path):
            return path
    return None


def is_valid_whisper_model(model_path: str) -> bool:
    return all(
        find_file_by_suffix(model_path, *suffixes) is not None
        for suffixes in (
            WHISPER_ENCODER_SUFFIXES,
            WHISPER_DECODER_SUFFIXES,
            WHISPER_TOKENS_SUFFIXES,
        )
    )


def is_valid_transducer_model(model_path: str) -> bool:
    return all(
        find_file_exact(model_path, candidates) is not None
        for candidates in (
            TRANSDUCER_ENCODERS,
            TRANSDUCER_DECODERS,
            TRANSDUCER_JOINERS,
            ["tokens.txt"],
        )
    )


def detect_model_type(model_path: str) -> Optional[str]:
    """Return "transducer", "whisper" or None when the directory holds no usable model."""
    if not os.path.isdir(model_path):
        return None
    # Transducer exports also ship encoder/decoder files; check the joiner first.
    if is_valid_transducer_model(model_path):
        return "transducer"
    if is_valid_whisper_model(model_path):
        return "whisper"
    return None
