"""
Settings management with JSON persistence.

Handles loading, saving, and validating application settings, plus the
transcription history store.
Uses platformdirs for cross-platform directory resolution.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from platformdirs import user_config_path, user_data_path
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...utils.logger import get_logger
from ..asr.backends import BackendType
from ..transcript_processor.llm_processor import (
    Enhancement,
    LLMProcessor,
    get_default_enhancements,
)
from .config import DEFAULT_CLOUD_ENDPOINT, DEFAULT_CLOUD_MODEL, MAX_HISTORY_ENTRIES

logger = get_logger(__name__)

APP_NAME = "voicescribe"


def _get_default_enhancements() -> List[dict]:
    return [e.model_dump() for e in get_default_enhancements()]


def get_config_dir() -> Path:
    return user_config_path(APP_NAME, ensure_exists=True)


def get_data_dir() -> Path:
    return user_data_path(APP_NAME, ensure_exists=True)


class TranscriptionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    duration: float = Field(default=0.0, ge=0.0)
    enhanced_text: Optional[str] = None
    enhancement_name: Optional[str] = None
    audio_file: Optional[str] = None
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())

    @property
    def final_text(self) -> str:
        return self.enhanced_text if self.enhanced_text is not None else self.text

    def to_dict(self) -> dict:
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptionResult":
        return cls.model_validate(data)


class SessionConfig(BaseModel):
    """Immutable snapshot of the settings a single transcription session reads."""

    model_config = ConfigDict(frozen=True)

    backend_type: BackendType = BackendType.LOCAL
    model_path: Optional[str] = None
    cloud_api_key: str = ""
    cloud_api_endpoint: str = DEFAULT_CLOUD_ENDPOINT
    cloud_model_name: str = DEFAULT_CLOUD_MODEL
    language: Optional[str] = None
    prompt: Optional[str] = None
    word_replacement_enabled: bool = False
    vocabulary_replacements: Tuple[Tuple[str, str], ...] = ()
    enhancement_enabled: bool = False
    enhancement: Optional[Enhancement] = None
    llm_model: str = ""
    llm_api_key: Optional[str] = None
    llm_api_base: Optional[str] = None
    keep_recordings: bool = True


class LLMProviderSettings(BaseModel):
    model_config = ConfigDict(extra="ignore", validate_assignment=False)

    model: str = ""
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    saved_models: List[str] = Field(default_factory=list)

    def to_dict(self) -> dict:
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: dict) -> "LLMProviderSettings":
        return cls.model_validate(data)


class Settings(BaseModel):
    model_config = ConfigDict(validate_assignment=False)

    transcription_backend: BackendType = BackendType.LOCAL
    model_path: Optional[str] = None
    language: Optional[str] = "auto"
    transcription_prompt: Optional[str] = None

    cloud_api_key: str = ""
    cloud_api_endpoint: str = DEFAULT_CLOUD_ENDPOINT
    cloud_model_name: str = DEFAULT_CLOUD_MODEL
    cloud_language: Optional[str] = "auto"

    word_replacement_enabled: bool = False
    vocabulary_replacements: List[Tuple[str, str]] = Field(default_factory=list)

    enhancement_enabled: bool = False
    enhancements: List[dict] = Field(default_factory=list)
    active_enhancement_id: Optional[str] = None
    llm_provider: str = "openai"
    llm_provider_settings: Dict[str, dict] = Field(default_factory=dict)

    keep_recordings: bool = True

    @field_validator("transcription_backend", mode="before")
    @classmethod
    def parse_backend(cls, v):
        return BackendType.parse(v)

    @field_validator("cloud_api_endpoint")
    @classmethod
    def endpoint_is_http(cls, v):
        parsed = urlparse(v or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("cloud_api_endpoint must be an http:// or https:// URL")
        return v

    @field_validator("cloud_model_name")
    @classmethod
    def model_name_not_empty(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("cloud_model_name must be a non-empty string")
        return v

    @classmethod
    def load(cls) -> "Settings":
        config_file = get_config_dir() / "settings.json"

        if config_file.exists():
            try:
                with open(config_file, "r") as f:
                    data = json.load(f)

                if not isinstance(data, dict):
                    raise TypeError("settings.json must contain an object")

                # Filter to valid keys only
                valid_keys = cls.model_fields.keys()
                filtered_data = {k: v for k, v in data.items() if k in valid_keys}

                if "enhancements" in filtered_data:
                    if not isinstance(filtered_data["enhancements"], list):
                        filtered_data["enhancements"] = []

                # Validate each field individually, falling back to defaults on error
                settings = cls._load_with_fallbacks(filtered_data)

                if not settings.enhancements:
                    settings.enhancements = _get_default_enhancements()

                return settings
            except (json.JSONDecodeError, TypeError) as e:
                logger.warning(
                    f"Could not load settings: {e}. Using defaults.", exc_info=True
                )
                return cls()

        settings = cls()
        settings.enhancements = _get_default_enhancements()
        return settings

    @classmethod
    def _load_with_fallbacks(cls, data: dict) -> "Settings":
        """Load settings with field-level fallback to defaults on validation errors."""
        defaults = cls()
        result_data = {}

        for field_name in cls.model_fields:
            if field_name not in data:
                result_data[field_name] = getattr(defaults, field_name)
                continue
            try:
                validated = cls.model_validate(
                    {**defaults.model_dump(), field_name: data[field_name]}
                )
                result_data[field_name] = getattr(validated, field_name)
            except ValueError:
                default_val = getattr(defaults, field_name)
                logger.warning(
                    f"Invalid {field_name} {data[field_name]!r}, resetting to {default_val}"
                )
                result_data[field_name] = default_val

        return cls.model_construct(**result_data)

    def save(self) -> None:
        config_file = get_config_dir() / "settings.json"

        data = self.model_dump(mode="json")

        with open(config_file, "w") as f:
            json.dump(data, f, indent=2)

    def reset_to_defaults(self) -> None:
        default = Settings()
        for key in Settings.model_fields:
            setattr(self, key, getattr(default, key))

    def to_session_config(self) -> SessionConfig:
        is_cloud = self.transcription_backend is BackendType.CLOUD
        return SessionConfig(
            backend_type=self.transcription_backend,
            model_path=self.model_path,
            cloud_api_key=self.cloud_api_key,
            cloud_api_endpoint=self.cloud_api_endpoint,
            cloud_model_name=self.cloud_model_name,
            language=self.cloud_language if is_cloud else self.language,
            prompt=self.transcription_prompt,
            word_replacement_enabled=self.word_replacement_enabled,
            vocabulary_replacements=tuple(
                (original, replacement)
                for original, replacement in self.vocabulary_replacements
            ),
            enhancement_enabled=self.enhancement_enabled,
            enhancement=self.get_active_enhancement(),
            llm_model=(
                LLMProcessor.format_model_name(self.llm_model, self.llm_provider)
                if self.llm_model
                else ""
            ),
            llm_api_key=self.llm_api_key,
            llm_api_base=self.llm_api_base,
            keep_recordings=self.keep_recordings,
        )

    def get_active_enhancement(self) -> Optional[Enhancement]:
        if not self.active_enhancement_id:
            return None

        for enh_dict in self.enhancements:
            if enh_dict.get("id") == self.active_enhancement_id:
                return Enhancement.model_validate(enh_dict)

        return None

    def get_provider_settings(self, provider_id: str) -> LLMProviderSettings:
        if provider_id in self.llm_provider_settings:
            return LLMProviderSettings.model_validate(
                self.llm_provider_settings[provider_id]
            )
        return LLMProviderSettings()

    def set_provider_settings(
        self, provider_id: str, settings: LLMProviderSettings
    ) -> None:
        self.llm_provider_settings[provider_id] = settings.model_dump()

    @property
    def llm_model(self) -> str:
        return self.get_provider_settings(self.llm_provider).model

    @property
    def llm_api_key(self) -> Optional[str]:
        return self.get_provider_settings(self.llm_provider).api_key

    @property
    def llm_api_base(self) -> Optional[str]:
        return self.get_provider_settings(self.llm_provider).api_base


def get_history_file() -> Path:
    return get_config_dir() / "history.json"


def load_history() -> List[TranscriptionResult]:
    history_file = get_history_file()

    if not history_file.exists():
        return []

    try:
        with open(history_file, "r") as f:
            data = json.load(f)

        return [TranscriptionResult.from_dict(item) for item in data]
    except (json.JSONDecodeError, TypeError, KeyError, ValueError) as e:
        logger.warning(f"Could not load history: {e}. Starting fresh.")
        return []


def save_history(records: List[TranscriptionResult]) -> None:
    history_file = get_history_file()
    records = records[-MAX_HISTORY_ENTRIES:]

    data = [record.to_dict() for record in records]

    with open(history_file, "w") as f:
        json.dump(data, f, indent=2)


def add_history_record(record: TranscriptionResult) -> None:
    records = load_history()
    records.append(record)
    save_history(records)


def clear_history() -> None:
    history_file = get_history_file()
    if history_file.exists():
        history_file.unlink()
