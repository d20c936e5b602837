import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import litellm
from litellm import completion, completion_cost
from pydantic import BaseModel, ConfigDict

from ...utils.logger import get_logger
from ..asr.errors import EnhancementError

logger = get_logger(__name__)

PROVIDER_ENV_VARS = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "AZURE_API_KEY",
    "GEMINI_API_KEY",
    "OPENROUTER_API_KEY",
)


class Enhancement(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    prompt: str

    def to_dict(self) -> dict:
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: dict) -> "Enhancement":
        return cls.model_validate(data)


@dataclass
class LLMResponse:
    content: str
    cost_usd: Optional[float] = None
    usage: Optional[dict] = None  # prompt_tokens, completion_tokens, total_tokens


class LLMProcessor:

    @staticmethod
    def format_model_name(model: str, provider: str) -> str:
        known_prefixes = (
            "openrouter/",
            "ollama/",
            "gemini/",
            "openai/",
            "anthropic/",
            "azure/",
        )
        if model.startswith(known_prefixes):
            return model

        prefix = {
            "openrouter": "openrouter/",
            "ollama": "ollama/",
            "gemini": "gemini/",
        }.get(provider)
        return f"{prefix}{model}" if prefix else model

    def __init__(
        self,
        model: str = "gpt-5-nano",
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
    ):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base

        model_info = litellm.model_cost.get(model, {})
        self._supports_system_messages = model_info.get(
            "supports_system_messages", True
        )

        logger.info(f"LLMProcessor initialized with model: {model}, api_base: {api_base}")

    def _build_messages(self, text: str, enhancement: Enhancement) -> list[dict]:
        if self._supports_system_messages:
            return [
                {"role": "system", "content": enhancement.prompt},
                {"role": "user", "content": text},
            ]
        logger.debug(f"Merged system prompt with user prompt for {self.model}")
        return [{"role": "user", "content": f"{enhancement.prompt}\n\n{text}"}]

    def process(self, text: str, enhancement: Enhancement) -> LLMResponse:
        """
        Run ``enhancement`` over ``text``.

        Raises:
            EnhancementError: the completion call failed or returned no content.
        """
        if not text or not text.strip():
            return LLMResponse(content=text)

        logger.info(f"Applying enhancement '{enhancement.title}' to text ({len(text)} chars)")

        kwargs = {"model": self.model, "messages": self._build_messages(text, enhancement)}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = completion(**kwargs)
            result_text = response.choices[0].message.content
        except Exception as e:
            raise EnhancementError(f"LLM completion failed: {e}") from e

        if not result_text or not result_text.strip():
            raise EnhancementError("LLM returned an empty response")

        try:
            with warnings.catch_warnings():
                warnings.filterwarnings(
                    "ignore",
                    message="Pydantic serializer warnings",
                    category=UserWarning,
                )
                cost = completion_cost(completion_response=response)
        except Exception:
            cost = None

        usage = None
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        logger.info(f"Enhancement complete: {len(text)} -> {len(result_text)} chars")
        return LLMResponse(content=result_text.strip(), cost_usd=cost, usage=usage)

    def is_configured(self) -> bool:
        if self.api_key:
            return True
        if self.model.startswith("ollama/") or self.api_base:
            return True
        return any(os.environ.get(var) for var in PROVIDER_ENV_VARS)


def load_default_enhancements() -> List[Enhancement]:
    json_path = Path(__file__).parent / "enhancement_prompts.json"

    with open(json_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return [Enhancement.model_validate(item) for item in data]


_default_enhancements: Optional[List[Enhancement]] = None


def get_default_enhancements() -> List[Enhancement]:
    global _default_enhancements
    if _default_enhancements is None:
        _default_enhancements = load_default_enhancements()
    return _default_enhancements
