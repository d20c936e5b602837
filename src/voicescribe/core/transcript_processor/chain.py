"""
Post-processing applied to raw transcripts.

Two optional steps in fixed order: literal vocabulary replacement, then AI
enhancement. Replacement runs first so corrected terms reach the enhancer.
"""

import asyncio
from typing import TYPE_CHECKING, Optional, Protocol

from ...utils.logger import get_logger
from ..asr.errors import EnhancementError
from .llm_processor import Enhancement, LLMProcessor, LLMResponse
from .vocabulary_processor import Replacements, apply_vocabulary_replacements

if TYPE_CHECKING:
    from ..settings.settings import SessionConfig, Settings

logger = get_logger(__name__)


class TextEnhancer(Protocol):
    def is_configured(self) -> bool: ...

    def process(self, text: str, enhancement: Enhancement) -> LLMResponse: ...


class PostProcessingChain:
    def __init__(
        self,
        replacements: Optional[Replacements] = None,
        replacements_enabled: bool = True,
        enhancer: Optional[TextEnhancer] = None,
        enhancement: Optional[Enhancement] = None,
        enhancement_enabled: bool = False,
    ):
        self.replacements = replacements or []
        self.replacements_enabled = replacements_enabled
        self.enhancer = enhancer
        self.enhancement = enhancement
        self.enhancement_enabled = enhancement_enabled

    @classmethod
    def from_session_config(cls, config: "SessionConfig") -> "PostProcessingChain":
        enhancer = None
        if config.enhancement_enabled and config.enhancement is not None and config.llm_model:
            enhancer = LLMProcessor(
                model=config.llm_model,
                api_key=config.llm_api_key,
                api_base=config.llm_api_base,
            )
        return cls(
            replacements=list(config.vocabulary_replacements),
            replacements_enabled=config.word_replacement_enabled,
            enhancer=enhancer,
            enhancement=config.enhancement,
            enhancement_enabled=config.enhancement_enabled,
        )

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PostProcessingChain":
        return cls.from_session_config(settings.to_session_config())

    def apply_replacements(self, text: str) -> str:
        if not self.replacements_enabled:
            return text
        return apply_vocabulary_replacements(text, self.replacements)

    def should_enhance(self) -> bool:
        if not self.enhancement_enabled:
            return False
        if self.enhancer is None or self.enhancement is None:
            return False
        if not self.enhancer.is_configured():
            logger.warning("LLM processor not configured, skipping enhancement")
            return False
        return True

    async def enhance(self, text: str) -> LLMResponse:
        if self.enhancer is None or self.enhancement is None:
            raise EnhancementError("No enhancer configured")

        try:
            return await asyncio.to_thread(self.enhancer.process, text, self.enhancement)
        except EnhancementError:
            raise
        except Exception as e:
            raise EnhancementError(str(e)) from e
