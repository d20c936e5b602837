from .chain import PostProcessingChain, TextEnhancer
from .llm_processor import (
    Enhancement,
    LLMProcessor,
    LLMResponse,
    get_default_enhancements,
)
from .vocabulary_processor import apply_vocabulary_replacements

__all__ = [
    "Enhancement",
    "LLMProcessor",
    "LLMResponse",
    "PostProcessingChain",
    "TextEnhancer",
    "get_default_enhancements",
    "apply_vocabulary_replacements",
]
