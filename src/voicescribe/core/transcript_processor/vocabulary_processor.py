"""Vocabulary replacement processor."""

import re
from typing import Iterable, Mapping, Tuple, Union

from ...utils.logger import get_logger

logger = get_logger(__name__)

Replacements = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def _as_pairs(replacements: Replacements) -> list[Tuple[str, str]]:
    if isinstance(replacements, Mapping):
        return list(replacements.items())
    return [tuple(pair) for pair in replacements]


def apply_vocabulary_replacements(
    text: str,
    replacements: Replacements,
    case_sensitive: bool = True,
) -> str:
    """
    Apply vocabulary replacements to text.

    Replaces all occurrences of 'original' with 'replacement' for each rule,
    processing rules in the order given. Matching is literal: regex
    metacharacters in 'original' have no special meaning.

    Args:
        text: The input transcription text
        replacements: Mapping or sequence of (original, replacement) pairs
        case_sensitive: Whether to match case-sensitively (default True)

    Returns:
        Text with all replacements applied
    """
    if not replacements or not text:
        return text

    result = text
    for original, replacement in _as_pairs(replacements):
        if not original:
            continue

        if case_sensitive:
            result = result.replace(original, replacement)
        else:
            result = re.sub(
                re.escape(original),
                lambda _match: replacement,
                result,
                flags=re.IGNORECASE,
            )

    if result != text:
        logger.debug(f"Applied vocabulary replacements: '{text[:50]}' -> '{result[:50]}'")

    return result
