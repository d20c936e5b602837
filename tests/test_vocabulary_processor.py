"""Tests for vocabulary processor."""

from src.voicescribe.core.transcript_processor.vocabulary_processor import (
    apply_vocabulary_replacements,
)


class TestApplyVocabularyReplacements:

    def test_empty_replacements(self):
        assert apply_vocabulary_replacements("Hello world", []) == "Hello world"

    def test_mapping(self):
        result = apply_vocabulary_replacements("foo baz", {"foo": "bar"})
        assert result == "bar baz"

    def test_multiple_occurrences(self):
        text = "Charlie said hello to Charlie"
        result = apply_vocabulary_replacements(text, [("Charlie", "Charles")])
        assert result == "Charles said hello to Charles"

    def test_multiple_replacements(self):
        text = "Hello Charlie, link calendar please"
        replacements = [
            ("Charlie", "Charles"),
            ("link calendar", "https://example.com"),
        ]
        result = apply_vocabulary_replacements(text, replacements)
        assert result == "Hello Charles, https://example.com please"

    def test_case_sensitive_by_default(self):
        text = "charlie CHARLIE Charlie"
        result = apply_vocabulary_replacements(text, [("Charlie", "Charles")])
        assert result == "charlie CHARLIE Charles"

    def test_case_insensitive_when_disabled(self):
        text = "charlie CHARLIE Charlie"
        result = apply_vocabulary_replacements(
            text, [("Charlie", "Charles")], case_sensitive=False
        )
        assert result == "Charles Charles Charles"

    def test_empty_original_skipped(self):
        replacements = [("", "NOTHING"), ("world", "universe")]
        result = apply_vocabulary_replacements("Hello world", replacements)
        assert result == "Hello universe"

    def test_empty_replacement_removes_word(self):
        result = apply_vocabulary_replacements("Hello um world", [("um ", "")])
        assert result == "Hello world"

    def test_special_regex_chars_are_literal(self):
        text = "Use (regex) for [matching]"
        replacements = [("(regex)", "patterns"), ("[matching]", "selection")]
        assert apply_vocabulary_replacements(text, replacements) == (
            "Use patterns for selection"
        )

    def test_backslashes_in_replacement_are_literal(self):
        result = apply_vocabulary_replacements(
            "path here", [("PATH", r"C:\new\dir")], case_sensitive=False
        )
        assert result == r"C:\new\dir here"
