"""Unit tests for structured input parsing."""

from lexicard.models.word import EnrichedItem, WordCategory
from lexicard.services.input_parser import (
    RejectedLine,
    is_structured,
    parse_structured,
    parse_structured_line,
)


class TestIsStructured:
    """Test structured input detection."""

    def test_all_lines_structured(self):
        lines = [
            "noun - ספר - sefer - книга",
            "verb - לכתוב - lichtov - писать - כתבתי - אני כותב מכתב",
        ]
        assert is_structured(lines)

    def test_one_plain_line_makes_input_plain(self):
        """Test a single short line disables structured mode."""
        lines = ["noun - ספר - sefer - книга", "כלב"]
        assert not is_structured(lines)

    def test_hyphenated_word_is_plain(self):
        assert not is_structured(["רב-קומות"])

    def test_empty_input(self):
        assert not is_structured([])


class TestParseStructuredLine:
    """Test line parsing."""

    def test_minimal_line(self):
        item = parse_structured_line("noun - ספר - sefer - книга")
        assert isinstance(item, EnrichedItem)
        assert item.source == "ספר"
        assert item.transcription == "sefer"
        assert item.translation == "книга"
        assert item.category == WordCategory.NOUN
        assert item.examples == []

    def test_hebrew_category_and_example(self):
        """Test Hebrew labels and the optional example field."""
        item = parse_structured_line("פועל - לכתוב - lichtov - писать - כתבתי - אני כותב מכתב")
        assert item.category == WordCategory.VERB
        assert item.examples[0].source == "אני כותב מכתב"
        assert item.conjugations is None

    def test_unknown_category_becomes_other(self):
        item = parse_structured_line("misc - שלום - shalom - привет")
        assert item.category == WordCategory.OTHER

    def test_source_in_wrong_script_rejected(self):
        """Test a source without Hebrew letters is rejected."""
        result = parse_structured_line("noun - book - buk - книга")
        assert isinstance(result, RejectedLine)
        assert result.source == "book"

    def test_script_check_can_be_disabled(self):
        item = parse_structured_line("noun - book - buk - книга", source_script=None)
        assert isinstance(item, EnrichedItem)

    def test_missing_translation_rejected(self):
        result = parse_structured_line("noun - ספר - sefer - ")
        assert isinstance(result, RejectedLine)
        assert result.reason == "Missing transcription or translation"

    def test_parse_keeps_order(self):
        results = parse_structured(["noun - ספר - sefer - книга", "noun - book - b - книга"])
        assert isinstance(results[0], EnrichedItem)
        assert isinstance(results[1], RejectedLine)
