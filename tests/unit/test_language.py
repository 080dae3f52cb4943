"""Unit tests for script detection."""

from lexicard.utils.language import char_script, detect_script, has_script


def test_char_script():
    assert char_script("ש") == "hebrew"
    assert char_script("ж") == "cyrillic"
    assert char_script("q") == "latin"
    assert char_script("1") is None
    assert char_script(" ") is None


def test_detect_script_majority():
    """Test the script with the most letters wins."""
    assert detect_script(["кошка", "собака", "שלום"]) == "cyrillic"
    assert detect_script(["שלום", "ספר"]) == "hebrew"
    assert detect_script(["cat", "dog"]) == "latin"


def test_detect_script_without_letters():
    assert detect_script(["123", "..."]) is None
    assert detect_script([]) is None


def test_has_script():
    assert has_script("ספר (book)", "hebrew")
    assert not has_script("book", "hebrew")
