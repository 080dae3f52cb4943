"""Script detection for deciding whether input needs a translation pre-pass."""

from collections import Counter
from typing import Iterable, Optional


SCRIPT_RANGES = {
    "hebrew": ("\u0590", "\u05ff"),
    "cyrillic": ("\u0400", "\u04ff"),
}

SCRIPT_LANGUAGE_NAMES = {
    "hebrew": "Hebrew",
    "cyrillic": "Russian",
    "latin": "English",
}


def char_script(ch: str) -> Optional[str]:
    """Return the script of a single letter, or None for non-letters."""
    for script, (low, high) in SCRIPT_RANGES.items():
        if low <= ch <= high:
            return script
    if ch.isascii() and ch.isalpha():
        return "latin"
    return None


def detect_script(lines: Iterable[str]) -> Optional[str]:
    """
    Detect the dominant script across the given lines.

    Counts letters per script and returns the script with the most letters.

    Example:
        >>> detect_script(["кошка", "собака"])
        'cyrillic'
    """
    counts: Counter[str] = Counter()
    for line in lines:
        for ch in line:
            script = char_script(ch)
            if script:
                counts[script] += 1

    if not counts:
        return None
    return counts.most_common(1)[0][0]


def has_script(text: str, script: str) -> bool:
    """True if text contains at least one letter of the given script."""
    return any(char_script(ch) == script for ch in text)
