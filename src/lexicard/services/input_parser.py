"""Parsing of pre-structured word lists that need no enrichment.

A structured line looks like::

    category - source - transcription - translation[ - conjugation[ - example]]

Input counts as structured only when every non-empty line has at least
four such fields; anything else is treated as a plain list of words. The
free-text conjugation field is accepted but not stored.
"""

from dataclasses import dataclass
from typing import Optional, Union

from pydantic import ValidationError

from lexicard.models.word import EnrichedItem, Example, WordCategory
from lexicard.utils.language import has_script


FIELD_SEPARATOR = " - "
MIN_FIELDS = 4


@dataclass
class RejectedLine:
    """A structured line that could not be turned into an item."""

    line: str
    source: str
    reason: str


ParsedLine = Union[EnrichedItem, RejectedLine]


def is_structured(lines: list[str]) -> bool:
    """True if every line carries at least the four mandatory fields."""
    return bool(lines) and all(
        len(line.split(FIELD_SEPARATOR)) >= MIN_FIELDS for line in lines
    )


def parse_structured_line(line: str, source_script: Optional[str] = "hebrew") -> ParsedLine:
    """
    Build an item from one structured line.

    Args:
        line: One input line
        source_script: Script the source field must contain; None disables the check

    Returns:
        EnrichedItem, or RejectedLine describing why the line was unusable
    """
    parts = [part.strip() for part in line.split(FIELD_SEPARATOR)]
    category, source, transcription, translation = parts[:4]
    example = parts[5] if len(parts) > 5 and parts[5] else None

    if not source:
        return RejectedLine(line=line, source=line, reason="Missing source field")

    if source_script and not has_script(source, source_script):
        return RejectedLine(line=line, source=source, reason=f"Source is not {source_script} text")

    try:
        return EnrichedItem(
            source=source,
            transcription=transcription,
            translation=translation,
            category=WordCategory.parse(category),
            examples=[Example(source=example, translation="")] if example else [],
        )
    except ValidationError:
        return RejectedLine(line=line, source=source, reason="Missing transcription or translation")


def parse_structured(lines: list[str], source_script: Optional[str] = "hebrew") -> list[ParsedLine]:
    """Parse every line, keeping input order."""
    return [parse_structured_line(line, source_script) for line in lines]
