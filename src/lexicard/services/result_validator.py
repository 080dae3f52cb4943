"""Validation and mechanical repair of JSON returned by the backend.

Backends frequently return payloads that are wrapped in markdown fences,
prefixed with prose, or cut off mid-stream. This module is the single place
that decides whether a payload is usable:

1. ``strip_wrapping`` removes fences and surrounding prose.
2. ``validate`` classifies defects and says whether a repair is worth trying.
3. ``repair`` appends missing closing tokens and drops trailing commas.
4. ``parse_items`` chains the above and checks the top-level shape.
5. ``build_item`` applies item-level field validation to one record.

Repairs are purely mechanical: truncated field values are never recovered.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from lexicard.models.word import EnrichedItem
from lexicard.services.exceptions import ItemValidationError, MalformedResponseError
from lexicard.utils.logging import get_logger


logger = get_logger(__name__)

# Most closing tokens a repair may append
MAX_REPAIR_CLOSERS = 2

ITEMS_KEY = "processed_words"

_CLOSER_FOR = {"{": "}", "[": "]"}
_SAFE_ENDINGS = frozenset('"}],')
_FENCE = re.compile(r"```[a-zA-Z]*\s*(.*?)(?:```|$)", re.DOTALL)


@dataclass
class ValidationResult:
    """Outcome of validating one raw payload."""

    ok: bool
    issues: list[str] = field(default_factory=list)
    repairable: bool = False


@dataclass
class _Scan:
    """Bracket bookkeeping for a payload, ignoring string contents."""

    stack: list[str] = field(default_factory=list)
    opened: dict[str, int] = field(default_factory=lambda: {"{": 0, "[": 0})
    closed: dict[str, int] = field(default_factory=lambda: {"}": 0, "]": 0})
    excess_closers: int = 0
    in_string: bool = False
    trailing_commas: int = 0


def _scan(text: str) -> _Scan:
    scan = _Scan()
    escaped = False
    pending_comma = False

    for ch in text:
        if scan.in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                scan.in_string = False
            continue

        if ch.isspace():
            continue

        if ch in "}]" and pending_comma:
            scan.trailing_commas += 1
        pending_comma = ch == ","

        if ch == '"':
            scan.in_string = True
        elif ch in _CLOSER_FOR:
            scan.opened[ch] += 1
            scan.stack.append(ch)
        elif ch in "}]":
            scan.closed[ch] += 1
            if scan.stack and _CLOSER_FOR[scan.stack[-1]] == ch:
                scan.stack.pop()
            else:
                scan.excess_closers += 1

    return scan


def strip_wrapping(raw: str) -> str:
    """
    Remove markdown code fences and prose around a JSON body.

    An unterminated fence (truncated response) is handled like a closed one.

    Example:
        >>> strip_wrapping('Sure! ```json\\n{"a": 1}\\n``` Enjoy')
        '{"a": 1}'
    """
    text = raw.strip()

    fenced = _FENCE.search(text)
    if fenced:
        text = fenced.group(1).strip()

    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if not starts:
        return text
    text = text[min(starts):]

    # Drop trailing prose only when what remains is a complete value
    last_closer = max(text.rfind("}"), text.rfind("]"))
    if 0 <= last_closer < len(text) - 1:
        candidate = text[:last_closer + 1]
        scan = _scan(candidate)
        if not scan.stack and not scan.in_string and not scan.excess_closers:
            text = candidate

    return text


def validate(raw: str) -> ValidationResult:
    """
    Classify the defects of a payload that should be JSON.

    Args:
        raw: Payload text (already passed through strip_wrapping)

    Returns:
        ValidationResult; ``repairable`` is only set for small mechanical
        defects (at most two missing closers, or stray trailing commas)
    """
    trimmed = raw.strip()

    if not trimmed:
        return ValidationResult(ok=False, issues=["Response is empty"], repairable=False)

    if trimmed in ("{", "["):
        return ValidationResult(
            ok=False,
            issues=[f'Response is incomplete: "{trimmed}"'],
            repairable=False,
        )

    issues: list[str] = []
    scan = _scan(trimmed)

    if scan.opened["{"] != scan.closed["}"]:
        issues.append(f"Unmatched braces: {scan.opened['{']} opening, {scan.closed['}']} closing")
    if scan.opened["["] != scan.closed["]"]:
        issues.append(f"Unmatched brackets: {scan.opened['[']} opening, {scan.closed[']']} closing")
    if scan.excess_closers:
        issues.append(f"Unexpected closing tokens: {scan.excess_closers}")
    if scan.in_string:
        issues.append("Response ends inside an unterminated string")
    if trimmed[-1] in ",:":
        issues.append(f"Response appears to be truncated (ends with '{trimmed[-1]}')")
    if scan.trailing_commas:
        issues.append(f"Trailing commas before closing tokens: {scan.trailing_commas}")

    try:
        json.loads(trimmed)
        return ValidationResult(ok=True, issues=[], repairable=False)
    except json.JSONDecodeError as e:
        issues.append(f"JSON parse error: {e}")

    missing = len(scan.stack)
    # A bare number or literal at the end may itself be cut short
    mechanical = (
        not scan.in_string
        and not scan.excess_closers
        and trimmed[-1] in _SAFE_ENDINGS
    )
    repairable = mechanical and (
        0 < missing <= MAX_REPAIR_CLOSERS
        or (missing == 0 and scan.trailing_commas > 0)
    )

    return ValidationResult(ok=False, issues=issues, repairable=repairable)


def _drop_trailing_commas(text: str) -> str:
    out: list[str] = []
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            out.append(ch)
            continue

        if ch == '"':
            in_string = True
        elif ch == ",":
            rest = text[i + 1:].lstrip()
            if not rest or rest[0] in "}]":
                continue
        out.append(ch)

    return "".join(out)


def repair(raw: str) -> str:
    """
    Mechanically repair a payload that validate() marked repairable.

    Appends the missing closing tokens innermost-first and removes commas
    that sit immediately before a closing token (or at the very end).

    Example:
        >>> repair('{"processed_words": [{"a": 1},')
        '{"processed_words": [{"a": 1}]}'
    """
    trimmed = raw.strip()
    scan = _scan(trimmed)
    closers = "".join(_CLOSER_FOR[opener] for opener in reversed(scan.stack))
    return _drop_trailing_commas(trimmed + closers)


def parse_items(raw: str, request_id: str | None = None) -> list[Any]:
    """
    Turn a raw response body into the list of per-item records.

    Args:
        raw: Raw text returned by the backend
        request_id: Identifier for log correlation

    Returns:
        List of item records (not yet field-validated)

    Raises:
        MalformedResponseError: If the body is unusable or has the wrong shape
    """
    body = strip_wrapping(raw)
    result = validate(body)

    if result.ok:
        data = json.loads(body)
    elif result.repairable:
        fixed = repair(body)
        revalidation = validate(fixed)
        if not revalidation.ok:
            logger.warning(
                "response_repair_failed",
                request_id=request_id,
                issues=result.issues,
                repair_issues=revalidation.issues,
            )
            raise MalformedResponseError("Response JSON could not be repaired.", result.issues)
        logger.info("response_repaired", request_id=request_id, issues=result.issues)
        logger.debug("response_repaired_body", request_id=request_id, body=fixed)
        data = json.loads(fixed)
    else:
        logger.warning(
            "response_invalid",
            request_id=request_id,
            issues=result.issues,
            preview=body[:500],
        )
        raise MalformedResponseError("Response is not valid JSON.", result.issues)

    if isinstance(data, dict) and isinstance(data.get(ITEMS_KEY), list):
        return data[ITEMS_KEY]
    if isinstance(data, list):
        return data

    raise MalformedResponseError(f'Response lacks the "{ITEMS_KEY}" array.')


def _first(record: dict, *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def build_item(record: Any, source: str) -> EnrichedItem:
    """
    Validate one response record and bind it to its source item.

    The record is matched to ``source`` by position by the caller; the
    source text the backend echoes back (if any) is not trusted.

    Raises:
        ItemValidationError: If the record is not an object or lacks a
            non-empty translation or transcription
    """
    if not isinstance(record, dict):
        raise ItemValidationError(f"Record for '{source}' is not an object")

    raw_examples = _first(record, "examples")
    if not isinstance(raw_examples, list):
        raw_examples = []

    examples = []
    for example in raw_examples:
        if not isinstance(example, dict):
            continue
        ex_source = _first(example, "source", "hebrew")
        ex_translation = _first(example, "translation", "russian")
        if isinstance(ex_source, str) and isinstance(ex_translation, str):
            examples.append({"source": ex_source, "translation": ex_translation})

    conjugations = _first(record, "conjugations")

    try:
        return EnrichedItem(
            source=source,
            transcription=str(_first(record, "transcription", "pronunciation") or ""),
            translation=str(_first(record, "translation", "russian") or ""),
            category=_first(record, "category"),
            conjugations=conjugations if isinstance(conjugations, dict) else None,
            examples=examples,
        )
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise ItemValidationError(f"Record for '{source}' is invalid: {fields}") from e
