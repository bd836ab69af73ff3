"""Detection and redaction of prompt-injection text.

All functions here are pure and total: they never raise on bad input and
return an empty or negative result for non-string values.
"""

from __future__ import annotations

import re
from typing import Any

from curator_guard.security.models import InjectionPattern
from curator_guard.security.patterns import (
    ENCODED_MARKER,
    PATTERN_TABLE,
    REMOVED_MARKER,
    TRUNCATION_MARKER,
)

_EXCESS_NEWLINES = re.compile(r"\n{4,}")
_WHITESPACE_RUN = re.compile(r"\s+")
_CLOSES_ISSUE = re.compile(r"Closes\s+#(\d+)", re.IGNORECASE)

_SINGLE_LINE_FIELDS = frozenset({"id", "name", "slug", "title"})
_DESCRIPTION_MAX_LENGTH = 1000
_FIELD_MAX_LENGTH = 200
_LIST_ITEM_MAX_LENGTH = 100
_MAX_ISSUE_NUMBER = 999_999

# Shortest match each redaction marker can stand for ("%41" x 5, "[/SYS]")
_MARKER_FLOORS = ((ENCODED_MARKER, 15), (REMOVED_MARKER, 6))


def detect_injection(text: Any) -> bool:
    """Return ``True`` if *text* matches any injection pattern family."""
    if not isinstance(text, str) or not text:
        return False
    return any(entry.search(text) for entry in PATTERN_TABLE)


def classify_injection(text: Any) -> list[InjectionPattern]:
    """Return every matching family, in table order."""
    if not isinstance(text, str) or not text:
        return []
    return [entry.family for entry in PATTERN_TABLE if entry.search(text)]


def primary_pattern(text: Any) -> InjectionPattern:
    """Return the first matching family, or ``unknown`` when nothing matches."""
    families = classify_injection(text)
    return families[0] if families else InjectionPattern.UNKNOWN


def _source_length(text: str) -> int:
    """Lower bound on the length *text* had before redaction."""
    length = len(text)
    for marker, floor in _MARKER_FLOORS:
        length -= text.count(marker) * (len(marker) - floor)
    return length


def sanitize_text(
    text: Any,
    *,
    max_length: int = 10000,
    strip_newlines: bool = False,
    preserve_markdown: bool = True,
) -> str:
    """Neutralize injection patterns in free-form text.

    Steps, in order: truncate to *max_length* (appending a marker), redact each
    pattern family in table order, collapse runs of four or more newlines to
    three, optionally flatten all whitespace to single spaces, then trim.
    Sanitizing already-sanitized output returns it unchanged.

    Markdown is never rewritten by this function; *preserve_markdown* is
    accepted so callers can state intent, and headings, emphasis and fenced
    code come through untouched unless they match a pattern.

    Args:
        text: Untrusted input. Non-string or empty input yields ``""``.
        max_length: Character limit applied before redaction.
        strip_newlines: Produce a single-line result.
        preserve_markdown: Keep markdown structure (the only supported mode).

    Returns:
        The sanitized text.
    """
    if not isinstance(text, str) or not text:
        return ""

    # Redaction can lengthen text, so output of an earlier pass is measured by
    # the length it came from and a trailing marker is not counted.
    body = text.removesuffix(TRUNCATION_MARKER)
    sanitized = text
    if _source_length(body) > max_length:
        sanitized = body[:max_length] + TRUNCATION_MARKER

    for entry in PATTERN_TABLE:
        sanitized = entry.redact(sanitized)

    sanitized = _EXCESS_NEWLINES.sub("\n\n\n", sanitized)

    if strip_newlines:
        sanitized = _WHITESPACE_RUN.sub(" ", sanitized.replace("\n", " "))

    return sanitized.strip()


def sanitize_json_data(data: dict[str, Any]) -> dict[str, Any]:
    """Return a sanitized copy of a category/theme record.

    ``id``, ``name``, ``slug`` and ``title`` are forced onto one line,
    ``description`` keeps up to 1000 characters and other string fields 200.
    String items of lists are limited to 100 characters; nested objects are
    processed recursively and all other values are copied as-is.
    """
    sanitized: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            sanitized[key] = sanitize_text(
                value,
                max_length=_DESCRIPTION_MAX_LENGTH if key == "description" else _FIELD_MAX_LENGTH,
                strip_newlines=key in _SINGLE_LINE_FIELDS,
            )
        elif isinstance(value, list):
            sanitized[key] = [
                sanitize_text(item, max_length=_LIST_ITEM_MAX_LENGTH)
                if isinstance(item, str)
                else item
                for item in value
            ]
        elif isinstance(value, dict):
            sanitized[key] = sanitize_json_data(value)
        else:
            sanitized[key] = value
    return sanitized


def extract_issue_number(pr_body: Any) -> int | None:
    """Extract the issue number from a ``Closes #N`` reference.

    Only the first reference is considered; numbers outside 1..999999 are
    rejected.
    """
    if not isinstance(pr_body, str) or not pr_body:
        return None
    match = _CLOSES_ISSUE.search(pr_body)
    if not match:
        return None
    number = int(match.group(1))
    if number < 1 or number > _MAX_ISSUE_NUMBER:
        return None
    return number
