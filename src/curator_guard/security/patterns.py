"""Injection pattern table.

Each :class:`PatternFamily` pairs one :class:`InjectionPattern` with its
compiled expressions and the text that replaces a match. The table order is
the redaction order used by :func:`curator_guard.security.sanitizer.sanitize_text`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from curator_guard.security.models import InjectionPattern

REMOVED_MARKER = "[removed]"
ENCODED_MARKER = "[removed encoded content]"
TRUNCATION_MARKER = "... [truncated for length]"


@dataclass(frozen=True)
class PatternFamily:
    """One pattern family and its redaction policy."""

    family: InjectionPattern
    patterns: tuple[re.Pattern[str], ...]
    redaction: str

    def search(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.patterns)

    def redact(self, text: str) -> str:
        for pattern in self.patterns:
            text = pattern.sub(self.redaction, text)
        return text


# ---------------------------------------------------------------------------
# Expressions per family
# ---------------------------------------------------------------------------

_ROLE_SWITCHING: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"ignore\s+(?:all\s+)?(?:previous|prior|above|earlier)\s+"
        r"(?:instructions?|commands?|prompts?)",
        re.IGNORECASE,
    ),
    re.compile(r"forget\s+(?:everything|all)\s+(?:above|before|previously)", re.IGNORECASE),
    re.compile(r"disregard\s+(?:the\s+)?(?:above|previous|prior)", re.IGNORECASE),
    re.compile(r"you\s+are\s+now\s+(?:a|an)\s+[a-z\s]+(?:\.|!|$)", re.IGNORECASE),
    re.compile(r"act\s+as\s+(?:a|an)\s+[a-z\s]+(?:\.|!|$)", re.IGNORECASE),
    re.compile(r"pretend\s+(?:you\s+are|to\s+be)\s+(?:a|an)\s+[a-z\s]+", re.IGNORECASE),
)

_INSTRUCTION_OVERRIDE: tuple[re.Pattern[str], ...] = (
    re.compile(r"your\s+new\s+(?:task|instruction|role|job)\s+is", re.IGNORECASE),
    re.compile(
        r"(?:new|updated)\s+(?:system\s+)?(?:instruction|command|directive)s?:", re.IGNORECASE
    ),
    re.compile(r"important\s*:\s*instead\s+of", re.IGNORECASE),
    re.compile(r"system\s+update\s*:", re.IGNORECASE),
    re.compile(r"override\s+(?:previous|all)\s+(?:settings?|instructions?)", re.IGNORECASE),
)

_DELIMITER_INJECTION: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"---+\s*(?:end|close|stop)\s*(?:system|prompt|instruction)s?\s*---+", re.IGNORECASE
    ),
    re.compile(r"<\s*/\s*(?:system|instruction|prompt)\s*>", re.IGNORECASE),
    re.compile(r"\[/(?:INST|SYS|SYSTEM)\]", re.IGNORECASE),
    re.compile(r"```\s*(?:end|close)\s*(?:system|prompt)", re.IGNORECASE),
    re.compile(r"\{/(?:system|instruction)\}", re.IGNORECASE),
    re.compile(r"---END\s+SYSTEM\s+PROMPT---", re.IGNORECASE),
    re.compile(r"---CLOSE\s+SYSTEM---", re.IGNORECASE),
)

# Fake speaker turns such as "\nUser:" or "---\nAssistant"
_CONTEXT_CONFUSION: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:^|\n)\s*(?:user|human|assistant|ai)\s*:", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\n\s*---+\s*\n\s*(?:user|human|assistant|ai)", re.IGNORECASE),
)

# >= 20 base64 chars, >= 5 chained %XX, or >= 3 chained \uXXXX
_ENCODED_PAYLOAD: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(?:[A-Za-z0-9+/]{20,}={0,2})|(?:%[0-9A-Fa-f]{2}){5,}|(?:\\u[0-9A-Fa-f]{4}){3,}"
    ),
)

PATTERN_TABLE: tuple[PatternFamily, ...] = (
    PatternFamily(InjectionPattern.ROLE_SWITCHING, _ROLE_SWITCHING, REMOVED_MARKER),
    PatternFamily(InjectionPattern.INSTRUCTION_OVERRIDE, _INSTRUCTION_OVERRIDE, REMOVED_MARKER),
    PatternFamily(InjectionPattern.DELIMITER_INJECTION, _DELIMITER_INJECTION, REMOVED_MARKER),
    PatternFamily(InjectionPattern.CONTEXT_CONFUSION, _CONTEXT_CONFUSION, "\n"),
    PatternFamily(InjectionPattern.ENCODED_PAYLOAD, _ENCODED_PAYLOAD, ENCODED_MARKER),
)


def get_family(family: InjectionPattern) -> PatternFamily:
    """Look up a table entry by family.

    Raises:
        KeyError: The family has no expressions (``url-injection``, ``unknown``).
    """
    for entry in PATTERN_TABLE:
        if entry.family is family:
            return entry
    raise KeyError(family)
