"""Data models for injection tracking and rate limiting."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class WorkflowType(StrEnum):
    """Automation workflow in which untrusted text was processed."""

    TRIAGE = "triage"
    CATEGORIZE = "categorize"
    VALIDATE = "validate"


class InjectionPattern(StrEnum):
    """Family of prompt-injection technique."""

    ROLE_SWITCHING = "role-switching"
    INSTRUCTION_OVERRIDE = "instruction-override"
    DELIMITER_INJECTION = "delimiter-injection"
    CONTEXT_CONFUSION = "context-confusion"
    ENCODED_PAYLOAD = "encoded-payload"
    URL_INJECTION = "url-injection"
    UNKNOWN = "unknown"

    @property
    def display_name(self) -> str:
        """Human-readable name, e.g. ``Role Switching``."""
        return " ".join(word.capitalize() for word in self.value.split("-"))


class RateLimitScope(StrEnum):
    """Entity type a rate-limit quota applies to."""

    USER = "user"
    REPO = "repo"


@dataclass(frozen=True)
class InjectionAttempt:
    """One detected injection event.

    Holds a content fingerprint only; raw content is never stored.
    """

    timestamp: str  # ISO 8601
    user: str
    workflow: WorkflowType
    pattern: InjectionPattern
    content_hash: str
    blocked: bool
    issue_number: int | None = None
    repository: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the on-disk key names."""
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "user": self.user,
            "workflow": self.workflow.value,
            "pattern": self.pattern.value,
            "contentHash": self.content_hash,
            "blocked": self.blocked,
        }
        if self.issue_number is not None:
            data["issueNumber"] = self.issue_number
        if self.repository is not None:
            data["repository"] = self.repository
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InjectionAttempt:
        """Parse a stored record.

        Raises:
            ValueError: A required key is missing or a value is out of range.
        """
        if not isinstance(data, dict):
            raise ValueError("record must be a JSON object")
        try:
            timestamp = data["timestamp"]
            user = data["user"]
            workflow = WorkflowType(data["workflow"])
            pattern = InjectionPattern(data["pattern"])
            content_hash = data["contentHash"]
            blocked = data["blocked"]
        except KeyError as e:
            raise ValueError(f"missing field {e.args[0]!r}") from e

        if not isinstance(timestamp, str) or not isinstance(user, str):
            raise ValueError("timestamp and user must be strings")
        if not isinstance(content_hash, str) or not isinstance(blocked, bool):
            raise ValueError("contentHash must be a string and blocked a boolean")

        issue_number = data.get("issueNumber")
        if issue_number is not None and (
            isinstance(issue_number, bool) or not isinstance(issue_number, int) or issue_number < 1
        ):
            raise ValueError(f"issueNumber must be a positive integer, got {issue_number!r}")

        repository = data.get("repository")
        if repository is not None and not isinstance(repository, str):
            raise ValueError("repository must be a string")

        return cls(
            timestamp=timestamp,
            user=user,
            workflow=workflow,
            pattern=pattern,
            content_hash=content_hash,
            blocked=blocked,
            issue_number=issue_number,
            repository=repository,
        )


@dataclass
class RateLimitEntry:
    """Counter for one entity inside a fixed window.

    ``first_attempt`` anchors the window; both timestamps are epoch ms.
    """

    attempts: int
    first_attempt: int
    last_attempt: int

    def to_dict(self) -> dict[str, int]:
        return {
            "attempts": self.attempts,
            "firstAttempt": self.first_attempt,
            "lastAttempt": self.last_attempt,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RateLimitEntry:
        """Parse a stored entry.

        Raises:
            ValueError: A field is missing or not a non-negative integer.
        """
        try:
            values = (data["attempts"], data["firstAttempt"], data["lastAttempt"])
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed rate-limit entry: {data!r}") from e
        for value in values:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"malformed rate-limit entry: {data!r}")
        return cls(attempts=values[0], first_attempt=values[1], last_attempt=values[2])

    def is_expired(self, now_ms: int, window_ms: int) -> bool:
        """Whether the fixed window anchored at ``first_attempt`` has elapsed."""
        return now_ms - self.first_attempt > window_ms


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a quota check."""

    allowed: bool
    remaining: int
    reset_at: str  # ISO 8601
    blocked: bool
