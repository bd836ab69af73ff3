"""Escalation tiers for security incidents.

Each tier is a pure planning function from an incident to the issue-tracker
actions it calls for. Higher severities run every lower tier first, so a
``high`` incident is labelled, warned and reported before it is blocked.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import Any

from curator_guard.security.models import InjectionPattern


class Severity(IntEnum):
    """Incident severity. Ordered so tiers can be compared by rank."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @classmethod
    def parse(cls, value: str | Severity) -> Severity:
        if isinstance(value, Severity):
            return value
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Unknown severity: {value!r}") from None

    @property
    def label(self) -> str:
        return self.name.lower()


class ActionKind(StrEnum):
    ADD_LABELS = "add-labels"
    COMMENT = "comment"
    CREATE_ISSUE = "create-issue"
    UPDATE_ISSUE = "update-issue"
    LOCK_ISSUE = "lock-issue"


@dataclass(frozen=True)
class Incident:
    """A user who crossed the injection threshold."""

    user: str
    attempt_count: int
    detected_patterns: tuple[InjectionPattern, ...] = ()
    source_issue_id: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "detected_patterns",
            tuple(InjectionPattern(p) for p in self.detected_patterns),
        )

    @property
    def pattern_names(self) -> list[str]:
        return [p.display_name for p in self.detected_patterns]


@dataclass(frozen=True)
class AlertAction:
    """One issue-tracker call to make.

    ``issue_number`` is None only for ``create-issue``.
    """

    kind: ActionKind
    issue_number: int | None = None
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IncidentTier:
    severity: Severity
    plan: Callable[[Incident], list[AlertAction]]


SECURITY_FLAG_LABELS = ["security-flagged", "needs-review"]
SECURITY_ISSUE_LABELS = ["security", "prompt-injection"]
BLOCKED_LABEL = "security-blocked"
LOCK_REASON = "spam"


def _pattern_list(incident: Incident) -> str:
    if not incident.detected_patterns:
        return "- (no specific pattern recorded)"
    return "\n".join(f"- {name}" for name in incident.pattern_names)


def warning_comment(incident: Incident) -> str:
    return (
        "## ⚠️ Security Warning\n\n"
        f"@{incident.user}, this submission contains content that matches known "
        "prompt-injection patterns:\n\n"
        f"{_pattern_list(incident)}\n\n"
        "Automated processing has been paused and a maintainer will review it. "
        "Please describe the resource in plain language without instructions "
        "aimed at the automation.\n"
    )


def tracking_issue_title(incident: Incident) -> str:
    return f"🚨 Security Alert: Prompt injection attempts by @{incident.user}"


def tracking_issue_body(incident: Incident) -> str:
    if incident.source_issue_id is not None:
        source = f"#{incident.source_issue_id}"
    else:
        source = "multiple submissions"
    return (
        "## Prompt Injection Alert\n\n"
        f"**User:** @{incident.user}\n"
        f"**Attempts:** {incident.attempt_count}\n"
        f"**Source:** {source}\n\n"
        "### Detected patterns\n\n"
        f"{_pattern_list(incident)}\n\n"
        "### Next steps\n\n"
        "- Review the flagged submissions\n"
        "- Decide whether the user should be blocked\n"
    )


def blocking_comment(incident: Incident) -> str:
    return (
        "## 🚫 Issue Blocked\n\n"
        "This issue has been closed and locked after repeated prompt-injection "
        f"attempts by @{incident.user} ({incident.attempt_count} attempts).\n\n"
        "If you believe this is a mistake, contact the maintainers.\n"
    )


def plan_low(incident: Incident) -> list[AlertAction]:
    """Flag the source issue and warn its author."""
    if incident.source_issue_id is None:
        return []
    return [
        AlertAction(
            ActionKind.ADD_LABELS,
            incident.source_issue_id,
            {"labels": list(SECURITY_FLAG_LABELS)},
        ),
        AlertAction(
            ActionKind.COMMENT,
            incident.source_issue_id,
            {"body": warning_comment(incident)},
        ),
    ]


def plan_medium(incident: Incident) -> list[AlertAction]:
    """Open a tracking issue for maintainers."""
    return [
        AlertAction(
            ActionKind.CREATE_ISSUE,
            None,
            {
                "title": tracking_issue_title(incident),
                "body": tracking_issue_body(incident),
                "labels": list(SECURITY_ISSUE_LABELS),
            },
        )
    ]


def plan_high(incident: Incident) -> list[AlertAction]:
    """Explain, close and lock the source issue."""
    if incident.source_issue_id is None:
        return []
    issue = incident.source_issue_id
    return [
        AlertAction(ActionKind.COMMENT, issue, {"body": blocking_comment(incident)}),
        AlertAction(
            ActionKind.UPDATE_ISSUE,
            issue,
            {"state": "closed", "labels": [*SECURITY_FLAG_LABELS, BLOCKED_LABEL]},
        ),
        AlertAction(ActionKind.LOCK_ISSUE, issue, {"lock_reason": LOCK_REASON}),
    ]


TIERS: tuple[IncidentTier, ...] = (
    IncidentTier(Severity.LOW, plan_low),
    IncidentTier(Severity.MEDIUM, plan_medium),
    IncidentTier(Severity.HIGH, plan_high),
)


def plan_actions(
    incident: Incident, severity: Severity | str = Severity.MEDIUM
) -> list[AlertAction]:
    """All actions for *severity*, lowest tier first."""
    rank = Severity.parse(severity)
    actions: list[AlertAction] = []
    for tier in TIERS:
        if tier.severity <= rank:
            actions.extend(tier.plan(incident))
    return actions
