"""Tests for escalation tier planning."""

import pytest

from curator_guard.alerting.tiers import (
    BLOCKED_LABEL,
    SECURITY_FLAG_LABELS,
    SECURITY_ISSUE_LABELS,
    ActionKind,
    Incident,
    Severity,
    blocking_comment,
    plan_actions,
    tracking_issue_body,
    tracking_issue_title,
    warning_comment,
)
from curator_guard.security.models import InjectionPattern


@pytest.fixture
def incident():
    return Incident(
        user="mallory",
        attempt_count=4,
        detected_patterns=(InjectionPattern.ROLE_SWITCHING, "encoded-payload"),
        source_issue_id=123,
    )


class TestSeverity:
    """Tests for Severity parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [("low", Severity.LOW), ("MEDIUM", Severity.MEDIUM), (Severity.HIGH, Severity.HIGH)],
    )
    def test_parse(self, value, expected):
        assert Severity.parse(value) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="critical"):
            Severity.parse("critical")

    def test_ordering_and_label(self):
        assert Severity.LOW < Severity.MEDIUM < Severity.HIGH
        assert Severity.HIGH.label == "high"


class TestIncident:
    """Tests for Incident."""

    def test_patterns_coerced(self, incident):
        assert incident.detected_patterns == (
            InjectionPattern.ROLE_SWITCHING,
            InjectionPattern.ENCODED_PAYLOAD,
        )
        assert incident.pattern_names == ["Role Switching", "Encoded Payload"]

    def test_unknown_pattern_rejected(self):
        with pytest.raises(ValueError):
            Incident(user="u", attempt_count=1, detected_patterns=("jailbreak",))


class TestPlanActions:
    """Tests for plan_actions."""

    def test_low(self, incident):
        actions = plan_actions(incident, "low")
        assert [a.kind for a in actions] == [ActionKind.ADD_LABELS, ActionKind.COMMENT]
        assert actions[0].issue_number == 123
        assert actions[0].params == {"labels": SECURITY_FLAG_LABELS}

    def test_medium_is_default(self, incident):
        actions = plan_actions(incident)
        assert [a.kind for a in actions] == [
            ActionKind.ADD_LABELS,
            ActionKind.COMMENT,
            ActionKind.CREATE_ISSUE,
        ]
        create = actions[-1]
        assert create.issue_number is None
        assert create.params["labels"] == SECURITY_ISSUE_LABELS
        assert create.params["title"] == tracking_issue_title(incident)

    def test_high(self, incident):
        actions = plan_actions(incident, Severity.HIGH)
        assert [a.kind for a in actions] == [
            ActionKind.ADD_LABELS,
            ActionKind.COMMENT,
            ActionKind.CREATE_ISSUE,
            ActionKind.COMMENT,
            ActionKind.UPDATE_ISSUE,
            ActionKind.LOCK_ISSUE,
        ]
        update, lock = actions[4], actions[5]
        assert update.params == {
            "state": "closed",
            "labels": [*SECURITY_FLAG_LABELS, BLOCKED_LABEL],
        }
        assert lock.params == {"lock_reason": "spam"}
        assert actions[3].params["body"] == blocking_comment(incident)

    def test_without_source_only_creates_issue(self):
        incident = Incident(user="mallory", attempt_count=9)
        actions = plan_actions(incident, Severity.HIGH)
        assert [a.kind for a in actions] == [ActionKind.CREATE_ISSUE]

    def test_plan_does_not_share_label_lists(self, incident):
        actions = plan_actions(incident, "low")
        actions[0].params["labels"].append("extra")
        assert SECURITY_FLAG_LABELS == ["security-flagged", "needs-review"]


class TestMessages:
    """Tests for the comment and issue text."""

    def test_warning_comment(self, incident):
        text = warning_comment(incident)
        assert text.startswith("## ⚠️ Security Warning")
        assert "@mallory" in text
        assert "- Role Switching" in text
        assert "- Encoded Payload" in text

    def test_tracking_issue_title(self, incident):
        assert tracking_issue_title(incident) == (
            "🚨 Security Alert: Prompt injection attempts by @mallory"
        )

    def test_tracking_issue_body_with_source(self, incident):
        body = tracking_issue_body(incident)
        assert "**User:** @mallory" in body
        assert "**Attempts:** 4" in body
        assert "**Source:** #123" in body

    def test_tracking_issue_body_without_source(self):
        body = tracking_issue_body(Incident(user="mallory", attempt_count=2))
        assert "**Source:** multiple submissions" in body
        assert "no specific pattern recorded" in body

    def test_blocking_comment(self, incident):
        text = blocking_comment(incident)
        assert text.startswith("## 🚫 Issue Blocked")
        assert "@mallory (4 attempts)" in text
