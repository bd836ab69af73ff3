"""Tiered escalation of prompt-injection incidents."""

from curator_guard.alerting.escalation import ActionOutcome, AlertEscalator, EscalationReport
from curator_guard.alerting.tiers import (
    TIERS,
    ActionKind,
    AlertAction,
    Incident,
    IncidentTier,
    Severity,
    plan_actions,
)
from curator_guard.alerting.webhook import send_webhook_alert

__all__ = [
    "TIERS",
    "ActionKind",
    "ActionOutcome",
    "AlertAction",
    "AlertEscalator",
    "EscalationReport",
    "Incident",
    "IncidentTier",
    "Severity",
    "plan_actions",
    "send_webhook_alert",
]
