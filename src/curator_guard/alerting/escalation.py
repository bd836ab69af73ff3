"""Execute escalation plans against the issue tracker.

Actions run in plan order and independently: a failed call is recorded and
logged, then the next action is attempted. Nothing already done is rolled
back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from curator_guard.alerting.tiers import ActionKind, AlertAction, Incident, Severity, plan_actions
from curator_guard.alerting.webhook import send_webhook_alert
from curator_guard.config import SecurityConfig, resolve_security_config
from curator_guard.github.client import IssueTracker
from curator_guard.logging import get_logger
from curator_guard.monitoring.event_log import SecurityEventLog

log = get_logger("curator_guard.alerting.escalation")


@dataclass
class ActionOutcome:
    action: AlertAction
    success: bool
    error: str | None = None
    result: Any = None


@dataclass
class EscalationReport:
    """What happened while handling one incident."""

    severity: Severity
    outcomes: list[ActionOutcome] = field(default_factory=list)
    skipped: list[AlertAction] = field(default_factory=list)
    webhook_sent: bool | None = None  # None when no webhook is configured

    @property
    def succeeded(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def created_issue_number(self) -> int | None:
        for outcome in self.succeeded:
            if outcome.action.kind is ActionKind.CREATE_ISSUE and isinstance(outcome.result, dict):
                number = outcome.result.get("number")
                return int(number) if number is not None else None
        return None


class AlertEscalator:
    """Apply the escalation tiers for a repository.

    Args:
        client: Issue-tracker client, usually a GitHubClient.
        owner: Repository owner.
        repo: Repository name.
        config: Security policy. Resolved from the config file when omitted.
        event_log: Where executed actions are recorded.
    """

    def __init__(
        self,
        client: IssueTracker,
        owner: str,
        repo: str,
        config: SecurityConfig | None = None,
        event_log: SecurityEventLog | None = None,
    ):
        self._client = client
        self._owner = owner
        self._repo = repo
        self._config = config or resolve_security_config()
        self._event_log = event_log or SecurityEventLog(config=self._config)

    @property
    def repository(self) -> str:
        return f"{self._owner}/{self._repo}"

    def _allowed(self, action: AlertAction) -> bool:
        alerting = self._config.alerting
        if action.kind is ActionKind.COMMENT:
            return alerting.comment_on_source
        if action.kind is ActionKind.CREATE_ISSUE:
            return alerting.create_issue
        return True

    def _execute(self, action: AlertAction) -> Any:
        owner, repo = self._owner, self._repo
        params = action.params
        match action.kind:
            case ActionKind.ADD_LABELS:
                return self._client.add_labels(owner, repo, action.issue_number, params["labels"])
            case ActionKind.COMMENT:
                return self._client.add_comment(owner, repo, action.issue_number, params["body"])
            case ActionKind.CREATE_ISSUE:
                return self._client.create_issue(
                    owner, repo, params["title"], params["body"], params["labels"]
                )
            case ActionKind.UPDATE_ISSUE:
                return self._client.update_issue(
                    owner,
                    repo,
                    action.issue_number,
                    state=params.get("state"),
                    labels=params.get("labels"),
                )
            case ActionKind.LOCK_ISSUE:
                return self._client.lock_issue(
                    owner, repo, action.issue_number, lock_reason=params.get("lock_reason")
                )
        raise ValueError(f"Unsupported alert action: {action.kind}")

    def _record(self, incident: Incident, severity: Severity, outcome: ActionOutcome) -> None:
        context: dict[str, Any] = {
            "action": outcome.action.kind.value,
            "user": incident.user,
            "repository": self.repository,
            "success": outcome.success,
        }
        if outcome.action.issue_number is not None:
            context["issueNumber"] = outcome.action.issue_number
        if outcome.error:
            context["error"] = outcome.error
        message = (
            f"Alert action {outcome.action.kind.value} executed"
            if outcome.success
            else f"Alert action {outcome.action.kind.value} failed"
        )
        self._event_log.log_alert("prompt-injection", severity.label, message, context)

    def handle_incident(
        self, incident: Incident, severity: Severity | str = Severity.MEDIUM
    ) -> EscalationReport:
        """Run every action planned for *severity*.

        Returns:
            An EscalationReport. Failures are recorded in it, never raised.
        """
        rank = Severity.parse(severity)
        report = EscalationReport(severity=rank)

        if not self._config.alerting.enabled:
            log.info("alerting_disabled", user=incident.user, severity=rank.label)
            return report

        for action in plan_actions(incident, rank):
            if not self._allowed(action):
                report.skipped.append(action)
                continue

            try:
                result = self._execute(action)
                outcome = ActionOutcome(action=action, success=True, result=result)
            except Exception as e:
                log.error(
                    "alert_action_failed",
                    action=action.kind.value,
                    issue=action.issue_number,
                    error=str(e),
                )
                outcome = ActionOutcome(action=action, success=False, error=str(e))

            report.outcomes.append(outcome)
            self._record(incident, rank, outcome)

        webhook_url = self._config.alerting.webhook_url
        if webhook_url:
            report.webhook_sent = send_webhook_alert(
                webhook_url, incident, rank, repository=self.repository
            )

        log.info(
            "security_incident_handled",
            user=incident.user,
            severity=rank.label,
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            skipped=len(report.skipped),
        )
        return report
