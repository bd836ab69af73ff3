"""Outbound webhook notification for security incidents."""

from __future__ import annotations

from typing import Any

import httpx

from curator_guard.alerting.tiers import Incident, Severity
from curator_guard.logging import get_logger
from curator_guard.storage import utc_now

log = get_logger("curator_guard.alerting.webhook")

WEBHOOK_TIMEOUT = 10.0


def webhook_payload(
    incident: Incident, severity: Severity, repository: str | None = None
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "event": "prompt-injection-incident",
        "severity": severity.label,
        "user": incident.user,
        "attempts": incident.attempt_count,
        "patterns": [p.value for p in incident.detected_patterns],
        "timestamp": utc_now().isoformat(),
    }
    if incident.source_issue_id is not None:
        payload["issueNumber"] = incident.source_issue_id
    if repository:
        payload["repository"] = repository
    return payload


def send_webhook_alert(
    url: str,
    incident: Incident,
    severity: Severity,
    *,
    repository: str | None = None,
    timeout: float = WEBHOOK_TIMEOUT,
    transport: httpx.BaseTransport | None = None,
) -> bool:
    """POST a JSON incident summary to *url*.

    Returns:
        True if the endpoint answered with a 2xx status. Transport errors and
        error statuses are logged and reported as False.
    """
    payload = webhook_payload(incident, severity, repository)
    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            response = client.post(url, json=payload)
            response.raise_for_status()
    except httpx.HTTPError as e:
        log.warning("webhook_send_failed", url=url, error=str(e))
        return False

    log.info("webhook_sent", url=url, status=response.status_code, user=incident.user)
    return True
