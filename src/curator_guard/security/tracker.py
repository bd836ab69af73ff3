"""Durable record of detected injection attempts.

Attempts are appended to ``injections-YYYY-MM-DD.jsonl`` under the security
logs directory. Only a short content fingerprint is stored, never the raw
text.
"""

from __future__ import annotations

import hashlib
from datetime import date, datetime
from pathlib import Path

from curator_guard.config import SecurityConfig, get_settings, resolve_security_config
from curator_guard.logging import get_logger
from curator_guard.security.models import InjectionAttempt, InjectionPattern, WorkflowType
from curator_guard.security.sanitizer import primary_pattern
from curator_guard.storage import DayPartition, utc_now

log = get_logger("curator_guard.security.tracker")

ATTEMPT_FILE_PREFIX = "injections"
ATTEMPT_FILE_SUFFIX = "jsonl"


def content_fingerprint(content: str) -> str:
    """First 8 hex characters of the SHA-256 of *content*."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:8]


def build_attempt(
    content: str,
    user: str,
    workflow: WorkflowType,
    blocked: bool,
    *,
    issue_number: int | None = None,
    repository: str | None = None,
    pattern: InjectionPattern | None = None,
) -> InjectionAttempt:
    """Build an attempt record from raw content without retaining it.

    The pattern defaults to the first family that matches *content*.
    """
    return InjectionAttempt(
        timestamp=utc_now().isoformat(),
        user=user,
        workflow=workflow,
        pattern=pattern or primary_pattern(content),
        content_hash=content_fingerprint(content),
        blocked=blocked,
        issue_number=issue_number,
        repository=repository,
    )


class InjectionTracker:
    """Append and query injection attempt records."""

    def __init__(
        self,
        logs_dir: str | Path | None = None,
        config: SecurityConfig | None = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            logs_dir: Directory for day files. Defaults to the configured
                security logs directory.
            config: Policy override. When omitted the policy file is read
                fresh on every operation.
        """
        self._logs_dir = (
            Path(logs_dir) if logs_dir is not None else get_settings().security_logs_dir
        )
        self._config = config
        self._partition = DayPartition(self._logs_dir, ATTEMPT_FILE_PREFIX, ATTEMPT_FILE_SUFFIX)

    @property
    def logs_dir(self) -> Path:
        return self._logs_dir

    def _policy(self) -> SecurityConfig:
        return resolve_security_config(self._config)

    def track(self, attempt: InjectionAttempt) -> None:
        """Append *attempt* to today's file. No-op when logging is disabled."""
        if not self._policy().logging.enabled:
            return
        if self._partition.append(attempt.to_dict()):
            log.info(
                "injection_attempt_tracked",
                user=attempt.user,
                workflow=attempt.workflow.value,
                pattern=attempt.pattern.value,
                content_hash=attempt.content_hash,
                blocked=attempt.blocked,
            )

    def read_attempts(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> list[InjectionAttempt]:
        """Return attempts from files dated in [start, end], in append order.

        *end* defaults to today. Malformed lines are skipped.
        """
        attempts: list[InjectionAttempt] = []
        for path, line_number, data in self._partition.read(start, end):
            try:
                attempts.append(InjectionAttempt.from_dict(data))
            except ValueError as e:
                log.warning(
                    "attempt_record_invalid",
                    path=str(path),
                    line=line_number,
                    error=str(e),
                )
        return attempts

    def attempts_by_user(
        self,
        user: str,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> list[InjectionAttempt]:
        return [a for a in self.read_attempts(start, end) if a.user == user]

    def unique_users(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> list[str]:
        """Users with at least one attempt, in first-seen order."""
        return list(dict.fromkeys(a.user for a in self.read_attempts(start, end)))

    def count_by_pattern(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> dict[InjectionPattern, int]:
        counts: dict[InjectionPattern, int] = {}
        for attempt in self.read_attempts(start, end):
            counts[attempt.pattern] = counts.get(attempt.pattern, 0) + 1
        return counts

    def count_by_workflow(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> dict[WorkflowType, int]:
        counts: dict[WorkflowType, int] = {}
        for attempt in self.read_attempts(start, end):
            counts[attempt.workflow] = counts.get(attempt.workflow, 0) + 1
        return counts

    def cleanup_old_logs(self, retention_days: int | None = None) -> int:
        """Delete day files older than the retention period.

        Args:
            retention_days: Overrides the configured retention.

        Returns:
            Number of files deleted.
        """
        retention = (
            retention_days if retention_days is not None else self._policy().logging.retention_days
        )
        deleted = self._partition.delete_older_than(retention)
        if deleted:
            log.info("attempt_logs_cleaned_up", deleted=deleted, retention_days=retention)
        return deleted
