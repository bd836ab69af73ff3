"""Structured security event log.

Events are appended to ``security-YYYY-MM-DD.log`` (one JSON object per line)
for later reporting, and mirrored to structlog so they also show up in the
workflow run's output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from curator_guard.config import SecurityConfig, get_settings, resolve_security_config
from curator_guard.logging import get_logger
from curator_guard.security.models import InjectionPattern, RateLimitScope, WorkflowType
from curator_guard.storage import DayPartition, utc_now

log = get_logger("curator_guard.monitoring.event_log")

EVENT_FILE_PREFIX = "security"
EVENT_FILE_SUFFIX = "log"


class LogLevel(StrEnum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogCategory(StrEnum):
    INJECTION = "injection"
    VALIDATION = "validation"
    RATE_LIMIT = "rate-limit"
    ALERT = "alert"
    SYSTEM = "system"


_STRUCTLOG_METHOD = {
    LogLevel.INFO: "info",
    LogLevel.WARN: "warning",
    LogLevel.ERROR: "error",
    LogLevel.CRITICAL: "critical",
}


@dataclass(frozen=True)
class LogEntry:
    """One structured security event."""

    timestamp: str
    level: LogLevel
    category: LogCategory
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "category": self.category.value,
            "message": self.message,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: Any) -> LogEntry:
        """Parse a stored entry.

        Raises:
            ValueError: A field is missing or has an unknown value.
        """
        if not isinstance(data, dict):
            raise ValueError("entry must be a JSON object")
        try:
            context = data.get("context") or {}
            if not isinstance(context, dict):
                raise ValueError("context must be an object")
            return cls(
                timestamp=str(data["timestamp"]),
                level=LogLevel(data["level"]),
                category=LogCategory(data["category"]),
                message=str(data["message"]),
                context=context,
            )
        except KeyError as e:
            raise ValueError(f"missing field {e.args[0]!r}") from e


class SecurityEventLog:
    """Append and read structured security events."""

    def __init__(
        self,
        logs_dir: str | Path | None = None,
        config: SecurityConfig | None = None,
    ) -> None:
        self._logs_dir = (
            Path(logs_dir) if logs_dir is not None else get_settings().security_logs_dir
        )
        self._config = config
        self._partition = DayPartition(self._logs_dir, EVENT_FILE_PREFIX, EVENT_FILE_SUFFIX)

    @property
    def logs_dir(self) -> Path:
        return self._logs_dir

    def _policy(self) -> SecurityConfig:
        return resolve_security_config(self._config)

    def log(
        self,
        level: LogLevel,
        category: LogCategory,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> LogEntry | None:
        """Record an event.

        Returns:
            The entry written, or ``None`` when logging is disabled.
        """
        if not self._policy().logging.enabled:
            return None

        entry = LogEntry(
            timestamp=utc_now().isoformat(),
            level=level,
            category=category,
            message=message,
            context=dict(context or {}),
        )
        self._partition.append(entry.to_dict())

        emit = getattr(log, _STRUCTLOG_METHOD[level])
        emit("security_event", category=category.value, message=message, context=entry.context)
        return entry

    def log_injection_attempt(
        self,
        user: str,
        workflow: WorkflowType,
        pattern: InjectionPattern,
        blocked: bool,
        issue_number: int | None = None,
    ) -> LogEntry | None:
        context: dict[str, Any] = {
            "user": user,
            "workflow": workflow.value,
            "pattern": pattern.value,
            "blocked": blocked,
        }
        if issue_number is not None:
            context["issueNumber"] = issue_number
        return self.log(
            LogLevel.WARN, LogCategory.INJECTION, "Injection attempt detected", context
        )

    def log_validation_failure(self, file: str, errors: list[str]) -> LogEntry | None:
        return self.log(
            LogLevel.ERROR,
            LogCategory.VALIDATION,
            "Data validation failed",
            {"file": file, "errors": list(errors), "errorCount": len(errors)},
        )

    def log_rate_limit(
        self,
        entity_id: str,
        scope: RateLimitScope | str,
        blocked: bool,
        attempts: int,
    ) -> LogEntry | None:
        """Record a quota event: ERROR when the entity is blocked, WARN otherwise."""
        return self.log(
            LogLevel.ERROR if blocked else LogLevel.WARN,
            LogCategory.RATE_LIMIT,
            "Rate limit exceeded" if blocked else "Rate limit warning",
            {"entityId": entity_id, "scope": str(scope), "blocked": blocked, "attempts": attempts},
        )

    def log_alert(
        self,
        alert_type: str,
        severity: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> LogEntry | None:
        """Record an alert: CRITICAL for ``critical`` severity, ERROR otherwise."""
        return self.log(
            LogLevel.CRITICAL if severity == "critical" else LogLevel.ERROR,
            LogCategory.ALERT,
            message,
            {"alertType": alert_type, "severity": severity, **(context or {})},
        )

    def log_system_event(
        self, message: str, context: dict[str, Any] | None = None
    ) -> LogEntry | None:
        return self.log(LogLevel.INFO, LogCategory.SYSTEM, message, context)

    def read_entries(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> list[LogEntry]:
        """Return entries from files dated in [start, end], in append order."""
        entries: list[LogEntry] = []
        for path, line_number, data in self._partition.read(start, end):
            try:
                entries.append(LogEntry.from_dict(data))
            except ValueError as e:
                log.warning(
                    "security_event_invalid", path=str(path), line=line_number, error=str(e)
                )
        return entries

    def cleanup_old_logs(self, retention_days: int | None = None) -> int:
        """Delete day files older than the retention period.

        Returns:
            Number of files deleted.
        """
        retention = (
            retention_days if retention_days is not None else self._policy().logging.retention_days
        )
        deleted = self._partition.delete_older_than(retention)
        if deleted:
            self.log_system_event("Old log files cleaned up", {"deletedCount": deleted})
        return deleted
