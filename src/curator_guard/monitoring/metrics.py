"""Security metrics aggregation.

Everything here is derived from the attempt log, the event log and the
rate-limit state on every call; nothing is cached. Empty histories produce
zero-valued results rather than errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import TypeVar

from curator_guard.logging import get_logger
from curator_guard.monitoring.event_log import LogCategory, LogLevel, SecurityEventLog
from curator_guard.security.models import (
    InjectionAttempt,
    InjectionPattern,
    RateLimitScope,
    WorkflowType,
)
from curator_guard.security.rate_limiter import RateLimiter
from curator_guard.security.tracker import InjectionTracker
from curator_guard.storage import date_key, utc_now

log = get_logger("curator_guard.monitoring.metrics")

K = TypeVar("K")


@dataclass
class DailyCount:
    date: str  # YYYY-MM-DD
    attempts: int


@dataclass
class SecurityMetrics:
    """Attempt statistics over a window."""

    total_attempts: int
    blocked_attempts: int
    unique_users: int
    blocked_users: int
    pattern_breakdown: dict[InjectionPattern, int]
    workflow_breakdown: dict[WorkflowType, int]
    time_series: list[DailyCount]
    avg_attempts_per_day: float
    most_common_pattern: InjectionPattern | None
    most_targeted_workflow: WorkflowType | None


@dataclass
class LogStatistics:
    """Event-log counts over a window."""

    total_entries: int
    level_breakdown: dict[LogLevel, int] = field(
        default_factory=lambda: dict.fromkeys(LogLevel, 0)
    )
    category_breakdown: dict[LogCategory, int] = field(
        default_factory=lambda: dict.fromkeys(LogCategory, 0)
    )

    @property
    def critical_events(self) -> int:
        return self.level_breakdown[LogLevel.CRITICAL]

    @property
    def errors(self) -> int:
        return self.level_breakdown[LogLevel.ERROR]

    @property
    def warnings(self) -> int:
        return self.level_breakdown[LogLevel.WARN]


@dataclass
class UserAttemptCount:
    user: str
    attempts: int


def _most_frequent(counts: dict[K, int]) -> K | None:
    """Key with the highest count; the first one seen wins ties."""
    best: K | None = None
    best_count = 0
    for key, count in counts.items():
        if count > best_count:
            best, best_count = key, count
    return best


def _daily_series(
    attempts: list[InjectionAttempt], start: datetime, end: datetime
) -> list[DailyCount]:
    """Attempts per UTC calendar day, with every day in [start, end] present.

    Timestamps that do not parse or fall on a day outside the range are left out.
    """
    counts: dict[str, int] = {}
    day: date = date.fromisoformat(date_key(start))
    while day <= date.fromisoformat(date_key(end)):
        counts[day.isoformat()] = 0
        day += timedelta(days=1)

    for attempt in attempts:
        try:
            key = date_key(datetime.fromisoformat(attempt.timestamp))
        except (TypeError, ValueError):
            log.debug("attempt_timestamp_unparseable", timestamp=attempt.timestamp)
            continue
        if key in counts:
            counts[key] += 1

    return [DailyCount(date=d, attempts=n) for d, n in sorted(counts.items())]


def _count_blocked_users(rate_limiter: RateLimiter) -> int:
    return sum(
        1
        for user in rate_limiter.tracked_entities(RateLimitScope.USER)
        if rate_limiter.is_blocked(user, RateLimitScope.USER)
    )


def _metrics_for(
    attempts: list[InjectionAttempt],
    start: datetime,
    end: datetime,
    days: int,
    rate_limiter: RateLimiter,
) -> SecurityMetrics:
    pattern_counts: dict[InjectionPattern, int] = {}
    workflow_counts: dict[WorkflowType, int] = {}
    for attempt in attempts:
        pattern_counts[attempt.pattern] = pattern_counts.get(attempt.pattern, 0) + 1
        workflow_counts[attempt.workflow] = workflow_counts.get(attempt.workflow, 0) + 1

    return SecurityMetrics(
        total_attempts=len(attempts),
        blocked_attempts=sum(1 for a in attempts if a.blocked),
        unique_users=len({a.user for a in attempts}),
        blocked_users=_count_blocked_users(rate_limiter),
        pattern_breakdown=pattern_counts,
        workflow_breakdown=workflow_counts,
        time_series=_daily_series(attempts, start, end),
        # Divides by the requested window, not by the days that have data.
        avg_attempts_per_day=len(attempts) / days if days > 0 else 0.0,
        most_common_pattern=_most_frequent(pattern_counts),
        most_targeted_workflow=_most_frequent(workflow_counts),
    )


def collect_security_metrics(
    days_back: int = 30,
    *,
    tracker: InjectionTracker | None = None,
    rate_limiter: RateLimiter | None = None,
    now: datetime | None = None,
) -> SecurityMetrics:
    """Summarize injection attempts over the last *days_back* days.

    Args:
        days_back: Window length in days.
        tracker: Attempt source. Defaults to the configured logs directory.
        rate_limiter: Source for the blocked-user count.
        now: End of the window. Defaults to the current time.

    Returns:
        SecurityMetrics for [now - days_back, now].
    """
    tracker = tracker or InjectionTracker()
    rate_limiter = rate_limiter or RateLimiter()
    end = now or utc_now()
    start = end - timedelta(days=days_back)

    attempts = tracker.read_attempts(start, end)
    metrics = _metrics_for(attempts, start, end, days_back, rate_limiter)
    log.debug(
        "security_metrics_collected",
        days_back=days_back,
        total_attempts=metrics.total_attempts,
        unique_users=metrics.unique_users,
    )
    return metrics


def get_metrics_for_time_range(
    start: datetime,
    end: datetime,
    *,
    tracker: InjectionTracker | None = None,
    rate_limiter: RateLimiter | None = None,
) -> SecurityMetrics:
    """Summarize attempts between two explicit instants.

    The day count used for the average is the range length rounded up to
    whole days.
    """
    tracker = tracker or InjectionTracker()
    rate_limiter = rate_limiter or RateLimiter()
    if start.tzinfo is None:
        start = start.replace(tzinfo=UTC)
    if end.tzinfo is None:
        end = end.replace(tzinfo=UTC)

    seconds = (end - start).total_seconds()
    days = max(0, -int(-seconds // 86400))
    attempts = tracker.read_attempts(start, end)
    return _metrics_for(attempts, start, end, days, rate_limiter)


def collect_log_statistics(
    days_back: int = 30,
    *,
    event_log: SecurityEventLog | None = None,
    now: datetime | None = None,
) -> LogStatistics:
    """Count security events by level and category over the last *days_back* days."""
    event_log = event_log or SecurityEventLog()
    end = now or utc_now()
    entries = event_log.read_entries(end - timedelta(days=days_back), end)

    stats = LogStatistics(total_entries=len(entries))
    for entry in entries:
        stats.level_breakdown[entry.level] += 1
        stats.category_breakdown[entry.category] += 1
    return stats


def get_top_users_by_attempts(
    limit: int = 10,
    days_back: int = 30,
    *,
    tracker: InjectionTracker | None = None,
    now: datetime | None = None,
) -> list[UserAttemptCount]:
    """Users ordered by attempt count, highest first; ties keep first-seen order."""
    tracker = tracker or InjectionTracker()
    end = now or utc_now()
    counts: dict[str, int] = {}
    for attempt in tracker.read_attempts(end - timedelta(days=days_back), end):
        counts[attempt.user] = counts.get(attempt.user, 0) + 1

    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [UserAttemptCount(user=user, attempts=n) for user, n in ranked[:limit]]

