"""Historical analysis of injection activity.

Builds on :mod:`curator_guard.monitoring.metrics` to classify trends, rank
offenders and derive plain-language recommendations for the security report.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum

from curator_guard.monitoring.metrics import (
    collect_security_metrics,
    get_top_users_by_attempts,
)
from curator_guard.security.models import InjectionPattern
from curator_guard.security.rate_limiter import RateLimiter
from curator_guard.security.tracker import InjectionTracker
from curator_guard.storage import utc_now

TREND_THRESHOLD_PERCENT = 20.0
SHORT_WINDOW_DAYS = 7
REPEAT_OFFENDER_ATTEMPTS = 5

# (minimum attempts, status), checked top to bottom
_OFFENDER_STATUS: tuple[tuple[int, str], ...] = (
    (10, "blocked"),
    (5, "warned"),
    (3, "monitored"),
)

# (upper bound on average attempts per day, badge, label)
_DASHBOARD_LEVELS: tuple[tuple[float, str, str], ...] = (
    (1, "🟢", "Normal"),
    (5, "🟡", "Moderate"),
    (10, "🟠", "Elevated"),
)


class Trend(StrEnum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass(frozen=True)
class TrendSummary:
    trend: Trend
    change_percent: float


@dataclass
class TimeRange:
    start: str
    end: str
    days: int


@dataclass
class AnalysisSummary:
    total_attempts: int
    blocked_attempts: int
    block_rate: float  # percent
    unique_users: int
    blocked_users: int
    avg_per_day: float


@dataclass
class TrendAnalysis:
    weekly_average: float
    period_average: float
    trend: Trend
    change_percent: float


@dataclass
class PatternShare:
    pattern: InjectionPattern
    count: int
    percentage: float


@dataclass
class PatternAnalysis:
    most_common: InjectionPattern | None
    least_common: InjectionPattern | None
    breakdown: list[PatternShare] = field(default_factory=list)


@dataclass
class Offender:
    user: str
    attempts: int
    status: str


@dataclass
class UserAnalysis:
    top_offenders: list[Offender] = field(default_factory=list)
    repeat_offenders: int = 0


@dataclass
class SecurityAnalysis:
    """Complete report for one analysis window."""

    time_range: TimeRange
    summary: AnalysisSummary
    trends: TrendAnalysis
    patterns: PatternAnalysis
    users: UserAnalysis
    recommendations: list[str] = field(default_factory=list)


def classify_trend(short_avg: float, long_avg: float) -> TrendSummary:
    """Compare a short-window average against a long-window one.

    More than 20% above is increasing and more than 20% below is decreasing.
    Any activity against a zero baseline counts as increasing at 100%.
    """
    if long_avg > 0:
        change = (short_avg - long_avg) / long_avg * 100
        if change > TREND_THRESHOLD_PERCENT:
            return TrendSummary(Trend.INCREASING, change)
        if change < -TREND_THRESHOLD_PERCENT:
            return TrendSummary(Trend.DECREASING, change)
        return TrendSummary(Trend.STABLE, change)
    if short_avg > 0:
        return TrendSummary(Trend.INCREASING, 100.0)
    return TrendSummary(Trend.STABLE, 0.0)


def offender_status(attempts: int) -> str:
    for minimum, status in _OFFENDER_STATUS:
        if attempts >= minimum:
            return status
    return "active"


def dashboard_status(avg_per_day: float) -> tuple[str, str]:
    """Badge and label describing the current attempt rate."""
    if avg_per_day == 0:
        return "🟢", "Excellent"
    for bound, badge, label in _DASHBOARD_LEVELS:
        if avg_per_day < bound:
            return badge, label
    return "🔴", "Critical"


def build_recommendations(
    summary: AnalysisSummary,
    trends: TrendAnalysis,
    patterns: PatternAnalysis,
    users: UserAnalysis,
) -> list[str]:
    """Derive recommendations from an analysis. Never returns an empty list."""
    recommendations: list[str] = []

    if summary.avg_per_day >= 5:
        recommendations.append(
            "High injection attempt rate detected. Consider implementing stricter rate limits."
        )
    if trends.trend is Trend.INCREASING and trends.change_percent > 50:
        recommendations.append(
            f"Injection attempts are increasing rapidly (+{trends.change_percent:.0f}%). "
            "Investigate recent changes and monitor closely."
        )
    if summary.block_rate < 80:
        recommendations.append(
            f"Block rate is {summary.block_rate:.0f}%. "
            "Review detection rules to improve effectiveness."
        )
    if users.repeat_offenders > 0:
        recommendations.append(
            f"{users.repeat_offenders} user(s) with {REPEAT_OFFENDER_ATTEMPTS}+ attempts. "
            "Consider longer blocking periods for repeat offenders."
        )
    if len(patterns.breakdown) <= 2:
        recommendations.append(
            "Limited pattern diversity detected. "
            "Ensure detection covers all known injection techniques."
        )
    if patterns.most_common is InjectionPattern.ROLE_SWITCHING:
        recommendations.append(
            "Role-switching is the most common pattern. "
            "Consider adding more explicit role definitions in prompts."
        )

    if not recommendations:
        recommendations.append(
            "Security posture is healthy. Continue current monitoring practices."
        )
    return recommendations


def analyze_security_history(
    days: int = 90,
    *,
    tracker: InjectionTracker | None = None,
    rate_limiter: RateLimiter | None = None,
    now: datetime | None = None,
) -> SecurityAnalysis:
    """Analyze the last *days* days of injection activity.

    Args:
        days: Analysis window in days.
        tracker: Attempt source. Defaults to the configured logs directory.
        rate_limiter: Source for the blocked-user count.
        now: End of the window. Defaults to the current time.
    """
    tracker = tracker or InjectionTracker()
    rate_limiter = rate_limiter or RateLimiter()
    end = now or utc_now()

    metrics = collect_security_metrics(days, tracker=tracker, rate_limiter=rate_limiter, now=end)
    recent = collect_security_metrics(
        SHORT_WINDOW_DAYS, tracker=tracker, rate_limiter=rate_limiter, now=end
    )
    top_users = get_top_users_by_attempts(10, days, tracker=tracker, now=end)

    total = metrics.total_attempts
    summary = AnalysisSummary(
        total_attempts=total,
        blocked_attempts=metrics.blocked_attempts,
        block_rate=metrics.blocked_attempts / total * 100 if total else 0.0,
        unique_users=metrics.unique_users,
        blocked_users=metrics.blocked_users,
        avg_per_day=metrics.avg_attempts_per_day,
    )

    trend = classify_trend(recent.avg_attempts_per_day, metrics.avg_attempts_per_day)
    trends = TrendAnalysis(
        weekly_average=recent.avg_attempts_per_day,
        period_average=metrics.avg_attempts_per_day,
        trend=trend.trend,
        change_percent=trend.change_percent,
    )

    shares = sorted(
        (
            PatternShare(pattern=p, count=n, percentage=n / total * 100 if total else 0.0)
            for p, n in metrics.pattern_breakdown.items()
            if n > 0
        ),
        key=lambda share: share.count,
        reverse=True,
    )
    patterns = PatternAnalysis(
        most_common=shares[0].pattern if shares else None,
        least_common=shares[-1].pattern if shares else None,
        breakdown=shares,
    )

    users = UserAnalysis(
        top_offenders=[
            Offender(user=u.user, attempts=u.attempts, status=offender_status(u.attempts))
            for u in top_users
        ],
        repeat_offenders=sum(1 for u in top_users if u.attempts >= REPEAT_OFFENDER_ATTEMPTS),
    )

    return SecurityAnalysis(
        time_range=TimeRange(
            start=(end - timedelta(days=days)).isoformat(), end=end.isoformat(), days=days
        ),
        summary=summary,
        trends=trends,
        patterns=patterns,
        users=users,
        recommendations=build_recommendations(summary, trends, patterns, users),
    )
