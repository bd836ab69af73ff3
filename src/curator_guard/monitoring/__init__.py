"""Security monitoring: structured event log, metrics and history analysis."""

from curator_guard.monitoring.analysis import (
    SecurityAnalysis,
    Trend,
    TrendSummary,
    analyze_security_history,
    classify_trend,
    dashboard_status,
)
from curator_guard.monitoring.event_log import LogCategory, LogEntry, LogLevel, SecurityEventLog
from curator_guard.monitoring.metrics import (
    LogStatistics,
    SecurityMetrics,
    collect_log_statistics,
    collect_security_metrics,
    get_metrics_for_time_range,
    get_top_users_by_attempts,
)

__all__ = [
    "LogCategory",
    "LogEntry",
    "LogLevel",
    "LogStatistics",
    "SecurityAnalysis",
    "SecurityEventLog",
    "SecurityMetrics",
    "Trend",
    "TrendSummary",
    "analyze_security_history",
    "classify_trend",
    "collect_log_statistics",
    "collect_security_metrics",
    "dashboard_status",
    "get_metrics_for_time_range",
    "get_top_users_by_attempts",
]
