"""Pytest fixtures for curator-guard tests."""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from curator_guard.config import DEFAULT_SECURITY_CONFIG, SecurityConfig, get_settings
from curator_guard.monitoring.event_log import SecurityEventLog
from curator_guard.security.models import InjectionAttempt, InjectionPattern, WorkflowType
from curator_guard.security.rate_limiter import RateLimiter
from curator_guard.security.tracker import (
    ATTEMPT_FILE_PREFIX,
    ATTEMPT_FILE_SUFFIX,
    InjectionTracker,
)
from curator_guard.storage import DayPartition

# Fixed "now" used by the aggregation tests
FIXED_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point Settings at a throwaway data dir and a config file that does not exist.

    Runs before every test so nothing reads or writes the working tree.
    """
    monkeypatch.setenv("CURATOR_GUARD_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CURATOR_GUARD_CONFIG_PATH", str(tmp_path / "config" / "security.json"))
    monkeypatch.delenv("CURATOR_GUARD_GITHUB_TOKEN", raising=False)
    get_settings.cache_clear()

    yield

    get_settings.cache_clear()


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def security_config() -> SecurityConfig:
    """A private copy of the default policy, safe to mutate."""
    return DEFAULT_SECURITY_CONFIG.model_copy(deep=True)


@pytest.fixture
def logs_dir(tmp_path):
    return tmp_path / "security-logs"


@pytest.fixture
def tracker(logs_dir, security_config):
    return InjectionTracker(logs_dir=logs_dir, config=security_config)


@pytest.fixture
def event_log(logs_dir, security_config):
    return SecurityEventLog(logs_dir=logs_dir, config=security_config)


@pytest.fixture
def rate_limiter(tmp_path, security_config):
    return RateLimiter(data_dir=tmp_path / "state", config=security_config)


@pytest.fixture
def make_attempt():
    """Factory for InjectionAttempt records."""

    def _create(
        user: str = "mallory",
        workflow: WorkflowType = WorkflowType.TRIAGE,
        pattern: InjectionPattern = InjectionPattern.ROLE_SWITCHING,
        blocked: bool = True,
        timestamp: str | None = None,
        **kwargs,
    ) -> InjectionAttempt:
        return InjectionAttempt(
            timestamp=timestamp or FIXED_NOW.isoformat(),
            user=user,
            workflow=workflow,
            pattern=pattern,
            content_hash="deadbeef",
            blocked=blocked,
            **kwargs,
        )

    return _create


@pytest.fixture
def write_attempts(logs_dir):
    """Write attempt records into the day file for their own timestamp's date."""
    partition = DayPartition(logs_dir, ATTEMPT_FILE_PREFIX, ATTEMPT_FILE_SUFFIX)

    def _write(*attempts: InjectionAttempt) -> None:
        for attempt in attempts:
            partition.append(attempt.to_dict(), day=datetime.fromisoformat(attempt.timestamp))

    return _write


@pytest.fixture
def mock_issue_tracker():
    """MagicMock standing in for GitHubClient."""
    client = MagicMock()
    client.create_issue.return_value = {"number": 321}
    client.add_comment.return_value = {"id": 1}
    client.add_labels.return_value = []
    client.update_issue.return_value = {"number": 123, "state": "closed"}
    client.lock_issue.return_value = None
    return client
