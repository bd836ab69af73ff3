"""Tests for settings and security policy loading."""

import json

import pytest
from pydantic import ValidationError

from curator_guard.config import (
    DEFAULT_SECURITY_CONFIG,
    SecurityConfig,
    SecurityConfigError,
    Settings,
    get_settings,
    has_security_config,
    load_security_config,
    rate_limit_for,
    resolve_security_config,
)
from curator_guard.security.models import RateLimitScope

VALID_POLICY = {
    "rateLimits": {
        "perUser": {"maxAttempts": 3, "windowMinutes": 10},
        "perRepo": {"maxAttempts": 50, "windowMinutes": 60},
    },
    "alerting": {"enabled": False, "createIssue": False, "commentOnSource": True},
    "logging": {"enabled": True, "retentionDays": 7},
}


@pytest.fixture
def policy_file(tmp_path):
    """Write a policy file and return its path."""

    def _write(content) -> str:
        path = tmp_path / "security.json"
        path.write_text(content if isinstance(content, str) else json.dumps(content))
        return path

    return _write


class TestSettings:
    """Tests for environment-driven Settings."""

    def test_defaults(self, monkeypatch):
        """Test defaults when nothing is set."""
        monkeypatch.delenv("CURATOR_GUARD_DATA_DIR", raising=False)
        settings = Settings(_env_file=None)
        assert settings.data_dir == "data"
        assert settings.log_level == "INFO"
        assert settings.github_token is None
        assert settings.is_development is False

    def test_env_prefix(self, monkeypatch, tmp_path):
        """Test values are read from CURATOR_GUARD_* variables."""
        monkeypatch.setenv("CURATOR_GUARD_GITHUB_TOKEN", "ghp_test")
        monkeypatch.setenv("CURATOR_GUARD_ENVIRONMENT", "development")
        settings = Settings(_env_file=None)
        assert settings.github_token.get_secret_value() == "ghp_test"
        assert settings.is_development is True
        assert settings.data_dir == str(tmp_path / "data")

    def test_security_logs_dir(self):
        """Test logs live under the data dir."""
        settings = Settings(_env_file=None, data_dir="/var/curator")
        assert str(settings.security_logs_dir) == "/var/curator/security-logs"

    def test_log_level_normalized(self):
        """Test log level is upper-cased."""
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        """Test unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="LOUD")

    def test_github_repository_format(self):
        """Test owner/repo validation."""
        assert Settings(_env_file=None, github_repository="o/r").github_repository == "o/r"
        assert Settings(_env_file=None, github_repository="  ").github_repository is None
        with pytest.raises(ValidationError):
            Settings(_env_file=None, github_repository="not-a-repo")

    def test_get_settings_cached(self):
        """Test get_settings returns the same instance until cleared."""
        assert get_settings() is get_settings()


class TestSecurityConfigModel:
    """Tests for the SecurityConfig pydantic model."""

    def test_defaults(self):
        """Test the built-in policy values."""
        assert DEFAULT_SECURITY_CONFIG.rate_limits.per_user.max_attempts == 5
        assert DEFAULT_SECURITY_CONFIG.rate_limits.per_user.window_minutes == 60
        assert DEFAULT_SECURITY_CONFIG.rate_limits.per_repo.max_attempts == 20
        assert DEFAULT_SECURITY_CONFIG.rate_limits.per_repo.window_minutes == 1440
        assert DEFAULT_SECURITY_CONFIG.alerting.enabled is True
        assert DEFAULT_SECURITY_CONFIG.logging.retention_days == 30

    def test_camel_case_round_trip(self):
        """Test on-disk keys are camelCase."""
        config = SecurityConfig.model_validate(VALID_POLICY)
        dumped = config.to_json_dict()
        assert dumped["rateLimits"]["perUser"]["maxAttempts"] == 3
        assert dumped["logging"]["retentionDays"] == 7

    def test_window_ms(self):
        """Test window conversion to milliseconds."""
        assert DEFAULT_SECURITY_CONFIG.rate_limits.per_user.window_ms == 3_600_000

    def test_rejects_non_positive_quota(self):
        """Test zero attempts is invalid."""
        bad = json.loads(json.dumps(VALID_POLICY))
        bad["rateLimits"]["perUser"]["maxAttempts"] = 0
        with pytest.raises(ValidationError):
            SecurityConfig.model_validate(bad)

    def test_rejects_bad_webhook(self):
        """Test webhook URLs must be http(s)."""
        bad = json.loads(json.dumps(VALID_POLICY))
        bad["alerting"]["webhookUrl"] = "ftp://example.com/hook"
        with pytest.raises(ValidationError):
            SecurityConfig.model_validate(bad)

    def test_rate_limit_for(self):
        """Test scope selection."""
        assert rate_limit_for(DEFAULT_SECURITY_CONFIG, RateLimitScope.USER).max_attempts == 5
        assert rate_limit_for(DEFAULT_SECURITY_CONFIG, "repo").max_attempts == 20
        with pytest.raises(ValueError):
            rate_limit_for(DEFAULT_SECURITY_CONFIG, "org")


class TestLoadSecurityConfig:
    """Tests for strict loading."""

    def test_load_valid(self, policy_file):
        """Test a valid file loads."""
        config = load_security_config(policy_file(VALID_POLICY))
        assert config.rate_limits.per_user.max_attempts == 3
        assert config.alerting.create_issue is False

    def test_missing_file_raises(self, tmp_path):
        """Test a missing file is an actionable error."""
        with pytest.raises(SecurityConfigError) as exc_info:
            load_security_config(tmp_path / "nope.json")
        assert "not found" in str(exc_info.value)
        assert exc_info.value.path == tmp_path / "nope.json"

    def test_invalid_json_raises(self, policy_file):
        """Test malformed JSON reports position."""
        with pytest.raises(SecurityConfigError) as exc_info:
            load_security_config(policy_file("{not json"))
        assert "not valid JSON" in str(exc_info.value)

    def test_invalid_utf8_raises(self, tmp_path):
        """Test undecodable bytes are reported as a config error."""
        path = tmp_path / "security.json"
        path.write_bytes(b"\xff\xfe{}")
        with pytest.raises(SecurityConfigError) as exc_info:
            load_security_config(path)
        assert "not valid UTF-8" in str(exc_info.value)

    def test_missing_section_raises(self, policy_file):
        """Test a missing section names the field."""
        incomplete = {k: v for k, v in VALID_POLICY.items() if k != "logging"}
        with pytest.raises(SecurityConfigError) as exc_info:
            load_security_config(policy_file(incomplete))
        assert "logging" in str(exc_info.value)

    def test_has_security_config(self, policy_file, tmp_path):
        """Test existence check."""
        assert has_security_config(policy_file(VALID_POLICY)) is True
        assert has_security_config(tmp_path / "absent.json") is False


class TestResolveSecurityConfig:
    """Tests for the never-raising resolver."""

    def test_override_wins(self, policy_file):
        """Test an explicit override is returned as-is."""
        override = SecurityConfig.model_validate(VALID_POLICY)
        assert resolve_security_config(override, policy_file("{}")) is override

    def test_missing_file_defaults(self, tmp_path):
        """Test absence falls back to defaults."""
        config = resolve_security_config(path=tmp_path / "absent.json")
        assert config == DEFAULT_SECURITY_CONFIG
        assert config is not DEFAULT_SECURITY_CONFIG

    def test_invalid_file_defaults(self, policy_file):
        """Test a broken file falls back to defaults instead of raising."""
        config = resolve_security_config(path=policy_file('{"rateLimits": 1}'))
        assert config == DEFAULT_SECURITY_CONFIG

    def test_undecodable_file_defaults(self, tmp_path):
        """Test a file that is not UTF-8 falls back to defaults."""
        path = tmp_path / "security.json"
        path.write_bytes(b"\xff\xfe{}")
        assert resolve_security_config(path=path) == DEFAULT_SECURITY_CONFIG

    def test_reads_configured_path(self, tmp_path):
        """Test the Settings config path is used when no path is given."""
        path = tmp_path / "config" / "security.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps(VALID_POLICY))
        assert resolve_security_config().rate_limits.per_user.max_attempts == 3

    def test_not_cached(self, tmp_path):
        """Test edits to the file are seen on the next call."""
        path = tmp_path / "config" / "security.json"
        path.parent.mkdir(parents=True)
        assert resolve_security_config().rate_limits.per_user.max_attempts == 5
        path.write_text(json.dumps(VALID_POLICY))
        assert resolve_security_config().rate_limits.per_user.max_attempts == 3
