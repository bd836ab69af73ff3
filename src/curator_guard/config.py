"""Configuration management for curator-guard.

Two layers live here:

- :class:`Settings` holds process settings (paths, log level, GitHub token)
  read from environment variables and ``.env``.
- :class:`SecurityConfig` holds the abuse-defense policy read from
  ``config/security.json``. It is resolved fresh at every call site and falls
  back to :data:`DEFAULT_SECURITY_CONFIG` when the file is absent or broken.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from curator_guard.security.models import RateLimitScope


class ConfigError(Exception):
    """Base exception for configuration problems."""


class SecurityConfigError(ConfigError):
    """A required security configuration file is missing or invalid."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class Settings(BaseSettings):
    """Process settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CURATOR_GUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Storage
    data_dir: str = Field(
        default="data", description="Directory holding rate-limit state and security logs"
    )
    config_path: str = Field(
        default="config/security.json", description="Path to the security policy file"
    )

    # GitHub
    github_token: SecretStr | None = Field(
        default=None, description="Token used for issue comments, labels and locks"
    )
    github_repository: str | None = Field(
        default=None, description="Repository in owner/repo format"
    )
    github_api_timeout: int = Field(
        default=30, description="Timeout in seconds for GitHub API requests"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate the log level name."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got: {v}")
        return v.upper()

    @field_validator("github_repository")
    @classmethod
    def validate_github_repository(cls, v: str | None) -> str | None:
        """Validate owner/repo format."""
        if v is None or not v.strip():
            return None
        parts = v.strip().split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"github_repository must be in owner/repo format, got: {v}")
        return v.strip()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def security_logs_dir(self) -> Path:
        """Directory for day-partitioned attempt and event logs."""
        return Path(self.data_dir) / "security-logs"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# ---------------------------------------------------------------------------
# Security policy
# ---------------------------------------------------------------------------


class _PolicyModel(BaseModel):
    """Base for policy sections: camelCase on disk, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RateLimitConfig(_PolicyModel):
    """Quota for one rate-limit scope."""

    max_attempts: int = Field(alias="maxAttempts", gt=0)
    window_minutes: int = Field(alias="windowMinutes", gt=0)

    @property
    def window_ms(self) -> int:
        return self.window_minutes * 60 * 1000


class RateLimitsConfig(_PolicyModel):
    per_user: RateLimitConfig = Field(alias="perUser")
    per_repo: RateLimitConfig = Field(alias="perRepo")


class AlertingConfig(_PolicyModel):
    enabled: bool
    create_issue: bool = Field(alias="createIssue")
    comment_on_source: bool = Field(alias="commentOnSource")
    webhook_url: str | None = Field(default=None, alias="webhookUrl")

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: str | None) -> str | None:
        """Accept only absolute http(s) URLs."""
        if v is None:
            return None
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"webhookUrl must be an http(s) URL, got: {v}")
        return v


class LoggingConfig(_PolicyModel):
    enabled: bool
    retention_days: int = Field(alias="retentionDays", gt=0)


class SecurityConfig(_PolicyModel):
    """Abuse-defense policy. All four sections are required."""

    rate_limits: RateLimitsConfig = Field(alias="rateLimits")
    alerting: AlertingConfig
    logging: LoggingConfig

    def to_json_dict(self) -> dict[str, object]:
        """Serialize with the on-disk camelCase keys."""
        return self.model_dump(by_alias=True)


DEFAULT_SECURITY_CONFIG = SecurityConfig(
    rate_limits=RateLimitsConfig(
        per_user=RateLimitConfig(max_attempts=5, window_minutes=60),
        per_repo=RateLimitConfig(max_attempts=20, window_minutes=1440),
    ),
    alerting=AlertingConfig(
        enabled=True,
        create_issue=True,
        comment_on_source=True,
        webhook_url=None,
    ),
    logging=LoggingConfig(enabled=True, retention_days=30),
)


def _default_config_path() -> Path:
    return Path(get_settings().config_path)


def has_security_config(path: str | Path | None = None) -> bool:
    """Check whether the security policy file exists."""
    config_path = Path(path) if path is not None else _default_config_path()
    return config_path.is_file()


def load_security_config(path: str | Path | None = None) -> SecurityConfig:
    """Load the security policy, failing loudly.

    Use this where a policy file is expected to exist (deploy checks, tooling
    that edits the policy). Workflow code paths should call
    :func:`resolve_security_config` instead.

    Raises:
        SecurityConfigError: The file is missing, unreadable, not JSON, or
            fails validation.
    """
    config_path = Path(path) if path is not None else _default_config_path()
    if not config_path.is_file():
        raise SecurityConfigError(
            f"Security config not found at {config_path}. "
            "Create it or unset the path to use the built-in defaults.",
            path=config_path,
        )
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise SecurityConfigError(
            f"Could not read security config {config_path}: {e}", path=config_path
        ) from e
    except UnicodeDecodeError as e:
        raise SecurityConfigError(
            f"Security config {config_path} is not valid UTF-8: {e}", path=config_path
        ) from e
    except json.JSONDecodeError as e:
        raise SecurityConfigError(
            f"Security config {config_path} is not valid JSON "
            f"(line {e.lineno}, column {e.colno}): {e.msg}",
            path=config_path,
        ) from e

    try:
        return SecurityConfig.model_validate(raw)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise SecurityConfigError(
            f"Security config {config_path} is invalid: {problems}", path=config_path
        ) from e


def resolve_security_config(
    override: SecurityConfig | None = None,
    path: str | Path | None = None,
) -> SecurityConfig:
    """Resolve the effective security policy for one call site.

    Never raises and never caches. An explicit ``override`` wins; otherwise the
    policy file is read fresh. A missing file silently yields the defaults, a
    broken one yields the defaults with a warning.
    """
    if override is not None:
        return override

    config_path = Path(path) if path is not None else _default_config_path()
    if not config_path.is_file():
        return DEFAULT_SECURITY_CONFIG.model_copy(deep=True)

    try:
        return load_security_config(config_path)
    except SecurityConfigError as e:
        # Imported lazily: logging setup reads Settings from this module.
        from curator_guard.logging import get_logger

        get_logger("curator_guard.config").warning(
            "security_config_invalid_using_defaults",
            path=str(config_path),
            error=str(e),
        )
        return DEFAULT_SECURITY_CONFIG.model_copy(deep=True)


def rate_limit_for(config: SecurityConfig, scope: RateLimitScope | str) -> RateLimitConfig:
    """Select the quota that applies to a rate-limit scope."""
    if str(scope) == "user":
        return config.rate_limits.per_user
    if str(scope) == "repo":
        return config.rate_limits.per_repo
    raise ValueError(f"Unknown rate-limit scope: {scope}")
