"""Abuse-defense package: injection detection, tracking and rate limiting.

Public API
----------
- :func:`detect_injection`, :func:`classify_injection`, :func:`sanitize_text`
  for pattern-based detection and redaction
- :func:`validate_github_url`, :func:`sanitize_repo_name`,
  :func:`sanitize_file_path` for structured input validators
- :class:`SafePromptBuilder` for prompt assembly with trust boundaries
- :class:`InjectionTracker` for the day-partitioned attempt log
- :class:`RateLimiter` for per-user / per-repo fixed-window quotas
"""

from curator_guard.security.data_validation import (
    ValidationResult,
    validate_data_file,
    validate_records,
)
from curator_guard.security.models import (
    InjectionAttempt,
    InjectionPattern,
    RateLimitEntry,
    RateLimitResult,
    RateLimitScope,
    WorkflowType,
)
from curator_guard.security.prompt_builder import (
    PromptBuildError,
    SafePromptBuilder,
    create_safe_prompt,
    safe_template_replace,
)
from curator_guard.security.rate_limiter import RateLimiter
from curator_guard.security.sanitizer import (
    classify_injection,
    detect_injection,
    extract_issue_number,
    primary_pattern,
    sanitize_json_data,
    sanitize_text,
)
from curator_guard.security.tracker import InjectionTracker, build_attempt, content_fingerprint
from curator_guard.security.validators import (
    ExtractedUrl,
    GitHubUrlValidationResult,
    extract_github_urls,
    extract_repo_info,
    filter_valid_github_urls,
    is_valid_github_url,
    sanitize_file_path,
    sanitize_github_url,
    sanitize_repo_name,
    validate_github_url,
)

__all__ = [
    "ExtractedUrl",
    "GitHubUrlValidationResult",
    "InjectionAttempt",
    "InjectionPattern",
    "InjectionTracker",
    "PromptBuildError",
    "RateLimitEntry",
    "RateLimitResult",
    "RateLimitScope",
    "RateLimiter",
    "SafePromptBuilder",
    "ValidationResult",
    "WorkflowType",
    "build_attempt",
    "classify_injection",
    "content_fingerprint",
    "create_safe_prompt",
    "detect_injection",
    "extract_github_urls",
    "extract_issue_number",
    "extract_repo_info",
    "filter_valid_github_urls",
    "is_valid_github_url",
    "primary_pattern",
    "safe_template_replace",
    "sanitize_file_path",
    "sanitize_github_url",
    "sanitize_json_data",
    "sanitize_repo_name",
    "sanitize_text",
    "validate_data_file",
    "validate_github_url",
    "validate_records",
]
