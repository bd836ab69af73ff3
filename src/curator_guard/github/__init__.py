"""GitHub issue-tracker integration."""

from curator_guard.github.client import (
    GitHubAPIError,
    GitHubAuthError,
    GitHubClient,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubValidationError,
    IssueTracker,
    RateLimitInfo,
)

__all__ = [
    "GitHubAPIError",
    "GitHubAuthError",
    "GitHubClient",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    "GitHubValidationError",
    "IssueTracker",
    "RateLimitInfo",
]
