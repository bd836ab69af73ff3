"""GitHub API client using httpx.

Covers the issue operations used by alert escalation: comments, issue
creation, labels, state changes and locking. Workflow runs are short-lived
and single-threaded, so the client is synchronous.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Protocol

import httpx

from curator_guard.config import ConfigError, Settings, get_settings
from curator_guard.logging import get_logger

log = get_logger("curator_guard.github.client")

GITHUB_API_BASE = "https://api.github.com"
DEFAULT_TIMEOUT = 30.0


class GitHubAPIError(Exception):
    """Base exception for GitHub API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response or {}


class GitHubAuthError(GitHubAPIError):
    """Authentication failed."""


class GitHubNotFoundError(GitHubAPIError):
    """Resource not found."""


class GitHubRateLimitError(GitHubAPIError):
    """Rate limit exceeded."""

    def __init__(
        self,
        message: str,
        reset_at: int | None = None,
        remaining: int = 0,
    ):
        super().__init__(message, status_code=403)
        self.reset_at = reset_at
        self.remaining = remaining


class GitHubValidationError(GitHubAPIError):
    """Validation error (422)."""


@dataclass
class RateLimitInfo:
    """Rate limit information from GitHub API."""

    limit: int
    remaining: int
    reset_at: int  # Unix timestamp
    used: int


class IssueTracker(Protocol):
    """Issue operations consumed by alert escalation."""

    def add_comment(self, owner: str, repo: str, issue_number: int, body: str) -> Any: ...

    def create_issue(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str = "",
        labels: list[str] | None = None,
    ) -> Any: ...

    def add_labels(self, owner: str, repo: str, issue_number: int, labels: list[str]) -> Any: ...

    def update_issue(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        state: str | None = None,
        labels: list[str] | None = None,
    ) -> Any: ...

    def lock_issue(
        self, owner: str, repo: str, issue_number: int, lock_reason: str | None = None
    ) -> Any: ...


def _error_payload(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {"message": response.text}
    return data if isinstance(data, dict) else {"message": response.text}


class GitHubClient:
    """Synchronous GitHub API client.

    Usable as a context manager; the underlying connection pool is closed on
    exit.
    """

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub token (``GITHUB_TOKEN`` in Actions).
            base_url: GitHub API base URL (for enterprise).
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, mainly for tests.
        """
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None
        self._rate_limit: RateLimitInfo | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> GitHubClient:
        """Build a client from process settings.

        Raises:
            ConfigError: No GitHub token is configured.
        """
        settings = settings or get_settings()
        if settings.github_token is None:
            raise ConfigError(
                "CURATOR_GUARD_GITHUB_TOKEN is not set; a token is required to act on issues."
            )
        return cls(
            token=settings.github_token.get_secret_value(),
            timeout=float(settings.github_api_timeout),
        )

    @property
    def rate_limit(self) -> RateLimitInfo | None:
        """Get the last known rate limit info."""
        return self._rate_limit

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _update_rate_limit(self, headers: httpx.Headers) -> None:
        """Update rate limit info from response headers."""
        if "x-ratelimit-limit" not in headers:
            return
        with contextlib.suppress(ValueError, TypeError):
            self._rate_limit = RateLimitInfo(
                limit=int(headers.get("x-ratelimit-limit", 0)),
                remaining=int(headers.get("x-ratelimit-remaining", 0)),
                reset_at=int(headers.get("x-ratelimit-reset", 0)),
                used=int(headers.get("x-ratelimit-used", 0)),
            )

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Make a request to the GitHub API.

        Args:
            method: HTTP method.
            path: API path (without base URL).
            params: Query parameters.
            json: JSON body for POST/PUT/PATCH.

        Returns:
            Parsed JSON response, or ``{}`` for empty responses.

        Raises:
            GitHubAuthError: Authentication failed.
            GitHubNotFoundError: Resource not found.
            GitHubRateLimitError: Rate limit exceeded.
            GitHubValidationError: Validation error.
            GitHubAPIError: Other API errors.
        """
        client = self._get_client()

        try:
            response = client.request(method=method, url=path, params=params, json=json)
        except httpx.RequestError as e:
            log.error("github_request_failed", path=path, error=str(e))
            raise GitHubAPIError(f"Request failed: {e}") from e

        self._update_rate_limit(response.headers)

        if response.status_code == 401:
            raise GitHubAuthError("Authentication failed", status_code=401)

        if response.status_code == 403:
            if "rate limit" in response.text.lower():
                raise GitHubRateLimitError(
                    "Rate limit exceeded",
                    reset_at=self._rate_limit.reset_at if self._rate_limit else None,
                    remaining=0,
                )
            raise GitHubAPIError(f"Forbidden: {response.text}", status_code=403)

        if response.status_code == 404:
            raise GitHubNotFoundError("Resource not found", status_code=404)

        if response.status_code == 422:
            error_data = _error_payload(response)
            raise GitHubValidationError(
                error_data.get("message", "Validation failed"),
                status_code=422,
                response=error_data,
            )

        if response.status_code >= 400:
            error_data = _error_payload(response)
            raise GitHubAPIError(
                error_data.get("message", f"HTTP {response.status_code}"),
                status_code=response.status_code,
                response=error_data,
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            result: dict[str, Any] | list[dict[str, Any]] = response.json()
        except ValueError:
            return {}
        return result

    # ========== Issues ==========

    def create_issue(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str = "",
        labels: list[str] | None = None,
    ) -> dict[str, Any]:
        """Create a new issue.

        Args:
            owner: Repository owner.
            repo: Repository name.
            title: Issue title.
            body: Issue body.
            labels: Labels to apply.

        Returns:
            The created issue as returned by the API.
        """
        payload: dict[str, Any] = {"title": title}
        if body:
            payload["body"] = body
        if labels:
            payload["labels"] = labels

        data = self._request("POST", f"/repos/{owner}/{repo}/issues", json=payload)
        if isinstance(data, dict):
            log.info("issue_created", repo=f"{owner}/{repo}", number=data.get("number"))
            return data
        raise GitHubAPIError("Unexpected response format")

    def update_issue(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        state: str | None = None,
        labels: list[str] | None = None,
    ) -> dict[str, Any]:
        """Update an issue's state and/or labels.

        Args:
            owner: Repository owner.
            repo: Repository name.
            issue_number: Issue number.
            state: ``open`` or ``closed``.
            labels: Labels to set (replaces existing).

        Returns:
            The updated issue.
        """
        payload: dict[str, Any] = {}
        if state is not None:
            payload["state"] = state
        if labels is not None:
            payload["labels"] = labels

        data = self._request(
            "PATCH", f"/repos/{owner}/{repo}/issues/{issue_number}", json=payload
        )
        if isinstance(data, dict):
            log.info("issue_updated", repo=f"{owner}/{repo}", number=issue_number)
            return data
        raise GitHubAPIError("Unexpected response format")

    def close_issue(self, owner: str, repo: str, issue_number: int) -> dict[str, Any]:
        return self.update_issue(owner, repo, issue_number, state="closed")

    def add_labels(
        self, owner: str, repo: str, issue_number: int, labels: list[str]
    ) -> list[dict[str, Any]]:
        """Add labels to an issue.

        Returns:
            The issue's labels after adding.
        """
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/labels",
            json={"labels": labels},
        )
        if isinstance(data, list):
            log.info("labels_added", repo=f"{owner}/{repo}", issue=issue_number, labels=labels)
            return data
        return []

    def add_comment(
        self, owner: str, repo: str, issue_number: int, body: str
    ) -> dict[str, Any]:
        """Add a comment to an issue or PR.

        Returns:
            The created comment.
        """
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json={"body": body},
        )
        if isinstance(data, dict):
            log.info("comment_added", repo=f"{owner}/{repo}", issue=issue_number)
            return data
        return {}

    def lock_issue(
        self, owner: str, repo: str, issue_number: int, lock_reason: str | None = None
    ) -> None:
        """Lock an issue's conversation.

        Args:
            lock_reason: One of ``off-topic``, ``too heated``, ``resolved``, ``spam``.
        """
        payload = {"lock_reason": lock_reason} if lock_reason else None
        self._request("PUT", f"/repos/{owner}/{repo}/issues/{issue_number}/lock", json=payload)
        log.info("issue_locked", repo=f"{owner}/{repo}", issue=issue_number, reason=lock_reason)
