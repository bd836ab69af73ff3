"""Validators for structured values taken from untrusted input.

GitHub URLs, repository names and file paths are accepted only in a narrow
canonical form. Every function is pure and reports failure through its
return value.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote, urlparse

_GITHUB_PREFIX = "https://github.com/"
_OWNER_PATTERN = re.compile(r"[A-Za-z0-9_-]+")
_REPO_PATTERN = re.compile(r"[A-Za-z0-9._-]+")
_PERCENT_ESCAPE = re.compile(r"%[0-9A-Fa-f]{2}")
_BROKEN_PERCENT_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_GITHUB_URL_IN_TEXT = re.compile(r"https://github\.com/[^\s)>]+")

_REPO_NAME_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,100}")
_FILE_PATH_PATTERN = re.compile(r"[A-Za-z0-9./_-]+")

# Substrings that make a name read like an instruction to the model
REPO_NAME_DENY_LIST = ("ignore", "system", "prompt", "instruction", "override", "bypass", "admin")
FILE_NAME_DENY_LIST = ("ignore", "bypass", "override", "admin", "system")


@dataclass(frozen=True)
class GitHubUrlValidationResult:
    """Outcome of :func:`validate_github_url`."""

    is_valid: bool
    url: str | None
    reason: str | None = None


@dataclass(frozen=True)
class ExtractedUrl:
    """A GitHub URL found in free text together with its validation result."""

    url: str
    is_valid: bool
    sanitized: str | None


def _invalid(reason: str) -> GitHubUrlValidationResult:
    return GitHubUrlValidationResult(is_valid=False, url=None, reason=reason)


def validate_github_url(url: Any) -> GitHubUrlValidationResult:
    """Validate a GitHub repository URL.

    Only the first whitespace-delimited token is considered, so trailing
    prose (or an injection attempt) after the URL is dropped. The URL must be
    ``https://github.com/<owner>/<repo>`` optionally followed by more path, a
    query or a fragment.

    Percent-encoded input is decoded; if decoding changes it, the decoded form
    is rejected when it contains ``..`` or a ``//`` after the scheme, and is
    otherwise validated again from the top.
    """
    if not isinstance(url, str) or not url:
        return _invalid("URL must be a non-empty string")

    tokens = url.split()
    if not tokens:
        return _invalid("URL is empty after trimming")
    cleaned = tokens[0]

    if not cleaned.startswith("https://"):
        return _invalid("Only HTTPS GitHub URLs are allowed")
    if not cleaned.startswith(_GITHUB_PREFIX):
        return _invalid("Invalid GitHub domain")

    segments = cleaned[len(_GITHUB_PREFIX) :].split("/")
    if len(segments) < 2 or not segments[0] or not segments[1]:
        return _invalid("Invalid GitHub URL format - must include owner/repo")

    owner, repo = segments[0], segments[1]
    if not _OWNER_PATTERN.fullmatch(owner):
        return _invalid("Invalid GitHub owner name")
    if not _REPO_PATTERN.fullmatch(re.split(r"[?#]", repo, maxsplit=1)[0]):
        return _invalid("Invalid GitHub repo name")

    if _PERCENT_ESCAPE.search(cleaned):
        if _BROKEN_PERCENT_ESCAPE.search(cleaned):
            return _invalid("Invalid URL encoding detected")
        try:
            decoded = unquote(cleaned, errors="strict")
        except UnicodeDecodeError:
            return _invalid("Invalid URL encoding detected")
        if decoded != cleaned:
            after_scheme = decoded[len("https://") :] if decoded.startswith("https://") else decoded
            if ".." in decoded or "//" in after_scheme:
                return _invalid("Suspicious URL encoding detected")
            return validate_github_url(decoded)

    return GitHubUrlValidationResult(is_valid=True, url=cleaned)


def sanitize_github_url(url: Any) -> str | None:
    """Return the canonical URL, or ``None`` when it is not acceptable."""
    return validate_github_url(url).url


def is_valid_github_url(url: Any) -> bool:
    return validate_github_url(url).is_valid


def extract_repo_info(url: str) -> tuple[str, str] | None:
    """Split a GitHub URL into ``(owner, repo)``.

    The URL is not validated here; run :func:`validate_github_url` first.
    """
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    parts = [part for part in path.split("/") if part]
    if len(parts) < 2:
        return None
    return parts[0], parts[1]


def filter_valid_github_urls(urls: Iterable[str]) -> list[str]:
    """Keep the URLs that validate, as originally written."""
    return [url for url in urls if is_valid_github_url(url)]


def extract_github_urls(text: str) -> list[ExtractedUrl]:
    """Find every GitHub URL in *text* and validate each one."""
    found: list[ExtractedUrl] = []
    for match in _GITHUB_URL_IN_TEXT.finditer(text or ""):
        result = validate_github_url(match.group(0))
        found.append(
            ExtractedUrl(url=match.group(0), is_valid=result.is_valid, sanitized=result.url)
        )
    return found


def sanitize_repo_name(name: Any) -> str | None:
    """Validate a repository name.

    Returns the trimmed name, or ``None`` if it has unsafe characters, is
    longer than 100 characters, starts with ``.`` or ``-``, contains ``..``,
    or contains a deny-listed word.
    """
    if not isinstance(name, str) or not name:
        return None
    cleaned = name.strip()
    if not _REPO_NAME_PATTERN.fullmatch(cleaned):
        return None
    if ".." in cleaned or cleaned.startswith((".", "-")):
        return None
    lowered = cleaned.lower()
    if any(word in lowered for word in REPO_NAME_DENY_LIST):
        return None
    return cleaned


def sanitize_file_path(path: Any, allowed_prefix: str) -> str | None:
    """Validate a repository file path against an allowed prefix.

    Paths under a ``docs/`` prefix must be markdown files. The final segment
    may not contain a deny-listed word.
    """
    if not isinstance(path, str) or not path:
        return None
    cleaned = path.strip()
    if not cleaned.startswith(allowed_prefix):
        return None
    if ".." in cleaned:
        return None
    if not _FILE_PATH_PATTERN.fullmatch(cleaned):
        return None
    if "docs/" in allowed_prefix and not cleaned.endswith(".md"):
        return None
    filename = cleaned.rsplit("/", 1)[-1].lower()
    if any(word in filename for word in FILE_NAME_DENY_LIST):
        return None
    return cleaned
