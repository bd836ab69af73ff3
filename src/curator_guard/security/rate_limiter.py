"""Fixed-window rate limiting backed by per-scope JSON state files.

State for each scope lives in ``<data_dir>/<scope>.rate-limit.json`` as an
object mapping entity ids to :class:`RateLimitEntry` records. Every
read-modify-write holds an exclusive ``flock`` on a sidecar ``.lock`` file and
replaces the state file atomically, so concurrent workflow runs cannot lose
each other's increments.

A window is anchored at its first attempt and only resets lazily, on the next
access after it has elapsed.
"""

from __future__ import annotations

import fcntl
import json
import os
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from curator_guard.config import (
    RateLimitConfig,
    SecurityConfig,
    get_settings,
    rate_limit_for,
    resolve_security_config,
)
from curator_guard.logging import get_logger
from curator_guard.security.models import RateLimitEntry, RateLimitResult, RateLimitScope

log = get_logger("curator_guard.security.rate_limiter")

_State = dict[str, RateLimitEntry]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _iso_from_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=UTC).isoformat()


class RateLimiter:
    """Per-entity quota enforcement for the ``user`` and ``repo`` scopes."""

    def __init__(
        self,
        data_dir: str | Path | None = None,
        config: SecurityConfig | None = None,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            data_dir: Directory holding the state files. Defaults to the
                configured data directory.
            config: Policy override. When omitted the policy file is read
                fresh on every operation.
        """
        self._data_dir = Path(data_dir) if data_dir is not None else Path(get_settings().data_dir)
        self._config = config

    def state_path(self, scope: RateLimitScope | str) -> Path:
        return self._data_dir / f"{RateLimitScope(scope).value}.rate-limit.json"

    def _quota(self, scope: RateLimitScope | str) -> RateLimitConfig:
        return rate_limit_for(resolve_security_config(self._config), RateLimitScope(scope))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self, scope: RateLimitScope | str) -> Iterator[None]:
        """Hold an exclusive lock on the scope's state for the block's duration.

        If the lock cannot be taken the block still runs unlocked and the
        failure is logged.
        """
        lock_path = self.state_path(scope).with_suffix(".lock")
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            lock_file = lock_path.open("a")
        except OSError as e:
            log.error("rate_limit_lock_unavailable", path=str(lock_path), error=str(e))
            yield
            return
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            lock_file.close()

    def _load(self, scope: RateLimitScope | str) -> _State:
        """Read a scope's state; unreadable or corrupt state counts as empty."""
        path = self.state_path(scope)
        if not path.is_file():
            return {}
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            log.warning("rate_limit_state_unreadable", path=str(path), error=str(e))
            return {}
        if not isinstance(raw, dict):
            log.warning("rate_limit_state_unreadable", path=str(path), error="not a JSON object")
            return {}

        state: _State = {}
        for entity_id, data in raw.items():
            try:
                state[entity_id] = RateLimitEntry.from_dict(data)
            except ValueError as e:
                log.warning(
                    "rate_limit_entry_invalid", path=str(path), entity=entity_id, error=str(e)
                )
        return state

    def _save(self, scope: RateLimitScope | str, state: _State) -> None:
        """Atomically replace a scope's state. Failures are logged, not raised."""
        path = self.state_path(scope)
        payload = json.dumps({k: v.to_dict() for k, v in state.items()}, indent=2)
        tmp_name: str | None = None
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._data_dir, prefix=f".{path.name}.")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            log.error("rate_limit_state_write_failed", path=str(path), error=str(e))
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def check(
        self,
        entity_id: str,
        scope: RateLimitScope | str,
        config: RateLimitConfig | None = None,
    ) -> RateLimitResult:
        """Charge one attempt against the entity's quota if it has room.

        An expired window is reset before evaluation. A refused check leaves
        the stored state untouched.

        Args:
            entity_id: User login or repository name.
            scope: Which quota applies.
            config: Quota override for this call.

        Returns:
            The outcome, with ``remaining`` computed after any increment.
        """
        quota = config or self._quota(scope)
        window_ms = quota.window_ms

        with self._locked(scope):
            state = self._load(scope)
            now = _now_ms()

            entry = state.get(entity_id)
            if entry is None or entry.is_expired(now, window_ms):
                entry = RateLimitEntry(attempts=0, first_attempt=now, last_attempt=now)

            allowed = entry.attempts < quota.max_attempts
            if allowed:
                entry.attempts += 1
                entry.last_attempt = now
                state[entity_id] = entry
                self._save(scope, state)

        result = RateLimitResult(
            allowed=allowed,
            remaining=max(0, quota.max_attempts - entry.attempts),
            reset_at=_iso_from_ms(entry.first_attempt + window_ms),
            blocked=entry.attempts >= quota.max_attempts,
        )
        if not allowed:
            log.warning(
                "rate_limit_exceeded",
                entity=entity_id,
                scope=str(scope),
                attempts=entry.attempts,
                max_attempts=quota.max_attempts,
                reset_at=result.reset_at,
            )
        return result

    def record(self, entity_id: str, scope: RateLimitScope | str) -> None:
        """Count one attempt unconditionally, without evaluating the quota."""
        with self._locked(scope):
            state = self._load(scope)
            now = _now_ms()
            entry = state.get(entity_id)
            if entry is None:
                state[entity_id] = RateLimitEntry(attempts=1, first_attempt=now, last_attempt=now)
            else:
                entry.attempts += 1
                entry.last_attempt = now
            self._save(scope, state)

    def is_blocked(self, entity_id: str, scope: RateLimitScope | str) -> bool:
        """Whether the entity has used up its quota in an unexpired window."""
        quota = self._quota(scope)
        entry = self._load(scope).get(entity_id)
        if entry is None or entry.is_expired(_now_ms(), quota.window_ms):
            return False
        return entry.attempts >= quota.max_attempts

    def reset(self, entity_id: str, scope: RateLimitScope | str) -> None:
        """Forget the entity's counter."""
        with self._locked(scope):
            state = self._load(scope)
            if state.pop(entity_id, None) is not None:
                self._save(scope, state)
                log.info("rate_limit_reset", entity=entity_id, scope=str(scope))

    def get_status(self, entity_id: str, scope: RateLimitScope | str) -> RateLimitEntry | None:
        return self._load(scope).get(entity_id)

    def tracked_entities(self, scope: RateLimitScope | str) -> list[str]:
        return list(self._load(scope))

    def cleanup_expired_entries(self, scope: RateLimitScope | str) -> int:
        """Drop every entry whose window has elapsed.

        Returns:
            Number of entries removed.
        """
        window_ms = self._quota(scope).window_ms
        with self._locked(scope):
            state = self._load(scope)
            now = _now_ms()
            expired = [k for k, entry in state.items() if entry.is_expired(now, window_ms)]
            for entity_id in expired:
                del state[entity_id]
            if expired:
                self._save(scope, state)
        return len(expired)
