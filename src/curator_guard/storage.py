"""Day-partitioned JSON-lines storage.

Attempt records and security events are kept in files named
``<prefix>-YYYY-MM-DD.<suffix>`` under one directory, one JSON object per
line. Files are only ever appended to and are removed whole by retention
cleanup, which looks at the date in the file name alone.
"""

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import Any

from curator_guard.logging import get_logger

log = get_logger("curator_guard.storage")


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


def date_key(value: date | datetime) -> str:
    """Return the ``YYYY-MM-DD`` partition key for a date or datetime.

    Aware datetimes are converted to UTC first; naive ones are taken as UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date().isoformat()
    return value.isoformat()


@dataclass(frozen=True)
class DayPartition:
    """A family of day files sharing a prefix and suffix."""

    directory: Path
    prefix: str
    suffix: str

    @property
    def _pattern(self) -> re.Pattern[str]:
        return re.compile(
            rf"^{re.escape(self.prefix)}-(\d{{4}}-\d{{2}}-\d{{2}})\.{re.escape(self.suffix)}$"
        )

    def path_for(self, day: date | datetime) -> Path:
        return self.directory / f"{self.prefix}-{date_key(day)}.{self.suffix}"

    def files(self) -> list[tuple[str, Path]]:
        """Return ``(date, path)`` pairs sorted by date."""
        if not self.directory.is_dir():
            return []
        found: list[tuple[str, Path]] = []
        for path in self.directory.iterdir():
            match = self._pattern.match(path.name)
            if match:
                found.append((match.group(1), path))
        return sorted(found)

    def append(self, record: dict[str, Any], day: date | datetime | None = None) -> bool:
        """Append one record to the file for *day* (today by default).

        Returns ``False`` when the write failed; the failure is logged.
        """
        path = self.path_for(day or utc_now())
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(record, separators=(",", ":")) + "\n")
        except OSError as e:
            log.error("day_file_write_failed", path=str(path), error=str(e))
            return False
        return True

    def read(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
    ) -> Iterator[tuple[Path, int, Any]]:
        """Yield ``(path, line_number, parsed_json)`` for files dated in [start, end].

        Both bounds are inclusive and compared as date strings; *end* defaults
        to today. Lines that are not valid UTF-8 JSON are skipped with a warning, and
        an unreadable file is skipped with an error.
        """
        start_key = date_key(start) if start is not None else None
        end_key = date_key(end if end is not None else utc_now())

        for file_date, path in self.files():
            if start_key is not None and file_date < start_key:
                continue
            if file_date > end_key:
                continue
            try:
                lines = path.read_bytes().splitlines()
            except OSError as e:
                log.error("day_file_read_failed", path=str(path), error=str(e))
                continue
            for line_number, raw in enumerate(lines, start=1):
                if not raw.strip():
                    continue
                # Decoded per line so one bad byte only costs its own record
                try:
                    record = json.loads(raw.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    log.warning(
                        "day_file_line_malformed",
                        path=str(path),
                        line=line_number,
                        error=str(e),
                    )
                    continue
                yield path, line_number, record

    def delete_older_than(self, retention_days: int, now: datetime | None = None) -> int:
        """Delete files dated strictly before ``now - retention_days``.

        Returns the number of files removed.
        """
        cutoff = date_key((now or utc_now()) - timedelta(days=retention_days))
        deleted = 0
        for file_date, path in self.files():
            if file_date >= cutoff:
                continue
            try:
                path.unlink()
            except OSError as e:
                log.error("day_file_delete_failed", path=str(path), error=str(e))
                continue
            deleted += 1
        return deleted
