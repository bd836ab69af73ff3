"""Tests for day-partitioned JSON-lines storage."""

from datetime import UTC, date, datetime, timedelta, timezone

from curator_guard.storage import DayPartition, date_key


class TestDateKey:
    """Tests for date_key."""

    def test_date(self):
        assert date_key(date(2026, 1, 2)) == "2026-01-02"

    def test_aware_datetime_converted_to_utc(self):
        """Test a late-evening non-UTC time lands on the next UTC day."""
        value = datetime(2026, 1, 2, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        assert date_key(value) == "2026-01-03"

    def test_naive_datetime(self):
        assert date_key(datetime(2026, 1, 2, 23, 30)) == "2026-01-02"


class TestDayPartition:
    """Tests for DayPartition."""

    def test_path_for(self, tmp_path):
        partition = DayPartition(tmp_path, "injections", "jsonl")
        assert partition.path_for(date(2026, 3, 1)).name == "injections-2026-03-01.jsonl"

    def test_append_creates_directory(self, tmp_path):
        """Test the directory is created on first write."""
        partition = DayPartition(tmp_path / "nested" / "logs", "security", "log")
        assert partition.append({"a": 1}, day=date(2026, 3, 1)) is True
        assert (tmp_path / "nested" / "logs" / "security-2026-03-01.log").read_text() == (
            '{"a":1}\n'
        )

    def test_append_failure_returns_false(self, tmp_path):
        """Test an unwritable directory is reported, not raised."""
        blocker = tmp_path / "file"
        blocker.write_text("x")
        partition = DayPartition(blocker, "security", "log")
        assert partition.append({"a": 1}) is False

    def test_files_ignores_other_names(self, tmp_path):
        """Test only matching names are listed, sorted by date."""
        for name in (
            "injections-2026-03-02.jsonl",
            "injections-2026-03-01.jsonl",
            "injections-latest.jsonl",
            "security-2026-03-01.log",
            "injections-2026-03-01.jsonl.bak",
        ):
            (tmp_path / name).write_text("")
        partition = DayPartition(tmp_path, "injections", "jsonl")
        assert [d for d, _ in partition.files()] == ["2026-03-01", "2026-03-02"]

    def test_files_missing_directory(self, tmp_path):
        assert DayPartition(tmp_path / "absent", "x", "log").files() == []

    def test_read_bounds_inclusive(self, tmp_path):
        """Test both bounds include their whole day."""
        partition = DayPartition(tmp_path, "injections", "jsonl")
        for day in (1, 2, 3, 4):
            partition.append({"day": day}, day=date(2026, 3, day))

        records = [
            data
            for _, _, data in partition.read(
                datetime(2026, 3, 2, 23, 59, tzinfo=UTC), datetime(2026, 3, 3, 0, 1, tzinfo=UTC)
            )
        ]
        assert records == [{"day": 2}, {"day": 3}]

    def test_read_skips_malformed_lines(self, tmp_path):
        """Test a bad line does not stop the rest of the file."""
        (tmp_path / "injections-2026-03-01.jsonl").write_text('{"n":1}\nnot json\n\n{"n":2}\n')
        partition = DayPartition(tmp_path, "injections", "jsonl")
        rows = list(partition.read(end=date(2026, 3, 1)))
        assert [(line, data) for _, line, data in rows] == [(1, {"n": 1}), (4, {"n": 2})]

    def test_read_skips_invalid_utf8_lines(self, tmp_path):
        """Test a line with undecodable bytes is skipped like any malformed line."""
        (tmp_path / "injections-2026-03-01.jsonl").write_bytes(
            b'{"n":1}\n{"bad": "\xff\xfe"}\n{"n":2}\n'
        )
        partition = DayPartition(tmp_path, "injections", "jsonl")
        rows = list(partition.read(end=date(2026, 3, 1)))
        assert [(line, data) for _, line, data in rows] == [(1, {"n": 1}), (3, {"n": 2})]

    def test_delete_older_than(self, tmp_path):
        """Test only files strictly before the cutoff are removed."""
        partition = DayPartition(tmp_path, "security", "log")
        now = datetime(2026, 3, 31, 12, tzinfo=UTC)
        for day in (date(2026, 2, 28), date(2026, 3, 1), date(2026, 3, 2)):
            partition.append({}, day=day)

        assert partition.delete_older_than(30, now=now) == 1
        assert [d for d, _ in partition.files()] == ["2026-03-01", "2026-03-02"]
