"""Unit tests for timestamp utilities."""

from datetime import datetime, timedelta, timezone

from notifier.utils.timestamps import (
    ensure_utc,
    format_timestamp,
    parse_iso_datetime,
    utc_now,
)


class TestUtcNow:
    """Tests for utc_now function."""

    def test_utc_now_returns_utc_datetime(self):
        """Test that utc_now returns a timezone-aware datetime in UTC."""
        before = datetime.now(timezone.utc)
        now = utc_now()
        after = datetime.now(timezone.utc)

        assert now.tzinfo == timezone.utc
        assert before <= now <= after


class TestEnsureUtc:
    """Tests for ensure_utc function."""

    def test_ensure_utc_with_none(self):
        assert ensure_utc(None) is None

    def test_ensure_utc_with_naive_datetime(self):
        """Test that naive datetime is treated as UTC."""
        result = ensure_utc(datetime(2024, 12, 20, 10, 0, 0))

        assert result.tzinfo == timezone.utc
        assert result.hour == 10

    def test_ensure_utc_with_other_timezone(self):
        """Test that datetime with other timezone is converted to UTC."""
        pacific = timezone(timedelta(hours=-8))

        result = ensure_utc(datetime(2024, 12, 20, 10, 0, 0, tzinfo=pacific))

        assert result.tzinfo == timezone.utc
        assert result.hour == 18


class TestFormatTimestamp:
    """Tests for the storage representation."""

    def test_format_timestamp_basic(self):
        dt = datetime(2024, 12, 20, 10, 0, 0, tzinfo=timezone.utc)

        assert format_timestamp(dt) == "2024-12-20T10:00:00.000000Z"

    def test_format_timestamp_converts_to_utc(self):
        pacific = timezone(timedelta(hours=-8))
        dt = datetime(2024, 12, 20, 10, 0, 0, 250000, tzinfo=pacific)

        assert format_timestamp(dt) == "2024-12-20T18:00:00.250000Z"

    def test_format_timestamp_none(self):
        assert format_timestamp(None) is None

    def test_string_order_matches_time_order(self):
        """Test fixed width keeps lexical and chronological order aligned."""
        base = datetime(2024, 12, 20, 9, 59, 59, 999999, tzinfo=timezone.utc)
        moments = [base, base + timedelta(microseconds=1), base + timedelta(days=30)]

        formatted = [format_timestamp(m) for m in moments]

        assert formatted == sorted(formatted)
        assert len({len(f) for f in formatted}) == 1


class TestParseIsoDatetime:
    """Tests for parse_iso_datetime function."""

    def test_parses_storage_format(self):
        dt = datetime(2024, 12, 20, 10, 0, 0, 123456, tzinfo=timezone.utc)

        assert parse_iso_datetime(format_timestamp(dt)) == dt

    def test_parse_with_utc_offset(self):
        result = parse_iso_datetime("2024-12-20T10:00:00+00:00")

        assert result == datetime(2024, 12, 20, 10, 0, 0, tzinfo=timezone.utc)

    def test_parse_without_timezone(self):
        """Test parsing ISO datetime without timezone (treated as UTC)."""
        result = parse_iso_datetime("2024-12-20T10:00:00")

        assert result.tzinfo == timezone.utc

    def test_parse_date_only(self):
        result = parse_iso_datetime("2024-12-20")

        assert result == datetime(2024, 12, 20, tzinfo=timezone.utc)

    def test_empty_and_invalid_return_none(self):
        assert parse_iso_datetime(None) is None
        assert parse_iso_datetime("   ") is None
        assert parse_iso_datetime("not a date") is None
        assert parse_iso_datetime("2024/12/20") is None
