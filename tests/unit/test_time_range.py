"""
Unit tests for duration and timestamp parsing
"""

from datetime import datetime, timedelta, timezone

import pytest

from log_hound.core.exceptions import InvalidInputError, ParseError
from log_hound.core.time_range import (
    TimeRange,
    parse_absolute_time,
    parse_docker_timestamp,
    parse_duration,
    parse_insights_timestamp,
    to_docker_since,
)


class TestParseDuration:
    """Test cases for parse_duration"""

    @pytest.mark.parametrize("text,expected", [
        ("30s", timedelta(seconds=30)),
        ("5m", timedelta(minutes=5)),
        ("1h", timedelta(hours=1)),
        ("2d", timedelta(days=2)),
        ("1w", timedelta(weeks=1)),
        ("1.5h", timedelta(minutes=90)),
        ("2hours", timedelta(hours=2)),
        ("10 mins", timedelta(minutes=10)),
        ("3days", timedelta(days=3)),
        ("45sec", timedelta(seconds=45)),
        ("1H", timedelta(hours=1)),
        ("  1h  ", timedelta(hours=1)),
    ])
    def test_single_component(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("combined,single", [
        ("1h30m", "90m"),
        ("2d12h", "60h"),
        ("1w2d", "9d"),
        ("1h 30m", "90m"),
    ])
    def test_components_are_summed(self, combined, single):
        assert parse_duration(combined) == parse_duration(single)

    @pytest.mark.parametrize("text", ["", "   ", "abc", "5x", "h", "1h30", "1month"])
    def test_invalid(self, text):
        with pytest.raises(ParseError) as exc_info:
            parse_duration(text)
        assert "Examples:" in exc_info.value.message


class TestParseAbsoluteTime:
    """Test cases for parse_absolute_time"""

    def test_rfc3339(self):
        assert parse_absolute_time("2026-01-23T05:36:05Z") == datetime(
            2026, 1, 23, 5, 36, 5, tzinfo=timezone.utc
        )

    def test_rfc3339_offset_converted_to_utc(self):
        assert parse_absolute_time("2026-01-23T14:36:05+09:00") == datetime(
            2026, 1, 23, 5, 36, 5, tzinfo=timezone.utc
        )

    def test_date_time(self):
        assert parse_absolute_time("2026-01-23 05:36:05") == datetime(
            2026, 1, 23, 5, 36, 5, tzinfo=timezone.utc
        )

    def test_date_hour_minute(self):
        assert parse_absolute_time("2026-01-23 05:36") == datetime(
            2026, 1, 23, 5, 36, tzinfo=timezone.utc
        )

    def test_date_only_is_midnight(self):
        assert parse_absolute_time("2026-01-23") == datetime(2026, 1, 23, tzinfo=timezone.utc)

    @pytest.mark.parametrize("text", ["", "yesterday", "23/01/2026", "2026-13-01"])
    def test_invalid(self, text):
        with pytest.raises(ParseError):
            parse_absolute_time(text)


class TestBackendTimestamps:
    """Test cases for backend timestamp formats"""

    def test_insights_timestamp(self):
        assert parse_insights_timestamp("2026-01-23 05:36:05.200") == datetime(
            2026, 1, 23, 5, 36, 5, 200000, tzinfo=timezone.utc
        )

    def test_insights_timestamp_without_fraction(self):
        assert parse_insights_timestamp("2026-01-23 05:36:05") == datetime(
            2026, 1, 23, 5, 36, 5, tzinfo=timezone.utc
        )

    def test_insights_timestamp_garbage(self):
        assert parse_insights_timestamp("not a time") is None
        assert parse_insights_timestamp("") is None

    def test_docker_nanoseconds(self):
        parsed = parse_docker_timestamp("2026-01-31T12:34:56.789012345Z")
        assert parsed == datetime(2026, 1, 31, 12, 34, 56, 789012, tzinfo=timezone.utc)

    def test_docker_without_fraction(self):
        assert parse_docker_timestamp("2026-01-31T12:34:56Z") == datetime(
            2026, 1, 31, 12, 34, 56, tzinfo=timezone.utc
        )

    def test_docker_garbage(self):
        assert parse_docker_timestamp("hello") is None

    def test_to_docker_since(self):
        moment = datetime(2026, 1, 23, 14, 36, 5, 123, tzinfo=timezone(timedelta(hours=9)))
        assert to_docker_since(moment) == "2026-01-23T05:36:05Z"


class TestTimeRange:
    """Test cases for TimeRange"""

    def test_from_relative(self):
        now = datetime(2026, 1, 23, 6, 0, tzinfo=timezone.utc)
        window = TimeRange.from_relative("1h30m", now=now)
        assert window.end == now
        assert window.start == datetime(2026, 1, 23, 4, 30, tzinfo=timezone.utc)

    def test_from_explicit_defaults_end_to_now(self):
        now = datetime(2026, 1, 23, 6, 0, tzinfo=timezone.utc)
        window = TimeRange.from_explicit("2026-01-23", now=now)
        assert window.start == datetime(2026, 1, 23, tzinfo=timezone.utc)
        assert window.end == now

    def test_end_before_start_rejected(self):
        with pytest.raises(InvalidInputError):
            TimeRange.from_explicit("2026-01-23 06:00", "2026-01-23 05:00")
