"""Unit tests for timestamp utilities."""

from datetime import datetime, timedelta, timezone

from common_lib.timestamps import format_feed_timestamp, parse_feed_timestamp, utc_now


class TestFormatFeedTimestamp:
    """Test format_feed_timestamp function."""

    def test_millisecond_precision_with_z_suffix(self):
        dt = datetime(2025, 11, 18, 10, 30, 0, 123456, tzinfo=timezone.utc)
        assert format_feed_timestamp(dt) == "2025-11-18T10:30:00.123Z"

    def test_naive_datetime_treated_as_utc(self):
        assert format_feed_timestamp(datetime(2025, 11, 18, 10, 30)) == "2025-11-18T10:30:00.000Z"

    def test_other_offsets_converted_to_utc(self):
        kst = timezone(timedelta(hours=9))
        dt = datetime(2025, 11, 18, 19, 30, tzinfo=kst)
        assert format_feed_timestamp(dt) == "2025-11-18T10:30:00.000Z"


class TestParseFeedTimestamp:
    """Test parse_feed_timestamp function."""

    def test_naive_feed_string_is_utc(self):
        result = parse_feed_timestamp("2024-01-15T10:15:07.577")
        assert result == datetime(2024, 1, 15, 10, 15, 7, 577000, tzinfo=timezone.utc)

    def test_z_suffix(self):
        result = parse_feed_timestamp("2024-01-15T10:15:07.577Z")
        assert result.tzinfo is not None
        assert result.utcoffset() == timedelta(0)

    def test_naive_datetime_gets_utc(self):
        result = parse_feed_timestamp(datetime(2024, 1, 15))
        assert result.tzinfo == timezone.utc

    def test_none_and_empty(self):
        assert parse_feed_timestamp(None) is None
        assert parse_feed_timestamp("") is None

    def test_invalid_values(self):
        assert parse_feed_timestamp("yesterday") is None
        assert parse_feed_timestamp(12345) is None

    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is not None
