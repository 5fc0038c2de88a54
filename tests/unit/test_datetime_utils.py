"""
Unit tests for datetime utilities.
"""

from datetime import date, datetime, time, timezone

import pytest

from utils.datetime_utils import (
    combine_local,
    ensure_aware,
    format_datetime,
    format_time,
    get_timezone,
    parse_date_string,
    to_utc,
    utc_now,
)


class TestTimezones:

    def test_utc_does_not_need_tz_database(self):
        assert get_timezone("UTC") is timezone.utc
        assert get_timezone("utc") is timezone.utc

    def test_unknown_timezone(self):
        with pytest.raises(ValueError):
            get_timezone("Not/AZone")

    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is not None


class TestConversions:

    def test_ensure_aware(self):
        naive = datetime(2024, 1, 15, 10, 0)
        assert ensure_aware(naive) == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert ensure_aware(None) is None

    def test_to_utc_with_local_timezone(self):
        kolkata = get_timezone("Asia/Kolkata")
        result = to_utc(datetime(2024, 1, 15, 10, 0), kolkata)
        assert result == datetime(2024, 1, 15, 4, 30, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc

    def test_combine_local(self):
        result = combine_local(date(2024, 1, 15), time(9, 30), timezone.utc)
        assert result == datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)


class TestFormatting:

    @pytest.mark.parametrize("dt,expected", [
        (datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc), "Mon 15 Jan 2024, 10:00 AM"),
        (datetime(2024, 1, 15, 0, 5, tzinfo=timezone.utc), "Mon 15 Jan 2024, 12:05 AM"),
        (datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc), "Mon 15 Jan 2024, 12:00 PM"),
        (datetime(2024, 1, 15, 23, 45, tzinfo=timezone.utc), "Mon 15 Jan 2024, 11:45 PM"),
    ])
    def test_format_datetime(self, dt, expected):
        assert format_datetime(dt) == expected

    def test_format_datetime_in_clinic_timezone(self):
        dt = datetime(2024, 1, 15, 20, 0, tzinfo=timezone.utc)
        assert format_datetime(dt, get_timezone("Asia/Kolkata")) == "Tue 16 Jan 2024, 1:30 AM"

    def test_format_time(self):
        assert format_time(time(9, 5)) == "09:05"

    def test_parse_date_string(self):
        assert parse_date_string("2024-01-15") == date(2024, 1, 15)
        with pytest.raises(ValueError):
            parse_date_string("15/01/2024")
