"""
Unit tests for time range utilities
"""

import pytest
from datetime import date, datetime, timedelta, timezone

from bookwell.services.time_ranges import (
    duration_matches, local_to_utc, month_bounds, opening_window, parse_datetime,
    ranges_overlap, to_local, to_utc_naive, within_working_hours
)


def dt(hour, minute=0, day=11):
    return datetime(2030, 3, day, hour, minute)


class TestRangesOverlap:
    """Half-open interval overlap"""

    def test_overlapping_ranges(self):
        assert ranges_overlap(dt(10), dt(10, 30), dt(10, 15), dt(10, 45)) is True

    def test_contained_range(self):
        assert ranges_overlap(dt(10), dt(12), dt(10, 30), dt(11)) is True

    def test_touching_endpoints_do_not_overlap(self):
        assert ranges_overlap(dt(10), dt(10, 30), dt(10, 30), dt(11)) is False
        assert ranges_overlap(dt(10, 30), dt(11), dt(10), dt(10, 30)) is False

    def test_disjoint_ranges(self):
        assert ranges_overlap(dt(9), dt(9, 30), dt(14), dt(14, 30)) is False


class TestWithinWorkingHours:
    """Working hours containment with fail-open configuration"""

    @pytest.mark.parametrize("hours", [
        None,
        {},
        {"start": "09:00"},
        {"end": "18:00"},
        {"start": "bad", "end": "18:00"},
        {"start": "09:00", "end": 1800},
        "09:00-18:00",
    ])
    def test_unconfigured_or_malformed_hours_allow_booking(self, hours):
        """Missing or unparsable hours never block"""
        assert within_working_hours(dt(3), dt(3, 30), hours) is True

    def test_inside_hours(self):
        hours = {"start": "09:00", "end": "18:00"}
        assert within_working_hours(dt(9), dt(9, 30), hours) is True
        assert within_working_hours(dt(17, 30), dt(18), hours) is True

    def test_starts_before_opening(self):
        hours = {"start": "09:00", "end": "18:00"}
        assert within_working_hours(dt(8, 45), dt(9, 15), hours) is False

    def test_ends_after_closing(self):
        hours = {"start": "09:00", "end": "18:00"}
        assert within_working_hours(dt(17, 45), dt(18, 15), hours) is False

    def test_compares_minutes_not_just_hours(self):
        hours = {"start": "09:30", "end": "18:00"}
        assert within_working_hours(dt(9, 15), dt(9, 45), hours) is False
        assert within_working_hours(dt(9, 30), dt(10), hours) is True


class TestDurationMatches:
    """Duration tolerance is inclusive"""

    def test_exact_duration(self):
        assert duration_matches(30, dt(10), dt(10, 30)) is True

    def test_within_tolerance(self):
        assert duration_matches(30, dt(10), dt(10, 35)) is True
        assert duration_matches(30, dt(10), dt(10, 25)) is True

    def test_ten_minutes_over_is_rejected(self):
        assert duration_matches(30, dt(10), dt(10, 40)) is False

    def test_custom_tolerance(self):
        assert duration_matches(30, dt(10), dt(10, 35), tolerance_minutes=0) is False


class TestDatetimeHelpers:

    def test_aware_datetime_converted_to_naive_utc(self):
        aware = datetime(2030, 3, 11, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_utc_naive(aware) == datetime(2030, 3, 11, 10, 0)

    def test_naive_datetime_kept(self):
        assert to_utc_naive(dt(10)) == dt(10)

    def test_parse_iso_string_with_z(self):
        assert parse_datetime("2030-03-11T10:00:00Z") == dt(10)

    def test_parse_rejects_garbage(self):
        assert parse_datetime("tomorrow-ish") is None
        assert parse_datetime("") is None
        assert parse_datetime(None) is None

    def test_to_local_uses_tenant_timezone(self):
        local = to_local(dt(10), "America/Argentina/Buenos_Aires")
        assert local.hour == 7

    def test_to_local_unknown_zone_falls_back_to_utc(self):
        assert to_local(dt(10), "Mars/Olympus").hour == 10

    def test_local_to_utc(self):
        assert local_to_utc(date(2030, 3, 11), 9 * 60, "America/Argentina/Buenos_Aires") == dt(12)
        assert local_to_utc(date(2030, 3, 11), 9 * 60, None) == dt(9)

    def test_local_to_utc_across_dst_change(self):
        # Madrid moves to summer time on 2030-03-31
        assert local_to_utc(date(2030, 3, 30), 9 * 60, "Europe/Madrid") == datetime(2030, 3, 30, 8, 0)
        assert local_to_utc(date(2030, 3, 31), 9 * 60, "Europe/Madrid") == datetime(2030, 3, 31, 7, 0)

    def test_opening_window(self):
        assert opening_window({"start": "09:00", "end": "18:30"}) == (540, 1110)
        assert opening_window({"start": "09:00"}) is None
        assert opening_window("9 to 5") is None

    def test_month_bounds(self):
        assert month_bounds(dt(10, day=11)) == (datetime(2030, 3, 1), datetime(2030, 4, 1))
        assert month_bounds(datetime(2030, 12, 31, 23)) == (datetime(2030, 12, 1), datetime(2031, 1, 1))
