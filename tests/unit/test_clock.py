"""Unit tests for the application clock."""

from datetime import datetime, timedelta, timezone

import pytest

from usage_tally.models.date_range import DateRange
from usage_tally.models.enums import Granularity
from usage_tally.utils.clock import ApplicationClock, InvalidRangeError, month_id


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestCurrentTime:
    """Tests for now-relative boundaries."""

    def test_fixed_clock_returns_moment(self):
        clock = ApplicationClock.fixed(utc(2026, 3, 10, 12, 30))
        assert clock.now() == utc(2026, 3, 10, 12, 30)

    def test_naive_moment_is_treated_as_utc(self):
        clock = ApplicationClock.fixed(datetime(2026, 3, 10, 12, 30))
        assert clock.now().tzinfo is not None
        assert clock.now() == utc(2026, 3, 10, 12, 30)

    def test_current_hour_boundaries(self):
        clock = ApplicationClock.fixed(utc(2026, 3, 10, 12, 30, 15))
        assert clock.start_of_current_hour() == utc(2026, 3, 10, 12)
        assert clock.end_of_current_hour() == utc(2026, 3, 10, 13)

    def test_current_quarter_boundaries(self):
        clock = ApplicationClock.fixed(utc(2026, 11, 5))
        assert clock.start_of_current_quarter() == utc(2026, 10, 1)
        assert clock.end_of_current_quarter() == utc(2027, 1, 1)

    def test_default_clock_is_utc(self):
        assert ApplicationClock().now().utcoffset() == timedelta(0)


class TestPeriodBoundaries:
    """Tests for start_of / end_of per granularity."""

    @pytest.mark.parametrize(
        "granularity,start,end",
        [
            (Granularity.HOURLY, utc(2026, 3, 11, 14), utc(2026, 3, 11, 15)),
            (Granularity.DAILY, utc(2026, 3, 11), utc(2026, 3, 12)),
            # 2026-03-11 is a Wednesday; weeks start on Sunday
            (Granularity.WEEKLY, utc(2026, 3, 8), utc(2026, 3, 15)),
            (Granularity.MONTHLY, utc(2026, 3, 1), utc(2026, 4, 1)),
            (Granularity.QUARTERLY, utc(2026, 1, 1), utc(2026, 4, 1)),
            (Granularity.YEARLY, utc(2026, 1, 1), utc(2027, 1, 1)),
        ],
    )
    def test_start_and_end(self, granularity, start, end):
        clock = ApplicationClock()
        moment = utc(2026, 3, 11, 14, 45, 12)
        assert clock.start_of(granularity, moment) == start
        assert clock.end_of(granularity, moment) == end

    def test_week_of_a_sunday_starts_that_day(self):
        clock = ApplicationClock()
        assert clock.start_of_week(utc(2026, 3, 15, 8)) == utc(2026, 3, 15)

    def test_month_end_rolls_over_year(self):
        clock = ApplicationClock()
        assert clock.end_of(Granularity.MONTHLY, utc(2026, 12, 31, 23)) == utc(2027, 1, 1)

    def test_quarter_start(self):
        clock = ApplicationClock()
        assert clock.start_of_quarter(utc(2026, 6, 30, 23)) == utc(2026, 4, 1)
        assert clock.start_of_quarter(utc(2026, 7, 1)) == utc(2026, 7, 1)

    def test_offset_input_is_normalized_to_utc(self):
        clock = ApplicationClock()
        plus_two = timezone(timedelta(hours=2))
        moment = datetime(2026, 3, 1, 1, 30, tzinfo=plus_two)
        assert clock.start_of_day(moment) == utc(2026, 2, 28)


class TestHourlyRanges:
    """Tests for hour alignment checks and iteration."""

    def test_aligned_range_is_hourly(self):
        clock = ApplicationClock()
        assert clock.is_hourly_range(DateRange(start=utc(2026, 3, 1, 1), end=utc(2026, 3, 1, 3)))

    def test_unaligned_range_raises(self):
        clock = ApplicationClock()
        date_range = DateRange(start=utc(2026, 3, 1, 1, 5), end=utc(2026, 3, 1, 3))
        assert not clock.is_hourly_range(date_range)
        with pytest.raises(InvalidRangeError, match="top of the hour"):
            clock.validate_hourly_range(date_range)

    def test_invalid_range_error_is_value_error(self):
        assert issubclass(InvalidRangeError, ValueError)

    def test_hours_in_range(self):
        clock = ApplicationClock()
        hours = list(clock.hours_in(DateRange(start=utc(2026, 3, 1, 22), end=utc(2026, 3, 2, 1))))
        assert hours == [utc(2026, 3, 1, 22), utc(2026, 3, 1, 23), utc(2026, 3, 2, 0)]

    def test_empty_range_has_no_hours(self):
        clock = ApplicationClock()
        moment = utc(2026, 3, 1, 22)
        assert list(clock.hours_in(DateRange(start=moment, end=moment))) == []

    def test_month_starts_between(self):
        clock = ApplicationClock()
        months = list(clock.month_starts_between(utc(2026, 1, 15), utc(2026, 3, 1)))
        assert months == [utc(2026, 1, 1), utc(2026, 2, 1)]

    def test_month_id(self):
        assert month_id(utc(2026, 3, 31, 23, 59)) == "2026-03"


class TestDateRange:
    """Tests for the DateRange model."""

    def test_end_before_start_rejected(self):
        with pytest.raises(ValueError):
            DateRange(start=utc(2026, 3, 2), end=utc(2026, 3, 1))

    def test_contains_is_half_open(self):
        date_range = DateRange(start=utc(2026, 3, 1), end=utc(2026, 3, 2))
        assert date_range.contains(utc(2026, 3, 1))
        assert not date_range.contains(utc(2026, 3, 2))

    def test_str(self):
        date_range = DateRange(start=utc(2026, 3, 1), end=utc(2026, 3, 2))
        assert str(date_range) == "[2026-03-01T00:00:00+00:00 -> 2026-03-02T00:00:00+00:00)"
