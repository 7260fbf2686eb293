# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Canonical period boundaries for tally collection and rollups.

All values are timezone-aware UTC datetimes. Period ends are exclusive:
``end_of(granularity, dt)`` is the start of the following period.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

from ..models.date_range import DateRange
from ..models.enums import Granularity


class InvalidRangeError(ValueError):
    """Raised when a collection range is not aligned to the top of the hour."""

    pass


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _add_months(moment: datetime, months: int) -> datetime:
    """Shift a first-of-month datetime by a number of months."""
    month_index = moment.month - 1 + months
    return moment.replace(year=moment.year + month_index // 12, month=month_index % 12 + 1)


class ApplicationClock:
    """
    Supplies "now" and period boundaries.

    Args:
        now_fn: Callable returning the current time. Tests pass a fixed
                clock; defaults to the system clock in UTC.
    """

    def __init__(self, now_fn: Optional[Callable[[], datetime]] = None):
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    @classmethod
    def fixed(cls, moment: datetime) -> "ApplicationClock":
        fixed_moment = _utc(moment)
        return cls(lambda: fixed_moment)

    def now(self) -> datetime:
        return _utc(self._now_fn())

    def start_of_hour(self, moment: datetime) -> datetime:
        return _utc(moment).replace(minute=0, second=0, microsecond=0)

    def start_of_current_hour(self) -> datetime:
        return self.start_of_hour(self.now())

    def end_of_current_hour(self) -> datetime:
        return self.start_of_current_hour() + timedelta(hours=1)

    def start_of_day(self, moment: datetime) -> datetime:
        return self.start_of_hour(moment).replace(hour=0)

    def start_of_week(self, moment: datetime) -> datetime:
        # Weeks start on Sunday
        day = self.start_of_day(moment)
        return day - timedelta(days=(day.weekday() + 1) % 7)

    def start_of_month(self, moment: datetime) -> datetime:
        return self.start_of_day(moment).replace(day=1)

    def start_of_quarter(self, moment: datetime) -> datetime:
        month_start = self.start_of_month(moment)
        return month_start.replace(month=((month_start.month - 1) // 3) * 3 + 1)

    def start_of_year(self, moment: datetime) -> datetime:
        return self.start_of_month(moment).replace(month=1)

    def start_of(self, granularity: Granularity, moment: datetime) -> datetime:
        """Start of the ``granularity`` period containing ``moment``."""
        if granularity == Granularity.HOURLY:
            return self.start_of_hour(moment)
        if granularity == Granularity.DAILY:
            return self.start_of_day(moment)
        if granularity == Granularity.WEEKLY:
            return self.start_of_week(moment)
        if granularity == Granularity.MONTHLY:
            return self.start_of_month(moment)
        if granularity == Granularity.QUARTERLY:
            return self.start_of_quarter(moment)
        if granularity == Granularity.YEARLY:
            return self.start_of_year(moment)
        raise ValueError(f"Unsupported granularity: {granularity}")

    def end_of(self, granularity: Granularity, moment: datetime) -> datetime:
        """Exclusive end of the ``granularity`` period containing ``moment``."""
        start = self.start_of(granularity, moment)
        if granularity == Granularity.HOURLY:
            return start + timedelta(hours=1)
        if granularity == Granularity.DAILY:
            return start + timedelta(days=1)
        if granularity == Granularity.WEEKLY:
            return start + timedelta(weeks=1)
        if granularity == Granularity.MONTHLY:
            return _add_months(start, 1)
        if granularity == Granularity.QUARTERLY:
            return _add_months(start, 3)
        return _add_months(start, 12)

    def start_of_current_quarter(self) -> datetime:
        return self.start_of_quarter(self.now())

    def end_of_current_quarter(self) -> datetime:
        return self.end_of(Granularity.QUARTERLY, self.now())

    def is_hourly_range(self, date_range: DateRange) -> bool:
        """True when both ends sit exactly on the top of an hour."""
        return all(
            moment == self.start_of_hour(moment)
            for moment in (_utc(date_range.start), _utc(date_range.end))
        )

    def validate_hourly_range(self, date_range: DateRange) -> None:
        if not self.is_hourly_range(date_range):
            raise InvalidRangeError(
                "Start and end dates must be at the top of the hour: "
                f"[{date_range.start_string} -> {date_range.end_string}]"
            )

    def hours_in(self, date_range: DateRange) -> Iterator[datetime]:
        """Yield every hour start in ``[start, end)``."""
        offset = self.start_of_hour(date_range.start)
        end = _utc(date_range.end)
        while offset < end:
            yield offset
            offset += timedelta(hours=1)

    def month_starts_between(self, start: datetime, end: datetime) -> Iterator[datetime]:
        """Yield the start of every month touched by ``[start, end)``."""
        month = self.start_of_month(start)
        end = _utc(end)
        while month < end:
            yield month
            month = _add_months(month, 1)


def month_id(moment: datetime) -> str:
    """Identifier of the month containing ``moment`` (e.g. ``"2026-03"``)."""
    moment = _utc(moment)
    return f"{moment.year:04d}-{moment.month:02d}"
