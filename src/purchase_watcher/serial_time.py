"""Spreadsheet serial dates and civil moments without a calendar library.

Spreadsheets store date/time cells as a floating-point count of days where
day 0 is 1899-12-30 and the Unix epoch is day 25569. This module converts
those serial values (and plain Unix seconds) into :class:`Moment` values and
formats them as fixed-offset timestamps such as ``2021-11-16T10:10:00+00:00``.

Leap years follow the simplified rule "every fourth year from 1972". The
Gregorian 100/400-year exceptions are not applied, so results are only
correct between 1970 and 2099.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from enum import Enum

from purchase_watcher.errors import PreEpochError

SERIAL_EPOCH_OFFSET = 25569  # serial value of 1970-01-01
SECONDS_PER_DAY = 86400
SECONDS_PER_YEAR = 31536000  # 365 days
EPOCH_YEAR = 1970

UTC_OFFSET = "+00:00"
_OFFSET_PATTERN = re.compile(r"^(Z|[+-](?:[01]\d|2[0-3]):[0-5]\d)$")

# Last day-of-year of each month in a common year.
_MONTH_ENDS = (31, 59, 90, 120, 151, 181, 212, 243, 273, 304, 334, 365)


class DateTimePolicy(str, Enum):
    """How a time cell is merged with the date cell of the same row."""

    SUM = "sum"  # time-only fraction is added to its date
    REPLACE = "replace"  # a non-empty time cell replaces the date


def is_leap_year(year: int) -> bool:
    return (year - 1969) % 4 == 3


def extra_days(year: int) -> int:
    """Leap days accumulated between 1970 and the start of ``year``."""
    return (year - 1969) // 4


def year_from_seconds(seconds: int) -> int:
    approx = seconds // SECONDS_PER_YEAR + EPOCH_YEAR
    leap_days = extra_days(approx)
    return (seconds - leap_days * SECONDS_PER_DAY) // SECONDS_PER_YEAR + EPOCH_YEAR


def day_of_year(year: int, days_since_epoch: int) -> int:
    """Return the 1-based day of ``year`` for a day count since the epoch."""
    leap_years = extra_days(year)
    days_till_year = (year - EPOCH_YEAR - leap_years) * 365 + leap_years * 366
    return days_since_epoch - days_till_year + 1


def day_and_month(day_in_year: int, leap_year: bool) -> tuple[int, int]:
    """Map a day of the year to ``(day, month)``; ``(0, 0)`` when out of range."""
    if day_in_year < 1:
        return 0, 0
    if day_in_year <= _MONTH_ENDS[0]:
        return day_in_year, 1

    shift = 1 if leap_year else 0
    previous_end = _MONTH_ENDS[0]
    for month, month_end in enumerate(_MONTH_ENDS[1:], start=2):
        month_end += shift
        if day_in_year <= month_end:
            return day_in_year - previous_end, month
        previous_end = month_end
    return 0, 0


@dataclass(frozen=True, slots=True)
class Moment:
    """Civil date and time in a fixed offset, derived from seconds since epoch."""

    year: int
    month: int
    day: int
    hours: int
    minutes: int
    seconds: int
    is_leap_year: bool

    @classmethod
    def from_seconds(cls, seconds: int) -> "Moment":
        if seconds < 0:
            raise PreEpochError(f"{seconds} seconds is before the Unix epoch")

        year = year_from_seconds(seconds)
        leap = is_leap_year(year)
        days_since_epoch = seconds // SECONDS_PER_DAY
        day, month = day_and_month(day_of_year(year, days_since_epoch), leap)

        seconds_in_day = seconds - days_since_epoch * SECONDS_PER_DAY
        hours = seconds_in_day // 3600
        minutes = (seconds_in_day - hours * 3600) // 60
        return cls(
            year=year,
            month=month,
            day=day,
            hours=hours,
            minutes=minutes,
            seconds=seconds_in_day - hours * 3600 - minutes * 60,
            is_leap_year=leap,
        )

    @classmethod
    def from_timestamp(cls, timestamp: float) -> "Moment":
        """Build a moment from a Unix timestamp such as ``os.stat().st_mtime``."""
        return cls.from_seconds(int(timestamp))

    @classmethod
    def now(cls) -> "Moment":
        return cls.from_timestamp(time.time())

    def format(self, offset: str = UTC_OFFSET) -> str:
        """Return ``YYYY-MM-DDTHH:MM:SS`` followed by ``offset``."""
        validate_offset(offset)
        return (
            f"{self.year}-{self.month:02d}-{self.day:02d}"
            f"T{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}{offset}"
        )

    def __str__(self) -> str:
        return self.format()


def validate_offset(offset: str) -> str:
    if not _OFFSET_PATTERN.match(offset):
        raise ValueError(f"invalid timestamp offset: {offset!r}")
    return offset


def serial_to_seconds(serial: float) -> int:
    """Convert a serial day count into whole seconds since the Unix epoch."""
    if serial < SERIAL_EPOCH_OFFSET:
        raise PreEpochError(f"serial date {serial} is before the Unix epoch")
    return round((serial - SERIAL_EPOCH_OFFSET) * SECONDS_PER_DAY)


def serial_to_moment(serial: float) -> Moment:
    return Moment.from_seconds(serial_to_seconds(serial))


def serial_to_timestamp(serial: float, offset: str = UTC_OFFSET) -> str:
    """Format a serial date, or return ``""`` when the value is missing/pre-epoch."""
    try:
        moment = serial_to_moment(serial)
    except PreEpochError:
        return ""
    return moment.format(offset)


def today_serial(now: float | None = None) -> float:
    """Return the current (or given) Unix time as a serial day count."""
    current = time.time() if now is None else now
    return current / SECONDS_PER_DAY + SERIAL_EPOCH_OFFSET


def combine_date_time(
    date_serial: float,
    time_serial: float,
    policy: DateTimePolicy = DateTimePolicy.SUM,
) -> float:
    """Merge the serial values of a date cell and its paired time cell.

    With ``SUM`` a time value smaller than the date is a time-of-day fraction
    and is added to the date; a larger value already holds the full moment.
    With ``REPLACE`` any non-zero time value stands in for the date.
    """
    policy = DateTimePolicy(policy)
    if policy is DateTimePolicy.REPLACE:
        return time_serial if time_serial else date_serial
    if time_serial < date_serial:
        return date_serial + time_serial
    return time_serial


__all__ = [
    "DateTimePolicy",
    "Moment",
    "SERIAL_EPOCH_OFFSET",
    "UTC_OFFSET",
    "combine_date_time",
    "day_and_month",
    "day_of_year",
    "extra_days",
    "is_leap_year",
    "serial_to_moment",
    "serial_to_seconds",
    "serial_to_timestamp",
    "today_serial",
    "validate_offset",
    "year_from_seconds",
]
