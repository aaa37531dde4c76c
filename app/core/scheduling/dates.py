"""Date helpers shared by the calculator, resolver and descriptor translator.

Weekdays are Sunday-based throughout the engine: 0=Sunday ... 6=Saturday.
"""

import calendar
import re
from datetime import date, datetime, time, timedelta
from typing import AbstractSet, Optional, Union
from zoneinfo import ZoneInfo

SUNDAY, MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY = range(7)

WEEKDAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")

# Longest run of consecutive months missing a given day is 1 (e.g. day 31
# after July/August never repeats), so a year of lookahead always suffices.
_MAX_MONTH_LOOKAHEAD = 12


def weekday_of(day: date) -> int:
    """Sunday-based weekday number of a date."""
    return (day.weekday() + 1) % 7


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_has_day(year: int, month: int, day_of_month: int) -> bool:
    """Check whether a month contains the given day of month."""
    return 1 <= day_of_month <= days_in_month(year, month)


def add_months(year: int, month: int, count: int) -> tuple[int, int]:
    """Shift a (year, month) pair by ``count`` months."""
    index = year * 12 + (month - 1) + count
    return index // 12, index % 12 + 1


def next_weekday_on_or_after(start: date, days_of_week: AbstractSet[int]) -> date:
    """Nearest date on or after ``start`` whose weekday is in the set.

    Scans the seven weekday offsets once and keeps the smallest.
    """
    current = weekday_of(start)
    deltas = [(day - current) % 7 for day in days_of_week]
    return start + timedelta(days=min(deltas))


def next_month_day_on_or_after(start: date, day_of_month: int) -> Optional[date]:
    """Nearest date on or after ``start`` falling on ``day_of_month``.

    Months that lack the day are skipped, never clamped to their last day.
    """
    year, month = start.year, start.month
    if start.day <= day_of_month and month_has_day(year, month, day_of_month):
        return date(year, month, day_of_month)

    for offset in range(1, _MAX_MONTH_LOOKAHEAD + 1):
        y, m = add_months(year, month, offset)
        if month_has_day(y, m, day_of_month):
            return date(y, m, day_of_month)
    return None


def get_zone(tz: Union[str, ZoneInfo]) -> ZoneInfo:
    """Resolve a timezone name to a ZoneInfo."""
    if isinstance(tz, ZoneInfo):
        return tz
    return ZoneInfo(tz)


def to_local(moment: datetime, tz: ZoneInfo) -> datetime:
    """Express a datetime in the engine's zone.

    Naive datetimes are taken to already be local wall-clock time.
    """
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def combine(day: date, time_of_day: time, tz: ZoneInfo) -> datetime:
    """Build a timezone-aware datetime from a date and a wall-clock time."""
    return datetime.combine(day, time_of_day.replace(tzinfo=None), tzinfo=tz)


def parse_time(value: Union[str, time, None]) -> Optional[time]:
    """Parse ``HH:MM`` (or ``HH:MM:SS``) into a time."""
    if value is None or isinstance(value, time):
        return value
    text = value.strip()
    if not text:
        return None
    match = _TIME_RE.match(text)
    if not match:
        raise ValueError(f"Invalid time of day: {value!r}")
    hour, minute, second = match.groups()
    return time(int(hour), int(minute), int(second or 0))


def parse_date(value: Union[str, date, None]) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` into a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if not text:
        return None
    return date.fromisoformat(text)


def format_time(value: time) -> str:
    return value.strftime("%H:%M")
