"""Translation of rules into RRULE-style descriptors for calendar sync."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from dateutil.rrule import rrulestr

from app.core.scheduling.dates import WEEKDAY_NAMES, format_time
from app.core.scheduling.errors import InvalidRuleError
from app.core.scheduling.types import (
    DailyRule,
    MonthlyRule,
    RecurrenceRule,
    SingleRule,
    WeeklyRule,
)

# Indexed by Sunday-based weekday number
WEEKDAY_CODES = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")

SUPPORTED_RRULE_PARTS = frozenset({"FREQ", "BYDAY", "BYMONTHDAY"})

# Only used to let dateutil validate rule text; never expanded
_RRULE_DTSTART = datetime(2000, 1, 1)


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


@dataclass(frozen=True)
class RecurrenceDescriptor:
    """Calendar-neutral repetition descriptor."""

    freq: Frequency
    by_day: Optional[tuple[str, ...]] = None
    by_month_day: Optional[int] = None

    def to_rrule(self) -> str:
        """Render as ``FREQ=...;BYDAY=...`` without the ``RRULE:`` prefix."""
        parts = [f"FREQ={self.freq.value}"]
        if self.by_day:
            parts.append(f"BYDAY={','.join(self.by_day)}")
        if self.by_month_day is not None:
            parts.append(f"BYMONTHDAY={self.by_month_day}")
        return ";".join(parts)

    def to_dict(self) -> dict:
        result: dict = {"freq": self.freq.value}
        if self.by_day:
            result["by_day"] = list(self.by_day)
        if self.by_month_day is not None:
            result["by_month_day"] = self.by_month_day
        return result

    @classmethod
    def from_rrule(cls, value: str) -> "RecurrenceDescriptor":
        """Parse the FREQ/BYDAY/BYMONTHDAY subset produced by ``to_rrule``.

        The text must be a valid RFC 5545 rule. Valid rules using any
        other part (INTERVAL, COUNT, UNTIL, ...) are rejected, since the
        engine cannot represent them.
        """
        text = value.strip()
        if text.upper().startswith("RRULE:"):
            text = text[len("RRULE:"):]

        try:
            rrulestr(text, dtstart=_RRULE_DTSTART)
        except (ValueError, TypeError, KeyError) as e:
            raise InvalidRuleError(f"Malformed RRULE {value!r}: {e}") from e

        fields = {}
        for part in filter(None, text.split(";")):
            key, _, val = part.partition("=")
            fields[key.strip().upper()] = val.strip().upper()

        unsupported = sorted(set(fields) - SUPPORTED_RRULE_PARTS)
        if unsupported:
            raise InvalidRuleError(f"Unsupported RRULE parts: {', '.join(unsupported)}")

        try:
            freq = Frequency(fields.get("FREQ", ""))
        except ValueError:
            raise InvalidRuleError(f"Unsupported frequency in {value!r}")

        by_day = None
        if "BYDAY" in fields:
            by_day = tuple(code for code in fields["BYDAY"].split(",") if code)
            unknown = [code for code in by_day if code not in WEEKDAY_CODES]
            if unknown:
                raise InvalidRuleError(f"Unsupported BYDAY values: {unknown}")

        by_month_day = None
        if "BYMONTHDAY" in fields:
            try:
                by_month_day = int(fields["BYMONTHDAY"])
            except ValueError:
                raise InvalidRuleError(f"Invalid BYMONTHDAY in {value!r}")
            if not 1 <= by_month_day <= 31:
                raise InvalidRuleError(f"Unsupported BYMONTHDAY in {value!r}")

        return cls(freq=freq, by_day=by_day, by_month_day=by_month_day)

    def to_rule(self, time_of_day=None) -> RecurrenceRule:
        """Rebuild the engine rule described by this descriptor."""
        if self.freq is Frequency.DAILY:
            return DailyRule(time_of_day=time_of_day)
        if self.freq is Frequency.WEEKLY:
            days = frozenset(WEEKDAY_CODES.index(code) for code in self.by_day or ())
            return WeeklyRule(days_of_week=days, time_of_day=time_of_day)
        if self.by_month_day is None:
            raise InvalidRuleError("Monthly descriptor without BYMONTHDAY")
        return MonthlyRule(day_of_month=self.by_month_day, time_of_day=time_of_day)


def to_descriptor(rule: RecurrenceRule) -> Optional[RecurrenceDescriptor]:
    """Map a rule to its descriptor. Single sessions have none."""
    if isinstance(rule, SingleRule):
        return None
    if isinstance(rule, DailyRule):
        return RecurrenceDescriptor(freq=Frequency.DAILY)
    if isinstance(rule, WeeklyRule):
        return RecurrenceDescriptor(
            freq=Frequency.WEEKLY,
            by_day=tuple(WEEKDAY_CODES[day] for day in rule.sorted_days),
        )
    if isinstance(rule, MonthlyRule):
        return RecurrenceDescriptor(freq=Frequency.MONTHLY, by_month_day=rule.day_of_month)
    raise InvalidRuleError(f"Unknown rule type: {type(rule).__name__}")


def recurrence_lines(rule: RecurrenceRule) -> list[str]:
    """Recurrence list in the form calendar APIs expect, e.g. ``["RRULE:FREQ=DAILY"]``."""
    descriptor = to_descriptor(rule)
    if descriptor is None:
        return []
    return [f"RRULE:{descriptor.to_rrule()}"]


def describe(rule: RecurrenceRule) -> str:
    """Human readable label for a rule."""
    at = f" at {format_time(rule.time_of_day)}" if rule.time_of_day else ""

    if isinstance(rule, SingleRule):
        return f"Once on {rule.date.isoformat()}{at}"
    if isinstance(rule, DailyRule):
        return f"Every day{at}"
    if isinstance(rule, WeeklyRule):
        names = [WEEKDAY_NAMES[day] for day in rule.sorted_days]
        if len(names) > 1:
            days = ", ".join(names[:-1]) + f" and {names[-1]}"
        else:
            days = names[0]
        return f"Every {days}{at}"
    if isinstance(rule, MonthlyRule):
        return f"Every month on day {rule.day_of_month}{at}"
    raise InvalidRuleError(f"Unknown rule type: {type(rule).__name__}")
