"""Recurrence rules, scheduled sessions and computed occurrences."""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Iterable, Iterator, Optional, Union

from app.core.scheduling.dates import parse_date, parse_time, weekday_of
from app.core.scheduling.errors import ComputationBoundExceeded, InvalidRuleError


class RecurrenceType(str, Enum):
    """How a session repeats."""

    NONE = "none"          # Single session on an explicit date
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"    # BYMONTHDAY, small months skipped


class SessionStatus(str, Enum):
    """Lifecycle of a scheduled session."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    STOPPED = "stopped"
    ARCHIVED = "archived"


def _check_time(value: Optional[time]) -> None:
    if value is not None and not isinstance(value, time):
        raise InvalidRuleError("time_of_day must be a time", field="time_of_day")


def _check_duration(value: Optional[int]) -> None:
    if value is not None and (isinstance(value, bool) or value <= 0):
        raise InvalidRuleError(
            f"Duration must be a positive number of minutes, got {value!r}",
            field="duration_minutes",
        )


@dataclass(frozen=True)
class SingleRule:
    """Non-repeating session on an explicit date."""

    date: date
    time_of_day: Optional[time] = None

    def __post_init__(self) -> None:
        if not isinstance(self.date, date):
            raise InvalidRuleError("A single session needs an explicit date", field="date")
        _check_time(self.time_of_day)

    @property
    def recurrence_type(self) -> RecurrenceType:
        return RecurrenceType.NONE

    @property
    def is_recurring(self) -> bool:
        return False


@dataclass(frozen=True)
class DailyRule:
    """Repeats every day."""

    time_of_day: Optional[time] = None

    def __post_init__(self) -> None:
        _check_time(self.time_of_day)

    @property
    def recurrence_type(self) -> RecurrenceType:
        return RecurrenceType.DAILY

    @property
    def is_recurring(self) -> bool:
        return True


@dataclass(frozen=True)
class WeeklyRule:
    """Repeats on a fixed set of weekdays (0=Sunday ... 6=Saturday)."""

    days_of_week: frozenset[int]
    time_of_day: Optional[time] = None

    def __post_init__(self) -> None:
        try:
            days = frozenset(self.days_of_week)
        except TypeError:
            raise InvalidRuleError(
                "days_of_week must be a collection of weekday numbers",
                field="days_of_week",
            )
        if not days:
            raise InvalidRuleError(
                "A weekly rule needs at least one weekday", field="days_of_week"
            )
        for day in days:
            if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
                raise InvalidRuleError(
                    f"Weekday must be between 0 (Sunday) and 6 (Saturday), got {day!r}",
                    field="days_of_week",
                )
        object.__setattr__(self, "days_of_week", days)
        _check_time(self.time_of_day)

    @property
    def recurrence_type(self) -> RecurrenceType:
        return RecurrenceType.WEEKLY

    @property
    def is_recurring(self) -> bool:
        return True

    @property
    def sorted_days(self) -> list[int]:
        return sorted(self.days_of_week)


@dataclass(frozen=True)
class MonthlyRule:
    """Repeats on a fixed day of the month."""

    day_of_month: int
    time_of_day: Optional[time] = None

    def __post_init__(self) -> None:
        day = self.day_of_month
        if isinstance(day, bool) or not isinstance(day, int) or not 1 <= day <= 31:
            raise InvalidRuleError(
                f"Day of month must be between 1 and 31, got {day!r}",
                field="day_of_month",
            )
        _check_time(self.time_of_day)

    @property
    def recurrence_type(self) -> RecurrenceType:
        return RecurrenceType.MONTHLY

    @property
    def is_recurring(self) -> bool:
        return True


RecurrenceRule = Union[SingleRule, DailyRule, WeeklyRule, MonthlyRule]


def matches(rule: RecurrenceRule, day: date) -> bool:
    """Check whether a calendar date satisfies the rule."""
    if isinstance(rule, SingleRule):
        return day == rule.date
    if isinstance(rule, DailyRule):
        return True
    if isinstance(rule, WeeklyRule):
        return weekday_of(day) in rule.days_of_week
    if isinstance(rule, MonthlyRule):
        return day.day == rule.day_of_month
    raise InvalidRuleError(f"Unknown rule type: {type(rule).__name__}")


def build_rule(
    recurrence_type: Union[RecurrenceType, str],
    days_of_week: Optional[Iterable[int]] = None,
    day_of_month: Optional[int] = None,
    time_of_day: Union[time, str, None] = None,
    explicit_date: Union[date, str, None] = None,
) -> RecurrenceRule:
    """Build a rule variant from loosely parsed entities.

    Raises:
        InvalidRuleError: Unknown type, unparseable values, or fields
            missing for the requested variant.
    """
    try:
        kind = RecurrenceType(recurrence_type)
    except ValueError:
        raise InvalidRuleError(
            f"Unknown recurrence type: {recurrence_type!r}", field="recurrence_type"
        )

    try:
        parsed_time = parse_time(time_of_day)
    except ValueError as e:
        raise InvalidRuleError(str(e), field="time_of_day")
    try:
        parsed_date = parse_date(explicit_date)
    except ValueError as e:
        raise InvalidRuleError(f"Invalid date: {explicit_date!r}", field="explicit_date") from e

    if kind is RecurrenceType.NONE:
        if parsed_date is None:
            raise InvalidRuleError(
                "A single session needs an explicit date", field="explicit_date"
            )
        return SingleRule(date=parsed_date, time_of_day=parsed_time)

    if kind is RecurrenceType.DAILY:
        return DailyRule(time_of_day=parsed_time)

    if kind is RecurrenceType.WEEKLY:
        if days_of_week is None:
            raise InvalidRuleError(
                "A weekly rule needs at least one weekday", field="days_of_week"
            )
        return WeeklyRule(days_of_week=frozenset(days_of_week), time_of_day=parsed_time)

    if day_of_month is None:
        raise InvalidRuleError("A monthly rule needs a day of month", field="day_of_month")
    return MonthlyRule(day_of_month=day_of_month, time_of_day=parsed_time)


@dataclass(frozen=True)
class SessionException:
    """Override for one instance date of a session.

    Either suppresses the instance or replaces its time, location or
    duration.
    """

    date: date
    suppressed: bool = False
    time_of_day: Optional[time] = None
    location: Optional[str] = None
    duration_minutes: Optional[int] = None

    def __post_init__(self) -> None:
        _check_duration(self.duration_minutes)

    @classmethod
    def from_dict(cls, data: dict) -> "SessionException":
        """Create from a stored exception record."""
        return cls(
            date=parse_date(data["date"]),
            suppressed=bool(data.get("suppressed", data.get("cancelled", False))),
            time_of_day=parse_time(data.get("time_of_day")),
            location=data.get("location"),
            duration_minutes=data.get("duration_minutes"),
        )

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "suppressed": self.suppressed,
            "time_of_day": self.time_of_day.strftime("%H:%M") if self.time_of_day else None,
            "location": self.location,
            "duration_minutes": self.duration_minutes,
        }


@dataclass(frozen=True)
class ScheduledSession:
    """One stored session rule (one row per rule, never per occurrence)."""

    id: str
    owner_id: str
    subject_name: str
    participant_name: str
    rule: RecurrenceRule
    anchor_date: Optional[date] = None
    location: Optional[str] = None
    teacher: Optional[str] = None
    status: SessionStatus = SessionStatus.SCHEDULED
    exceptions: tuple[SessionException, ...] = ()
    duration_minutes: int = 60

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", SessionStatus(self.status))
        object.__setattr__(self, "exceptions", tuple(self.exceptions))
        _check_duration(self.duration_minutes)
        if self.anchor_date is None and isinstance(self.rule, SingleRule):
            object.__setattr__(self, "anchor_date", self.rule.date)

    @property
    def is_active(self) -> bool:
        """Only scheduled sessions generate occurrences."""
        return self.status is SessionStatus.SCHEDULED

    @property
    def is_recurring(self) -> bool:
        return self.rule.is_recurring

    @property
    def recurrence_type(self) -> RecurrenceType:
        return self.rule.recurrence_type

    def exception_for(self, day: date) -> Optional[SessionException]:
        """Latest exception recorded for an instance date."""
        found = None
        for exc in self.exceptions:
            if exc.date == day:
                found = exc
        return found


@dataclass(frozen=True)
class Occurrence:
    """A concrete instance computed from a session rule. Never persisted."""

    date: date
    start: datetime
    end: datetime
    source_rule_id: str
    is_exception: bool = False
    subject_name: Optional[str] = None
    participant_name: Optional[str] = None
    location: Optional[str] = None
    teacher: Optional[str] = None
    recurrence_type: RecurrenceType = RecurrenceType.NONE

    @property
    def instance_id(self) -> str:
        return f"{self.source_rule_id}_{self.date.isoformat()}"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        result = {
            "id": self.instance_id,
            "date": self.date.isoformat(),
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "source_rule_id": self.source_rule_id,
            "is_exception": self.is_exception,
            "recurrence_type": self.recurrence_type.value,
        }

        if self.subject_name:
            result["subject_name"] = self.subject_name
        if self.participant_name:
            result["participant_name"] = self.participant_name
        if self.location:
            result["location"] = self.location
        if self.teacher:
            result["teacher"] = self.teacher

        return result


@dataclass
class ExpansionResult:
    """Occurrences for one window plus how the expansion ended."""

    occurrences: list[Occurrence] = field(default_factory=list)
    truncated: bool = False
    iterations: int = 0
    iteration_limit: int = 0

    def __iter__(self) -> Iterator[Occurrence]:
        return iter(self.occurrences)

    def __len__(self) -> int:
        return len(self.occurrences)

    @property
    def dates(self) -> list[date]:
        return [o.date for o in self.occurrences]

    def raise_if_truncated(self) -> "ExpansionResult":
        """Raise ComputationBoundExceeded when the cap cut the window short."""
        if self.truncated:
            raise ComputationBoundExceeded(
                f"Iteration limit {self.iteration_limit} reached before window end",
                result=self,
            )
        return self


@dataclass(frozen=True)
class RecurrenceRequest:
    """Parsed request from the conversation layer."""

    owner_id: str
    participant_name: str
    subject_name: str
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    days_of_week: Optional[tuple[int, ...]] = None
    day_of_month: Optional[int] = None
    time_of_day: Union[time, str, None] = None
    explicit_date: Union[date, str, None] = None
    location: Optional[str] = None
    teacher: Optional[str] = None
    session_id: Optional[str] = None
    duration_minutes: Optional[int] = None

    @property
    def is_recurring(self) -> bool:
        """Raises InvalidRuleError for an unknown recurrence type."""
        try:
            kind = RecurrenceType(self.recurrence_type)
        except ValueError:
            raise InvalidRuleError(
                f"Unknown recurrence type: {self.recurrence_type!r}", field="recurrence_type"
            )
        return kind is not RecurrenceType.NONE
