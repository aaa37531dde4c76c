"""
Occurrence Calculator.

Expands a session's recurrence rule into concrete occurrences for a
bounded window. Occurrences are recomputed on every query and never
stored, so one stored row per rule is enough.

Instead of testing every calendar day, each rule variant supplies a
"next candidate" function that jumps straight to the next matching
date. A single driver walks those candidates under an iteration cap
sized from the window, which guarantees termination for any rule.
"""

import logging
import math
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional, Union
from zoneinfo import ZoneInfo

from app.core.scheduling.dates import (
    combine,
    get_zone,
    next_month_day_on_or_after,
    next_weekday_on_or_after,
    to_local,
)
from app.core.scheduling.types import (
    DailyRule,
    ExpansionResult,
    MonthlyRule,
    Occurrence,
    RecurrenceRule,
    ScheduledSession,
    SingleRule,
    WeeklyRule,
    matches,
)

logger = logging.getLogger(__name__)

# Returns the first matching date on or after the cursor, or None when
# the rule has no further dates.
NextCandidate = Callable[[date], Optional[date]]

DEFAULT_MAX_COUNT = 50
ITERATION_SAFETY_MARGIN = 8


def candidate_finder(rule: RecurrenceRule) -> NextCandidate:
    """Strategy returning the next matching date for a rule variant."""
    if isinstance(rule, SingleRule):
        return lambda cursor: rule.date if cursor <= rule.date else None

    if isinstance(rule, DailyRule):
        return lambda cursor: cursor

    if isinstance(rule, WeeklyRule):
        days = rule.days_of_week
        return lambda cursor: next_weekday_on_or_after(cursor, days)

    if isinstance(rule, MonthlyRule):
        day_of_month = rule.day_of_month
        return lambda cursor: next_month_day_on_or_after(cursor, day_of_month)

    raise TypeError(f"Unsupported rule type: {type(rule).__name__}")


def iteration_limit(rule: RecurrenceRule, window_start: date, window_end: date) -> int:
    """Upper bound on driver steps for a window.

    Each step emits at most one date, so the bound is the number of
    dates the rule can produce in the window plus a fixed margin.
    """
    span_days = (window_end - window_start).days + 1
    if span_days <= 0:
        return 0

    if isinstance(rule, SingleRule):
        expected = 1
    elif isinstance(rule, DailyRule):
        expected = span_days
    elif isinstance(rule, WeeklyRule):
        expected = math.ceil(span_days / 7) * len(rule.days_of_week)
    elif isinstance(rule, MonthlyRule):
        expected = span_days // 28 + 1
    else:
        expected = span_days

    return expected + ITERATION_SAFETY_MARGIN


class OccurrenceCalculator:
    """Expands session rules into dated, timed occurrences."""

    def __init__(
        self,
        timezone: Union[str, ZoneInfo],
        default_time: time = time(0, 0),
        default_duration_minutes: int = 60,
    ):
        """Initialize calculator.

        Args:
            timezone: Zone in which rule times are wall-clock times
            default_time: Time used for rules without a time of day
            default_duration_minutes: Duration when the session has none
        """
        self.timezone = get_zone(timezone)
        self.default_time = default_time
        self.default_duration_minutes = default_duration_minutes

    def expand(
        self,
        session: ScheduledSession,
        window_start: date,
        window_end: date,
        max_count: int = DEFAULT_MAX_COUNT,
    ) -> ExpansionResult:
        """Expand a session into occurrences inside an inclusive window.

        Args:
            session: Session whose rule is expanded
            window_start: First date of the window
            window_end: Last date of the window
            max_count: Maximum occurrences returned

        Returns:
            ExpansionResult ordered by date. ``truncated`` is set when the
            iteration cap was reached before ``window_end``.
        """
        if window_end < window_start or max_count <= 0 or not session.is_active:
            return ExpansionResult()

        cursor = window_start
        if session.anchor_date and session.anchor_date > cursor:
            cursor = session.anchor_date

        limit = iteration_limit(session.rule, cursor, window_end)
        result = ExpansionResult(iteration_limit=limit)
        next_candidate = candidate_finder(session.rule)

        while cursor <= window_end and len(result.occurrences) < max_count:
            if result.iterations >= limit:
                result.truncated = True
                logger.warning(
                    f"Expansion of session {session.id} stopped at {cursor.isoformat()} "
                    f"after {limit} iterations (window ends {window_end.isoformat()})"
                )
                break
            result.iterations += 1

            candidate = next_candidate(cursor)
            if candidate is None or candidate > window_end:
                break

            occurrence = self._build_occurrence(session, candidate)
            if occurrence is not None:
                result.occurrences.append(occurrence)

            cursor = candidate + timedelta(days=1)

        return result

    def _build_occurrence(
        self,
        session: ScheduledSession,
        day: date,
    ) -> Optional[Occurrence]:
        """Combine a matching date with the session's time, applying exceptions."""
        time_of_day = session.rule.time_of_day or self.default_time
        duration = session.duration_minutes or self.default_duration_minutes
        location = session.location
        is_exception = False

        exception = session.exception_for(day)
        if exception is not None:
            if exception.suppressed:
                return None
            is_exception = True
            time_of_day = exception.time_of_day or time_of_day
            duration = exception.duration_minutes or duration
            location = exception.location or location

        start = combine(day, time_of_day, self.timezone)
        return Occurrence(
            date=day,
            start=start,
            end=start + timedelta(minutes=duration),
            source_rule_id=session.id,
            is_exception=is_exception,
            subject_name=session.subject_name,
            participant_name=session.participant_name,
            location=location,
            teacher=session.teacher,
            recurrence_type=session.recurrence_type,
        )

    def occurs_on(self, session: ScheduledSession, day: date) -> bool:
        """Check whether the session produces an occurrence on a date."""
        if not session.is_active or not matches(session.rule, day):
            return False
        return len(self.expand(session, day, day, max_count=1)) > 0

    def occurrence_on(self, session: ScheduledSession, day: date) -> Optional[Occurrence]:
        """The session's occurrence on a date, if any."""
        result = self.expand(session, day, day, max_count=1)
        return result.occurrences[0] if result.occurrences else None

    def next_occurrence(
        self,
        session: ScheduledSession,
        after: datetime,
        horizon_days: int = 365,
    ) -> Optional[Occurrence]:
        """First occurrence starting at or after a moment.

        Args:
            session: Session to look ahead in
            after: Reference moment (naive values are local time)
            horizon_days: How far ahead to search

        Returns:
            Next Occurrence or None if nothing within the horizon
        """
        local = to_local(after, self.timezone)
        start_day = local.date()
        result = self.expand(
            session,
            start_day,
            start_day + timedelta(days=horizon_days),
            # Today's occurrence may already have started
            max_count=2,
        )
        for occurrence in result:
            if occurrence.start >= local:
                return occurrence
        return None

    def count_occurrences(
        self,
        session: ScheduledSession,
        window_start: date,
        window_end: date,
    ) -> int:
        """Number of occurrences inside a window."""
        span = (window_end - window_start).days + 1
        if span <= 0:
            return 0
        return len(self.expand(session, window_start, window_end, max_count=span))
