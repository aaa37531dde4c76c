"""Tests for the occurrence calculator."""

import pytest
from unittest.mock import patch
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from app.core.scheduling.calculator import (
    ITERATION_SAFETY_MARGIN,
    OccurrenceCalculator,
    candidate_finder,
    iteration_limit,
)
from app.core.scheduling.dates import days_in_month, weekday_of
from app.core.scheduling.errors import ComputationBoundExceeded
from app.core.scheduling.types import (
    DailyRule,
    MonthlyRule,
    ScheduledSession,
    SessionException,
    SessionStatus,
    SingleRule,
    WeeklyRule,
)

TZ = ZoneInfo("Asia/Taipei")


def make_session(rule, **kwargs) -> ScheduledSession:
    """Build a session with test defaults."""
    defaults = {
        "id": "session-1",
        "owner_id": "owner-1",
        "subject_name": "Piano",
        "participant_name": "Amy",
    }
    defaults.update(kwargs)
    return ScheduledSession(rule=rule, **defaults)


class TestOccurrenceCalculator:
    """Test OccurrenceCalculator.expand."""

    @pytest.fixture
    def calculator(self):
        """Create calculator in the Taipei zone."""
        return OccurrenceCalculator(TZ)

    def test_monthly_31_skips_short_months(self, calculator):
        """February and April have no 31st and are skipped, not clamped."""
        session = make_session(MonthlyRule(day_of_month=31, time_of_day=time(10, 0)))

        result = calculator.expand(session, date(2025, 1, 1), date(2025, 4, 30), 10)

        assert result.dates == [date(2025, 1, 31), date(2025, 3, 31)]
        assert not result.truncated

    def test_monthly_31_over_a_year(self, calculator):
        """Only months with 31 days produce an occurrence."""
        session = make_session(MonthlyRule(day_of_month=31))

        result = calculator.expand(session, date(2025, 1, 1), date(2025, 12, 31), 50)

        assert [d.month for d in result.dates] == [1, 3, 5, 7, 8, 10, 12]
        for d in result.dates:
            assert days_in_month(d.year, d.month) == 31

    def test_monthly_29_in_leap_year(self, calculator):
        """February 29 exists only in leap years."""
        session = make_session(MonthlyRule(day_of_month=29))

        leap = calculator.expand(session, date(2024, 2, 1), date(2024, 3, 31), 10)
        common = calculator.expand(session, date(2025, 2, 1), date(2025, 3, 31), 10)

        assert leap.dates == [date(2024, 2, 29), date(2024, 3, 29)]
        assert common.dates == [date(2025, 3, 29)]

    def test_daily_three_day_window(self, calculator):
        """A three day window yields one occurrence per day."""
        session = make_session(DailyRule(time_of_day=time(8, 0)))

        result = calculator.expand(session, date(2025, 2, 10), date(2025, 2, 12), 10)

        assert result.dates == [date(2025, 2, 10), date(2025, 2, 11), date(2025, 2, 12)]
        for occurrence in result:
            assert occurrence.start.hour == 8
            assert occurrence.start.tzinfo == TZ
            assert (occurrence.end - occurrence.start).total_seconds() == 3600

    def test_weekly_days_only(self, calculator):
        """Every occurrence falls on one of the rule's weekdays."""
        session = make_session(WeeklyRule(days_of_week={1, 3}, time_of_day=time(15, 0)))

        result = calculator.expand(session, date(2025, 1, 1), date(2025, 1, 31), 50)

        assert len(result) == 9
        assert all(weekday_of(d) in {1, 3} for d in result.dates)
        assert result.dates[0] == date(2025, 1, 1)  # Wednesday
        assert result.dates[1] == date(2025, 1, 6)  # Monday

    def test_reversed_window_is_empty(self, calculator):
        """window_end before window_start returns nothing."""
        session = make_session(DailyRule())

        result = calculator.expand(session, date(2025, 3, 1), date(2025, 2, 1), 10)

        assert len(result) == 0
        assert not result.truncated

    def test_deterministic_and_strictly_ascending(self, calculator):
        """Identical inputs give identical, strictly ascending output."""
        session = make_session(WeeklyRule(days_of_week={0, 2, 4, 6}, time_of_day=time(9, 0)))

        first = calculator.expand(session, date(2025, 1, 1), date(2025, 3, 31), 100)
        second = calculator.expand(session, date(2025, 1, 1), date(2025, 3, 31), 100)

        assert first.occurrences == second.occurrences
        starts = [o.start for o in first]
        assert all(a < b for a, b in zip(starts, starts[1:]))

    def test_starts_at_anchor(self, calculator):
        """Nothing is produced before the anchor date."""
        session = make_session(DailyRule(), anchor_date=date(2025, 1, 10))

        result = calculator.expand(session, date(2025, 1, 1), date(2025, 1, 15), 50)

        assert result.dates[0] == date(2025, 1, 10)
        assert len(result) == 6

    def test_max_count(self, calculator):
        """The result never exceeds max_count."""
        session = make_session(DailyRule())

        result = calculator.expand(session, date(2025, 1, 1), date(2025, 1, 30), 5)

        assert len(result) == 5
        assert not result.truncated

    @pytest.mark.parametrize(
        "status",
        [SessionStatus.CANCELLED, SessionStatus.STOPPED, SessionStatus.ARCHIVED],
    )
    def test_inactive_sessions_produce_nothing(self, calculator, status):
        """Only scheduled sessions generate occurrences."""
        session = make_session(DailyRule(), status=status)

        result = calculator.expand(session, date(2025, 1, 1), date(2025, 1, 30), 50)

        assert len(result) == 0

    def test_single_session(self, calculator):
        """Single sessions appear only inside the window."""
        session = make_session(SingleRule(date=date(2025, 2, 10), time_of_day=time(14, 0)))

        inside = calculator.expand(session, date(2025, 2, 1), date(2025, 2, 28), 10)
        outside = calculator.expand(session, date(2025, 3, 1), date(2025, 3, 31), 10)

        assert inside.dates == [date(2025, 2, 10)]
        assert inside.occurrences[0].start == datetime(2025, 2, 10, 14, 0, tzinfo=TZ)
        assert len(outside) == 0

    def test_suppressed_exception(self, calculator):
        """A suppressed date is skipped."""
        session = make_session(
            WeeklyRule(days_of_week={3}, time_of_day=time(15, 0)),
            exceptions=[SessionException(date=date(2025, 1, 15), suppressed=True)],
        )

        result = calculator.expand(session, date(2025, 1, 1), date(2025, 1, 31), 10)

        assert date(2025, 1, 15) not in result.dates
        assert len(result) == 4

    def test_override_exception(self, calculator):
        """An override replaces time and location for its date."""
        session = make_session(
            WeeklyRule(days_of_week={3}, time_of_day=time(15, 0)),
            location="Studio A",
            exceptions=[
                SessionException(
                    date=date(2025, 1, 15),
                    time_of_day=time(17, 0),
                    location="Studio B",
                )
            ],
        )

        result = calculator.expand(session, date(2025, 1, 8), date(2025, 1, 22), 10)

        moved = result.occurrences[1]
        assert moved.date == date(2025, 1, 15)
        assert moved.is_exception
        assert moved.start.hour == 17
        assert moved.location == "Studio B"
        assert not result.occurrences[0].is_exception
        assert result.occurrences[0].location == "Studio A"

    def test_default_time_is_explicit(self):
        """Rules without a time use the calculator's default."""
        calculator = OccurrenceCalculator(TZ, default_time=time(9, 0))
        session = make_session(DailyRule())

        result = calculator.expand(session, date(2025, 1, 1), date(2025, 1, 1), 1)

        assert result.occurrences[0].start == datetime(2025, 1, 1, 9, 0, tzinfo=TZ)

    def test_wide_window_not_truncated(self, calculator):
        """The iteration cap scales with the window."""
        session = make_session(DailyRule())

        result = calculator.expand(session, date(2025, 1, 1), date(2029, 12, 31), 5000)

        assert len(result) == 1826
        assert not result.truncated

    def test_truncated_when_cap_reached(self, calculator):
        """Hitting the cap returns a partial result flagged as truncated."""
        session = make_session(DailyRule())

        with patch("app.core.scheduling.calculator.iteration_limit", return_value=3):
            result = calculator.expand(session, date(2025, 1, 1), date(2025, 1, 10), 50)

        assert len(result) == 3
        assert result.truncated
        with pytest.raises(ComputationBoundExceeded):
            result.raise_if_truncated()

    def test_instance_id_and_dict(self, calculator):
        """Test occurrence serialisation."""
        session = make_session(DailyRule(time_of_day=time(8, 0)), teacher="Ms. Lin")

        occurrence = calculator.expand(session, date(2025, 2, 10), date(2025, 2, 10), 1).occurrences[0]
        d = occurrence.to_dict()

        assert occurrence.instance_id == "session-1_2025-02-10"
        assert d["start"] == "2025-02-10T08:00:00+08:00"
        assert d["recurrence_type"] == "daily"
        assert d["teacher"] == "Ms. Lin"
        assert "location" not in d


class TestLookups:
    """Test occurs_on, next_occurrence and count_occurrences."""

    @pytest.fixture
    def calculator(self):
        return OccurrenceCalculator(TZ)

    def test_occurs_on(self, calculator):
        session = make_session(WeeklyRule(days_of_week={3}))

        assert calculator.occurs_on(session, date(2025, 1, 8))
        assert not calculator.occurs_on(session, date(2025, 1, 9))

    def test_occurs_on_respects_suppression(self, calculator):
        session = make_session(
            DailyRule(),
            exceptions=[SessionException(date=date(2025, 1, 8), suppressed=True)],
        )

        assert not calculator.occurs_on(session, date(2025, 1, 8))

    def test_next_occurrence_later_today(self, calculator):
        """Today's slot counts while it has not started."""
        session = make_session(WeeklyRule(days_of_week={3}, time_of_day=time(15, 0)))

        nxt = calculator.next_occurrence(session, datetime(2025, 1, 8, 14, 0, tzinfo=TZ))

        assert nxt.date == date(2025, 1, 8)

    def test_next_occurrence_after_slot(self, calculator):
        """Once today's slot started, next week's is returned."""
        session = make_session(WeeklyRule(days_of_week={3}, time_of_day=time(15, 0)))

        nxt = calculator.next_occurrence(session, datetime(2025, 1, 8, 16, 0, tzinfo=TZ))

        assert nxt.date == date(2025, 1, 15)

    def test_next_occurrence_none_for_past_single(self, calculator):
        session = make_session(SingleRule(date=date(2024, 5, 1), time_of_day=time(10, 0)))

        assert calculator.next_occurrence(session, datetime(2025, 1, 1, tzinfo=TZ)) is None

    def test_count_occurrences(self, calculator):
        session = make_session(MonthlyRule(day_of_month=31))

        assert calculator.count_occurrences(session, date(2025, 1, 1), date(2025, 12, 31)) == 7
        assert calculator.count_occurrences(session, date(2025, 2, 1), date(2025, 1, 1)) == 0


class TestStrategies:
    """Test next-candidate strategies and the iteration bound."""

    def test_weekly_candidate_wraps(self):
        """From Thursday, a Monday-only rule moves to next Monday."""
        finder = candidate_finder(WeeklyRule(days_of_week={1}))

        assert finder(date(2025, 1, 9)) == date(2025, 1, 13)
        assert finder(date(2025, 1, 13)) == date(2025, 1, 13)

    def test_monthly_candidate(self):
        finder = candidate_finder(MonthlyRule(day_of_month=31))

        assert finder(date(2025, 2, 1)) == date(2025, 3, 31)
        assert finder(date(2025, 8, 1)) == date(2025, 8, 31)

    def test_single_candidate(self):
        finder = candidate_finder(SingleRule(date=date(2025, 1, 5)))

        assert finder(date(2025, 1, 1)) == date(2025, 1, 5)
        assert finder(date(2025, 1, 6)) is None

    def test_iteration_limit_scales_with_window(self):
        daily = DailyRule()

        assert iteration_limit(daily, date(2025, 1, 1), date(2025, 1, 3)) == 3 + ITERATION_SAFETY_MARGIN
        assert iteration_limit(daily, date(2025, 1, 1), date(2025, 12, 31)) == 365 + ITERATION_SAFETY_MARGIN
        assert iteration_limit(daily, date(2025, 1, 2), date(2025, 1, 1)) == 0

    def test_iteration_limit_weekly(self):
        rule = WeeklyRule(days_of_week={1, 3})

        assert iteration_limit(rule, date(2025, 1, 1), date(2025, 1, 28)) == 8 + ITERATION_SAFETY_MARGIN
