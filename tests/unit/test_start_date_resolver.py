"""Tests for anchor date resolution."""

import pytest
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from app.core.scheduling.errors import InvalidRuleError
from app.core.scheduling.resolver import StartDateResolver
from app.core.scheduling.types import DailyRule, MonthlyRule, SingleRule, WeeklyRule

TZ = ZoneInfo("Asia/Taipei")


def local(*args) -> datetime:
    return datetime(*args, tzinfo=TZ)


class TestStartDateResolver:
    """Test StartDateResolver.resolve_anchor."""

    @pytest.fixture
    def resolver(self):
        return StartDateResolver(TZ)

    def test_weekly_next_wednesday(self, resolver):
        """Monday 10:00 with a Wednesday 15:00 rule anchors to that Wednesday."""
        rule = WeeklyRule(days_of_week={3}, time_of_day=time(15, 0))

        anchor = resolver.resolve_anchor(rule, local(2025, 1, 6, 10, 0))

        assert anchor == date(2025, 1, 8)

    def test_idempotent(self, resolver):
        """Same inputs, same anchor."""
        rule = MonthlyRule(day_of_month=31, time_of_day=time(9, 0))
        now = local(2025, 2, 10, 12, 0)

        assert resolver.resolve_anchor(rule, now) == resolver.resolve_anchor(rule, now)

    def test_weekly_today_before_slot(self, resolver):
        """Today's weekday still counts before the slot time."""
        rule = WeeklyRule(days_of_week={3}, time_of_day=time(15, 0))

        assert resolver.resolve_anchor(rule, local(2025, 1, 8, 10, 0)) == date(2025, 1, 8)

    def test_weekly_today_after_slot(self, resolver):
        """Once the slot passed, the next matching weekday is used."""
        rule = WeeklyRule(days_of_week={3}, time_of_day=time(15, 0))

        assert resolver.resolve_anchor(rule, local(2025, 1, 8, 16, 0)) == date(2025, 1, 15)

    def test_weekly_earliest_of_many_days(self, resolver):
        """Tuesday with a Monday/Friday rule anchors to Friday."""
        rule = WeeklyRule(days_of_week={1, 5}, time_of_day=time(9, 0))

        assert resolver.resolve_anchor(rule, local(2025, 1, 7, 8, 0)) == date(2025, 1, 10)

    def test_daily_before_and_after(self, resolver):
        """Daily rules start today only while the slot is still ahead."""
        rule = DailyRule(time_of_day=time(8, 0))

        assert resolver.resolve_anchor(rule, local(2025, 1, 6, 7, 0)) == date(2025, 1, 6)
        assert resolver.resolve_anchor(rule, local(2025, 1, 6, 8, 0)) == date(2025, 1, 7)

    @pytest.mark.parametrize(
        "day_of_month,now,expected",
        [
            (15, local(2025, 1, 10, 9, 0), date(2025, 1, 15)),
            (5, local(2025, 1, 10, 9, 0), date(2025, 2, 5)),
            (31, local(2025, 2, 10, 9, 0), date(2025, 3, 31)),
            (30, local(2025, 1, 31, 9, 0), date(2025, 3, 30)),
            (31, local(2025, 12, 31, 20, 0), date(2026, 1, 31)),
        ],
    )
    def test_monthly(self, resolver, day_of_month, now, expected):
        """Monthly anchors skip months without the day."""
        rule = MonthlyRule(day_of_month=day_of_month, time_of_day=time(15, 0))

        assert resolver.resolve_anchor(rule, now) == expected

    def test_monthly_same_day_depends_on_time(self, resolver):
        rule = MonthlyRule(day_of_month=31, time_of_day=time(15, 0))

        assert resolver.resolve_anchor(rule, local(2025, 1, 31, 10, 0)) == date(2025, 1, 31)
        assert resolver.resolve_anchor(rule, local(2025, 1, 31, 16, 0)) == date(2025, 3, 31)

    def test_explicit_date_accepted(self, resolver):
        rule = WeeklyRule(days_of_week={3}, time_of_day=time(15, 0))

        anchor = resolver.resolve_anchor(
            rule, local(2025, 1, 6, 10, 0), explicit_date=date(2025, 1, 15)
        )

        assert anchor == date(2025, 1, 15)

    def test_explicit_date_on_wrong_weekday(self, resolver):
        """Tuesday does not fit a Wednesday rule."""
        rule = WeeklyRule(days_of_week={3}, time_of_day=time(15, 0))

        with pytest.raises(InvalidRuleError) as exc_info:
            resolver.resolve_anchor(rule, local(2025, 1, 6, 10, 0), explicit_date=date(2025, 1, 14))

        assert exc_info.value.field == "explicit_date"

    def test_explicit_date_on_wrong_month_day(self, resolver):
        rule = MonthlyRule(day_of_month=31)

        with pytest.raises(InvalidRuleError):
            resolver.resolve_anchor(rule, local(2025, 1, 6), explicit_date=date(2025, 1, 30))

    def test_single_rule(self, resolver):
        rule = SingleRule(date=date(2025, 2, 10), time_of_day=time(14, 0))

        assert resolver.resolve_anchor(rule, local(2025, 1, 6)) == date(2025, 2, 10)
        with pytest.raises(InvalidRuleError):
            resolver.resolve_anchor(rule, local(2025, 1, 6), explicit_date=date(2025, 2, 11))

    def test_default_time(self, resolver):
        """Rules without a time use the given default, then the resolver's."""
        rule = DailyRule()
        now = local(2025, 1, 6, 10, 0)

        assert resolver.resolve_anchor(rule, now, default_time=time(12, 0)) == date(2025, 1, 6)
        assert resolver.resolve_anchor(rule, now) == date(2025, 1, 7)

    def test_aware_now_converted_to_zone(self, resolver):
        """23:30 UTC is already 07:30 the next day in Taipei."""
        rule = DailyRule(time_of_day=time(8, 0))
        now = datetime(2025, 1, 6, 23, 30, tzinfo=timezone.utc)

        assert resolver.resolve_anchor(rule, now) == date(2025, 1, 7)

    def test_naive_now_is_local(self, resolver):
        rule = DailyRule(time_of_day=time(8, 0))

        assert resolver.resolve_anchor(rule, datetime(2025, 1, 6, 9, 0)) == date(2025, 1, 7)
