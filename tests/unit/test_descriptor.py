"""Tests for calendar recurrence descriptors."""

import pytest
from datetime import date, time

from app.core.scheduling.descriptor import (
    Frequency,
    RecurrenceDescriptor,
    describe,
    recurrence_lines,
    to_descriptor,
)
from app.core.scheduling.errors import InvalidRuleError
from app.core.scheduling.types import DailyRule, MonthlyRule, SingleRule, WeeklyRule


class TestToDescriptor:
    """Test rule to descriptor translation."""

    def test_daily(self):
        assert to_descriptor(DailyRule()).to_rrule() == "FREQ=DAILY"

    def test_weekly_days_sorted(self):
        """Days render Sunday-first regardless of input order."""
        descriptor = to_descriptor(WeeklyRule(days_of_week={3, 1}))

        assert descriptor.freq is Frequency.WEEKLY
        assert descriptor.to_rrule() == "FREQ=WEEKLY;BYDAY=MO,WE"

    def test_weekly_sunday(self):
        assert to_descriptor(WeeklyRule(days_of_week={0, 6})).by_day == ("SU", "SA")

    def test_monthly(self):
        descriptor = to_descriptor(MonthlyRule(day_of_month=31))

        assert descriptor.to_rrule() == "FREQ=MONTHLY;BYMONTHDAY=31"
        assert descriptor.to_dict() == {"freq": "MONTHLY", "by_month_day": 31}

    def test_single_has_none(self):
        rule = SingleRule(date=date(2025, 2, 10))

        assert to_descriptor(rule) is None
        assert recurrence_lines(rule) == []

    def test_recurrence_lines(self):
        assert recurrence_lines(DailyRule()) == ["RRULE:FREQ=DAILY"]


class TestFromRRule:
    """Test parsing descriptors back."""

    def test_with_prefix(self):
        descriptor = RecurrenceDescriptor.from_rrule("RRULE:FREQ=WEEKLY;BYDAY=MO,WE")

        assert descriptor.by_day == ("MO", "WE")
        assert descriptor.to_rule(time(15, 0)) == WeeklyRule(
            days_of_week={1, 3}, time_of_day=time(15, 0)
        )

    def test_monthly_to_rule(self):
        rule = RecurrenceDescriptor.from_rrule("FREQ=MONTHLY;BYMONTHDAY=31").to_rule()

        assert rule == MonthlyRule(day_of_month=31)

    @pytest.mark.parametrize(
        "value",
        ["FREQ=YEARLY", "FREQ=WEEKLY;BYDAY=XX", "FREQ=MONTHLY;BYMONTHDAY=last", "FREQ"],
    )
    def test_unsupported(self, value):
        with pytest.raises(InvalidRuleError):
            RecurrenceDescriptor.from_rrule(value)

    @pytest.mark.parametrize(
        "value",
        [
            "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO",
            "FREQ=DAILY;COUNT=5",
            "FREQ=MONTHLY;BYMONTHDAY=31;UNTIL=20251231T000000",
        ],
    )
    def test_valid_rule_with_unrepresentable_parts(self, value):
        """Parts the engine cannot honour are rejected, not silently dropped."""
        with pytest.raises(InvalidRuleError, match="Unsupported RRULE parts"):
            RecurrenceDescriptor.from_rrule(value)

    def test_negative_month_day(self):
        """BYMONTHDAY=-1 is valid RRULE but has no engine equivalent."""
        with pytest.raises(InvalidRuleError):
            RecurrenceDescriptor.from_rrule("FREQ=MONTHLY;BYMONTHDAY=-1")

    def test_malformed_text(self):
        with pytest.raises(InvalidRuleError, match="Malformed RRULE"):
            RecurrenceDescriptor.from_rrule("FREQ=WEEKLY;BYDAY=MO;INTERVAL=two")

    def test_lowercase_prefix(self):
        descriptor = RecurrenceDescriptor.from_rrule("rrule:FREQ=WEEKLY;BYDAY=MO,WE")
        assert descriptor.by_day == ("MO", "WE")


class TestDescribe:
    """Test human readable labels."""

    def test_labels(self):
        assert describe(DailyRule(time_of_day=time(8, 0))) == "Every day at 08:00"
        assert (
            describe(WeeklyRule(days_of_week={1, 3}, time_of_day=time(15, 0)))
            == "Every Monday and Wednesday at 15:00"
        )
        assert describe(MonthlyRule(day_of_month=31)) == "Every month on day 31"
        assert (
            describe(SingleRule(date=date(2025, 2, 10), time_of_day=time(14, 0)))
            == "Once on 2025-02-10 at 14:00"
        )

    def test_three_days(self):
        label = describe(WeeklyRule(days_of_week={1, 3, 5}))

        assert label == "Every Monday, Wednesday and Friday"
