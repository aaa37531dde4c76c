"""Start date resolution for newly declared rules."""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from app.core.scheduling.dates import (
    add_months,
    combine,
    get_zone,
    month_has_day,
    next_month_day_on_or_after,
    next_weekday_on_or_after,
    to_local,
    weekday_of,
)
from app.core.scheduling.errors import InvalidRuleError
from app.core.scheduling.types import (
    DailyRule,
    MonthlyRule,
    RecurrenceRule,
    SingleRule,
    WeeklyRule,
    matches,
)

logger = logging.getLogger(__name__)


class StartDateResolver:
    """
    Picks the anchor (first occurrence) date of a new rule.

    A slot later today still counts when its time has not passed yet;
    otherwise the next matching date is used. Monthly rules skip months
    that lack the day rather than moving to the month's last day.
    """

    def __init__(
        self,
        timezone: Union[str, ZoneInfo],
        default_time: time = time(0, 0),
    ):
        self.timezone = get_zone(timezone)
        self.default_time = default_time

    def resolve_anchor(
        self,
        rule: RecurrenceRule,
        now: datetime,
        explicit_date: Optional[date] = None,
        default_time: Optional[time] = None,
    ) -> date:
        """Resolve the first occurrence date of a rule.

        Args:
            rule: Rule being created
            now: Current moment (naive values are local time)
            explicit_date: Date supplied by the user, if any
            default_time: Time assumed when the rule has none; falls back
                to the resolver's default

        Returns:
            Anchor date

        Raises:
            InvalidRuleError: explicit_date does not satisfy the rule
        """
        if isinstance(rule, SingleRule):
            if explicit_date is not None and explicit_date != rule.date:
                raise InvalidRuleError(
                    f"Date {explicit_date.isoformat()} does not match session date "
                    f"{rule.date.isoformat()}",
                    field="explicit_date",
                )
            return rule.date

        if explicit_date is not None:
            if not matches(rule, explicit_date):
                raise InvalidRuleError(
                    f"Date {explicit_date.isoformat()} does not fall on the "
                    f"{rule.recurrence_type.value} rule",
                    field="explicit_date",
                )
            return explicit_date

        local_now = to_local(now, self.timezone)
        today = local_now.date()
        slot_time = rule.time_of_day or default_time or self.default_time
        still_today = local_now < combine(today, slot_time, self.timezone)

        if isinstance(rule, DailyRule):
            return today if still_today else today + timedelta(days=1)

        if isinstance(rule, WeeklyRule):
            if weekday_of(today) in rule.days_of_week and still_today:
                return today
            return next_weekday_on_or_after(today + timedelta(days=1), rule.days_of_week)

        if isinstance(rule, MonthlyRule):
            return self._monthly_anchor(rule, local_now, slot_time)

        raise InvalidRuleError(f"Unknown rule type: {type(rule).__name__}")

    def _monthly_anchor(self, rule: MonthlyRule, local_now: datetime, slot_time: time) -> date:
        today = local_now.date()
        day_of_month = rule.day_of_month

        if month_has_day(today.year, today.month, day_of_month):
            candidate = date(today.year, today.month, day_of_month)
            if combine(candidate, slot_time, self.timezone) > local_now:
                return candidate

        year, month = add_months(today.year, today.month, 1)
        anchor = next_month_day_on_or_after(date(year, month, 1), day_of_month)
        if anchor is None:
            # Every day 1..31 exists within any twelve-month span
            raise InvalidRuleError(f"No month contains day {day_of_month}")
        logger.debug(f"Monthly day {day_of_month} anchored to {anchor.isoformat()}")
        return anchor
