"""
Schedule Engine - Main Orchestrator.

Ties the resolver, calculator, conflict detector and descriptor
translator together behind the operations the conversation layer
calls. Holds only immutable configuration; persistence and calendar
sync happen in the caller around it.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Literal, Optional, Sequence, Union
from uuid import uuid4
from zoneinfo import ZoneInfo

from app.config import Settings, get_settings
from app.core.scheduling.calculator import DEFAULT_MAX_COUNT, OccurrenceCalculator
from app.core.scheduling.conflicts import ConflictDetector
from app.core.scheduling.dates import format_time, get_zone, parse_date, to_local
from app.core.scheduling.descriptor import RecurrenceDescriptor, to_descriptor
from app.core.scheduling.errors import (
    InvalidRuleError,
    RecurrenceDisabledError,
    RepositoryUnavailable,
)
from app.core.scheduling.resolver import StartDateResolver
from app.core.scheduling.types import (
    Occurrence,
    RecurrenceRequest,
    RecurrenceRule,
    ScheduledSession,
    build_rule,
)

logger = logging.getLogger(__name__)

DegradePolicy = Literal["warn", "block"]

FIRST_OCCURRENCE_NOTICE = (
    "Only the first occurrence was checked for conflicts; "
    "please confirm later occurrences yourself."
)
UNVERIFIED_NOTICE = (
    "Existing sessions could not be loaded, so conflicts were not checked."
)


@dataclass
class ConflictReport:
    """Outcome of an intake conflict check."""

    conflicts: list[ScheduledSession] = field(default_factory=list)
    checked_date: Optional[date] = None
    checked_time: Optional[time] = None
    first_occurrence_only: bool = False
    verified: bool = True
    warning: Optional[str] = None

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {
            "has_conflict": self.has_conflict,
            "conflicts": [
                {
                    "id": s.id,
                    "subject_name": s.subject_name,
                    "participant_name": s.participant_name,
                }
                for s in self.conflicts
            ],
            "first_occurrence_only": self.first_occurrence_only,
            "verified": self.verified,
        }

        if self.checked_date:
            result["checked_date"] = self.checked_date.isoformat()
        if self.checked_time:
            result["checked_time"] = format_time(self.checked_time)
        if self.warning:
            result["warning"] = self.warning

        return result


@dataclass
class SessionPlan:
    """A new session ready to be persisted and synced."""

    session: ScheduledSession
    descriptor: Optional[RecurrenceDescriptor]
    conflicts: ConflictReport


@dataclass
class Agenda:
    """Merged occurrences of an owner's sessions for a window."""

    occurrences: list[Occurrence] = field(default_factory=list)
    truncated: bool = False
    window_start: Optional[date] = None
    window_end: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "occurrences": [o.to_dict() for o in self.occurrences],
            "count": len(self.occurrences),
            "truncated": self.truncated,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
        }


class ScheduleEngine:
    """
    Entry point of the recurring schedule engine.

    Coordinates:
    - Rule construction and the recurring feature toggle
    - Anchor date resolution
    - Intake and sync-time conflict checks
    - Agenda queries over a window
    """

    def __init__(
        self,
        timezone: Union[str, ZoneInfo],
        recurring_enabled: bool = True,
        default_time: time = time(0, 0),
        default_duration_minutes: int = 60,
        max_occurrences_per_rule: int = DEFAULT_MAX_COUNT,
        degrade_policy: DegradePolicy = "warn",
    ):
        """Initialize engine.

        Args:
            timezone: Zone all session times are expressed in
            recurring_enabled: Accept daily/weekly/monthly rules
            default_time: Time used for sessions without a time of day
            default_duration_minutes: Session length when none is given
            max_occurrences_per_rule: Per-rule floor in agenda queries;
                raised to the window length in days
            degrade_policy: "warn" to proceed unverified when existing
                sessions are unavailable, "block" to raise
        """
        self.timezone = get_zone(timezone)
        self.recurring_enabled = recurring_enabled
        self.default_time = default_time
        self.default_duration_minutes = default_duration_minutes
        self.max_occurrences_per_rule = max_occurrences_per_rule
        self.degrade_policy = degrade_policy

        self.calculator = OccurrenceCalculator(
            self.timezone,
            default_time=default_time,
            default_duration_minutes=default_duration_minutes,
        )
        self.resolver = StartDateResolver(self.timezone, default_time=default_time)
        self.detector = ConflictDetector(self.calculator)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScheduleEngine":
        """Build an engine from application settings."""
        return cls(
            timezone=settings.timezone,
            recurring_enabled=settings.recurring_enabled,
            default_time=settings.default_time_of_day,
            default_duration_minutes=settings.default_session_minutes,
            max_occurrences_per_rule=settings.max_occurrences_per_rule,
            degrade_policy=settings.conflict_degrade_policy,
        )

    # === Rules and sessions ===

    def build_rule(self, request: RecurrenceRequest) -> RecurrenceRule:
        """Build the rule variant for a request.

        Raises:
            RecurrenceDisabledError: Recurring request while disabled
            InvalidRuleError: Malformed rule fields
        """
        if request.is_recurring and not self.recurring_enabled:
            raise RecurrenceDisabledError("Recurring sessions are not enabled")

        return build_rule(
            recurrence_type=request.recurrence_type,
            days_of_week=request.days_of_week,
            day_of_month=request.day_of_month,
            time_of_day=request.time_of_day,
            explicit_date=request.explicit_date,
        )

    def create_session(self, request: RecurrenceRequest, now: datetime) -> ScheduledSession:
        """Build a session from a request with its anchor date resolved."""
        rule = self.build_rule(request)

        explicit_date = None
        if rule.is_recurring:
            try:
                explicit_date = parse_date(request.explicit_date)
            except ValueError:
                raise InvalidRuleError(
                    f"Invalid date: {request.explicit_date!r}", field="explicit_date"
                )

        anchor = self.resolver.resolve_anchor(rule, now, explicit_date=explicit_date)

        return ScheduledSession(
            id=request.session_id or str(uuid4()),
            owner_id=request.owner_id,
            subject_name=request.subject_name,
            participant_name=request.participant_name,
            rule=rule,
            anchor_date=anchor,
            location=request.location,
            teacher=request.teacher,
            duration_minutes=request.duration_minutes or self.default_duration_minutes,
        )

    def plan_session(
        self,
        request: RecurrenceRequest,
        now: datetime,
        existing: Optional[Sequence[ScheduledSession]],
    ) -> SessionPlan:
        """Create a session, check its first occurrence, and describe it for sync.

        Args:
            request: Parsed request from the conversation layer
            now: Current moment
            existing: Owner's stored sessions, or None if they could not
                be loaded

        Returns:
            SessionPlan for the caller to persist and sync
        """
        session = self.create_session(request, now)
        report = self.check_intake(session, existing)

        logger.info(
            f"Planned {session.recurrence_type.value} session {session.id} "
            f"anchored {session.anchor_date.isoformat()} "
            f"(conflicts={len(report.conflicts)}, verified={report.verified})"
        )

        return SessionPlan(
            session=session,
            descriptor=to_descriptor(session.rule),
            conflicts=report,
        )

    # === Conflicts ===

    def check_intake(
        self,
        candidate: ScheduledSession,
        existing: Optional[Sequence[ScheduledSession]],
        exclude_id: Optional[str] = None,
    ) -> ConflictReport:
        """Intake conflict check on the candidate's first occurrence.

        Raises:
            RepositoryUnavailable: existing is None and the policy is "block"
        """
        first = self.detector.first_occurrence(candidate)
        report = ConflictReport(
            checked_date=first.date if first else candidate.anchor_date,
            checked_time=candidate.rule.time_of_day or self.default_time,
            first_occurrence_only=candidate.is_recurring,
        )

        try:
            report.conflicts = self.detector.find_conflicts(candidate, existing, exclude_id)
        except RepositoryUnavailable:
            if self.degrade_policy == "block":
                raise
            logger.warning(
                f"Conflict check skipped for session {candidate.id}: existing sessions unavailable"
            )
            report.verified = False
            report.warning = UNVERIFIED_NOTICE
            return report

        if report.first_occurrence_only:
            report.warning = FIRST_OCCURRENCE_NOTICE
        return report

    def check_sync(
        self,
        occurrence: Occurrence,
        sessions: Optional[Sequence[ScheduledSession]],
        exclude_id: Optional[str] = None,
    ) -> list[Occurrence]:
        """Exact overlap check for one occurrence about to be synced."""
        return self.detector.find_session_overlaps(occurrence, sessions, exclude_id)

    # === Queries ===

    def list_occurrences(
        self,
        owner_id: str,
        sessions: Sequence[ScheduledSession],
        window_start: date,
        window_end: date,
        limit: Optional[int] = None,
    ) -> Agenda:
        """Merged, sorted agenda of an owner's active sessions.

        Args:
            owner_id: Owner whose sessions are listed
            sessions: Stored sessions (other owners are ignored)
            window_start: First date of the window
            window_end: Last date of the window
            limit: Maximum occurrences in the merged agenda

        Returns:
            Agenda ordered by start time
        """
        agenda = Agenda(window_start=window_start, window_end=window_end)
        if window_end < window_start:
            return agenda

        # A rule can have at most one occurrence per day of the window
        per_rule = max(self.max_occurrences_per_rule, (window_end - window_start).days + 1)

        for session in sessions:
            if session.owner_id != owner_id or not session.is_active:
                continue

            result = self.calculator.expand(
                session,
                window_start,
                window_end,
                max_count=per_rule,
            )
            agenda.occurrences.extend(result.occurrences)
            if result.truncated:
                agenda.truncated = True

        agenda.occurrences.sort(key=lambda o: (o.start, o.source_rule_id))
        if limit is not None:
            agenda.occurrences = agenda.occurrences[:limit]

        logger.debug(
            f"Agenda for {owner_id} {window_start.isoformat()}..{window_end.isoformat()}: "
            f"{len(agenda.occurrences)} occurrence(s)"
        )
        return agenda

    def default_window(self, now: datetime, days: int) -> tuple[date, date]:
        """Window from today covering ``days`` days."""
        today = to_local(now, self.timezone).date()
        return today, today + timedelta(days=max(days, 1) - 1)

    def next_occurrence(self, session: ScheduledSession, now: datetime) -> Optional[Occurrence]:
        """Next occurrence of a session at or after now."""
        return self.calculator.next_occurrence(session, now)


# Singleton
_engine: Optional[ScheduleEngine] = None


def get_schedule_engine() -> ScheduleEngine:
    """Get singleton ScheduleEngine built from settings."""
    global _engine
    if _engine is None:
        _engine = ScheduleEngine.from_settings(get_settings())
    return _engine
