"""
Schedule API Endpoints.

Exposes the recurring schedule engine to the conversation layer.
The service is stateless: callers send the owner's stored sessions
with each request and persist what comes back.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, status
from pydantic import BaseModel, Field

from app.config import settings
from app.core.scheduling import (
    InvalidRuleError,
    Occurrence,
    RecurrenceRequest,
    RecurrenceType,
    ScheduledSession,
    SessionException,
    SessionStatus,
    build_rule,
    describe,
    get_schedule_engine,
    to_descriptor,
)
from app.core.scheduling.dates import format_time

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedule", tags=["Schedule"])


# === Schemas ===


class RuleModel(BaseModel):
    """Recurrence rule fields."""

    recurrence_type: RecurrenceType = Field(
        default=RecurrenceType.NONE,
        description="none, daily, weekly or monthly",
    )
    days_of_week: Optional[list[int]] = Field(
        default=None,
        description="Weekdays for weekly rules, 0=Sunday ... 6=Saturday",
        examples=[[3]],
    )
    day_of_month: Optional[int] = Field(
        default=None,
        description="Day of month for monthly rules (1-31)",
    )
    time_of_day: Optional[str] = Field(
        default=None,
        description="Session start time, HH:MM",
        examples=["15:00"],
    )
    date: Optional[str] = Field(
        default=None,
        description="Session date for single sessions, YYYY-MM-DD",
    )


class ExceptionModel(BaseModel):
    """Override for one instance date."""

    date: str
    suppressed: bool = False
    time_of_day: Optional[str] = None
    location: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)


class SessionModel(BaseModel):
    """Stored session as held by the persistence layer."""

    id: str
    owner_id: str
    subject_name: str
    participant_name: str
    rule: RuleModel
    anchor_date: Optional[str] = None
    location: Optional[str] = None
    teacher: Optional[str] = None
    status: SessionStatus = SessionStatus.SCHEDULED
    exceptions: list[ExceptionModel] = Field(default_factory=list)
    duration_minutes: int = Field(default=60, gt=0)

    def to_domain(self) -> ScheduledSession:
        rule = build_rule(
            recurrence_type=self.rule.recurrence_type,
            days_of_week=self.rule.days_of_week,
            day_of_month=self.rule.day_of_month,
            time_of_day=self.rule.time_of_day,
            explicit_date=self.rule.date,
        )
        try:
            exceptions = tuple(SessionException.from_dict(e.model_dump()) for e in self.exceptions)
        except ValueError as e:
            raise InvalidRuleError(f"Invalid exception entry: {e}", field="exceptions") from e

        return ScheduledSession(
            id=self.id,
            owner_id=self.owner_id,
            subject_name=self.subject_name,
            participant_name=self.participant_name,
            rule=rule,
            anchor_date=_date_or_none(self.anchor_date),
            location=self.location,
            teacher=self.teacher,
            status=self.status,
            exceptions=exceptions,
            duration_minutes=self.duration_minutes,
        )

    @classmethod
    def from_domain(cls, session: ScheduledSession) -> "SessionModel":
        rule = session.rule
        return cls(
            id=session.id,
            owner_id=session.owner_id,
            subject_name=session.subject_name,
            participant_name=session.participant_name,
            rule=RuleModel(
                recurrence_type=rule.recurrence_type,
                days_of_week=getattr(rule, "sorted_days", None),
                day_of_month=getattr(rule, "day_of_month", None),
                time_of_day=format_time(rule.time_of_day) if rule.time_of_day else None,
                date=rule.date.isoformat() if hasattr(rule, "date") else None,
            ),
            anchor_date=session.anchor_date.isoformat() if session.anchor_date else None,
            location=session.location,
            teacher=session.teacher,
            status=session.status,
            exceptions=[ExceptionModel(**e.to_dict()) for e in session.exceptions],
            duration_minutes=session.duration_minutes,
        )


class PlanRequest(BaseModel):
    """New session request from the conversation layer."""

    owner_id: str = Field(..., min_length=1)
    participant_name: str = Field(..., min_length=1, examples=["Amy"])
    subject_name: str = Field(..., min_length=1, examples=["Piano"])
    rule: RuleModel
    explicit_date: Optional[str] = Field(
        default=None,
        description="Start date chosen by the user, YYYY-MM-DD",
    )
    location: Optional[str] = None
    teacher: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    now: Optional[datetime] = Field(
        default=None,
        description="Reference moment; defaults to the server clock",
    )
    existing_sessions: Optional[list[SessionModel]] = Field(
        default=None,
        description="Owner's stored sessions; omit when they could not be loaded",
    )

    def to_domain(self) -> RecurrenceRequest:
        explicit_date = self.explicit_date
        if self.rule.recurrence_type is RecurrenceType.NONE:
            explicit_date = self.rule.date or explicit_date
        return RecurrenceRequest(
            owner_id=self.owner_id,
            participant_name=self.participant_name,
            subject_name=self.subject_name,
            recurrence_type=self.rule.recurrence_type,
            days_of_week=tuple(self.rule.days_of_week) if self.rule.days_of_week is not None else None,
            day_of_month=self.rule.day_of_month,
            time_of_day=self.rule.time_of_day,
            explicit_date=explicit_date,
            location=self.location,
            teacher=self.teacher,
            duration_minutes=self.duration_minutes,
        )


class PlanResponse(BaseModel):
    """Session ready to persist and sync."""

    session: SessionModel
    label: str
    descriptor: Optional[dict] = None
    rrule: Optional[str] = None
    conflicts: dict


class OccurrencesRequest(BaseModel):
    """Agenda query."""

    window_start: Optional[date] = None
    window_end: Optional[date] = None
    limit: Optional[int] = Field(default=None, gt=0)
    sessions: list[SessionModel] = Field(default_factory=list)


class SyncCheckRequest(BaseModel):
    """Exact overlap check for one occurrence."""

    session: SessionModel
    occurrence_date: date
    sessions: Optional[list[SessionModel]] = None
    exclude_id: Optional[str] = None


class DescriptorResponse(BaseModel):
    descriptor: Optional[dict] = None
    rrule: Optional[str] = None
    label: str


def _date_or_none(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidRuleError(f"Invalid date: {value!r}", field="anchor_date")


def _sessions(models: Optional[list[SessionModel]]) -> Optional[list[ScheduledSession]]:
    if models is None:
        return None
    return [m.to_domain() for m in models]


# === Routes ===


@router.post(
    "/plan",
    response_model=PlanResponse,
    status_code=status.HTTP_200_OK,
    summary="Plan a new session",
    description="Resolve the first occurrence, check it for conflicts and describe the rule for calendar sync.",
)
async def plan_session(request: PlanRequest) -> PlanResponse:
    """
    Plan a new session.

    Only the first occurrence of a recurring rule is checked for
    conflicts; the response says so in ``conflicts.warning``.
    """
    engine = get_schedule_engine()
    plan = engine.plan_session(
        request.to_domain(),
        now=request.now or datetime.now(timezone.utc),
        existing=_sessions(request.existing_sessions),
    )

    return PlanResponse(
        session=SessionModel.from_domain(plan.session),
        label=describe(plan.session.rule),
        descriptor=plan.descriptor.to_dict() if plan.descriptor else None,
        rrule=plan.descriptor.to_rrule() if plan.descriptor else None,
        conflicts=plan.conflicts.to_dict(),
    )


@router.post(
    "/occurrences",
    response_model=dict,
    summary="List occurrences",
    description="Expand an owner's active sessions into a merged, sorted agenda.",
)
async def list_occurrences(
    request: OccurrencesRequest,
    x_owner_id: str = Header(
        ...,
        alias="X-Owner-ID",
        description="Owner whose sessions are listed",
    ),
) -> dict:
    """List occurrences in a window (defaults to the configured window from today)."""
    engine = get_schedule_engine()

    window_start, window_end = engine.default_window(
        datetime.now(timezone.utc), settings.default_window_days
    )
    if request.window_start:
        window_start = request.window_start
        window_end = window_start + timedelta(days=max(settings.default_window_days, 1) - 1)
    if request.window_end:
        window_end = request.window_end

    agenda = engine.list_occurrences(
        owner_id=x_owner_id,
        sessions=_sessions(request.sessions) or [],
        window_start=window_start,
        window_end=window_end,
        limit=request.limit,
    )
    return agenda.to_dict()


@router.post(
    "/conflicts/sync",
    response_model=dict,
    summary="Exact overlap check",
    description="Check one occurrence of a session against stored sessions by time-interval overlap.",
)
async def check_sync_conflicts(request: SyncCheckRequest) -> dict:
    """Overlap check before pushing an occurrence to the calendar."""
    engine = get_schedule_engine()
    session = request.session.to_domain()

    occurrence: Optional[Occurrence] = engine.calculator.occurrence_on(session, request.occurrence_date)
    if occurrence is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session has no occurrence on {request.occurrence_date.isoformat()}",
        )

    overlaps = engine.check_sync(
        occurrence,
        _sessions(request.sessions),
        exclude_id=request.exclude_id,
    )
    return {
        "occurrence": occurrence.to_dict(),
        "has_conflict": bool(overlaps),
        "conflicts": [o.to_dict() for o in overlaps],
    }


@router.post(
    "/descriptor",
    response_model=DescriptorResponse,
    summary="Describe a rule",
    description="Translate a rule into its calendar recurrence descriptor.",
)
async def rule_descriptor(rule: RuleModel) -> DescriptorResponse:
    """Descriptor, RRULE text and label for a rule."""
    domain_rule = build_rule(
        recurrence_type=rule.recurrence_type,
        days_of_week=rule.days_of_week,
        day_of_month=rule.day_of_month,
        time_of_day=rule.time_of_day,
        explicit_date=rule.date,
    )
    descriptor = to_descriptor(domain_rule)
    return DescriptorResponse(
        descriptor=descriptor.to_dict() if descriptor else None,
        rrule=descriptor.to_rrule() if descriptor else None,
        label=describe(domain_rule),
    )


@router.post(
    "/next",
    response_model=dict,
    summary="Next occurrence",
    description="Next occurrence of a session from now.",
)
async def next_occurrence(session: SessionModel) -> dict:
    """Next occurrence of one session, or null."""
    engine = get_schedule_engine()
    occurrence = engine.next_occurrence(session.to_domain(), datetime.now(timezone.utc))
    return {"occurrence": occurrence.to_dict() if occurrence else None}
