"""
Scheduling Module

Recurring schedule engine: expands recurrence rules into occurrences,
resolves the first date of new rules, detects conflicts and translates
rules into calendar recurrence descriptors.

Usage:
    from app.core.scheduling import (
        RecurrenceRequest,
        RecurrenceType,
        get_schedule_engine,
    )

    engine = get_schedule_engine()
    plan = engine.plan_session(
        RecurrenceRequest(
            owner_id="parent-1",
            participant_name="Amy",
            subject_name="Piano",
            recurrence_type=RecurrenceType.WEEKLY,
            days_of_week=(3,),
            time_of_day="15:00",
        ),
        now=datetime.now(timezone.utc),
        existing=stored_sessions,
    )
    print(plan.session.anchor_date)  # Next Wednesday (or today)
    print(plan.descriptor.to_rrule())  # FREQ=WEEKLY;BYDAY=WE
"""

# Errors
from app.core.scheduling.errors import (
    SchedulingError,
    InvalidRuleError,
    RecurrenceDisabledError,
    ComputationBoundExceeded,
    RepositoryUnavailable,
)

# Data model
from app.core.scheduling.types import (
    RecurrenceType,
    SessionStatus,
    SingleRule,
    DailyRule,
    WeeklyRule,
    MonthlyRule,
    RecurrenceRule,
    SessionException,
    ScheduledSession,
    Occurrence,
    ExpansionResult,
    RecurrenceRequest,
    build_rule,
    matches,
)

# Engine components
from app.core.scheduling.calculator import OccurrenceCalculator
from app.core.scheduling.resolver import StartDateResolver
from app.core.scheduling.conflicts import ConflictDetector, intervals_overlap
from app.core.scheduling.descriptor import (
    Frequency,
    RecurrenceDescriptor,
    to_descriptor,
    recurrence_lines,
    describe,
)

# Schedule Engine (main orchestrator)
from app.core.scheduling.engine import (
    ScheduleEngine,
    ConflictReport,
    SessionPlan,
    Agenda,
    get_schedule_engine,
)

# Calendar Client
from app.core.scheduling.calendar_client import (
    CalendarSyncClient,
    CalendarEvent,
    SyncResult,
    get_calendar_client,
    check_calendar_health,
)

__all__ = [
    # Errors
    "SchedulingError",
    "InvalidRuleError",
    "RecurrenceDisabledError",
    "ComputationBoundExceeded",
    "RepositoryUnavailable",
    # Data model
    "RecurrenceType",
    "SessionStatus",
    "SingleRule",
    "DailyRule",
    "WeeklyRule",
    "MonthlyRule",
    "RecurrenceRule",
    "SessionException",
    "ScheduledSession",
    "Occurrence",
    "ExpansionResult",
    "RecurrenceRequest",
    "build_rule",
    "matches",
    # Engine components
    "OccurrenceCalculator",
    "StartDateResolver",
    "ConflictDetector",
    "intervals_overlap",
    "Frequency",
    "RecurrenceDescriptor",
    "to_descriptor",
    "recurrence_lines",
    "describe",
    # Schedule Engine
    "ScheduleEngine",
    "ConflictReport",
    "SessionPlan",
    "Agenda",
    "get_schedule_engine",
    # Calendar Client
    "CalendarSyncClient",
    "CalendarEvent",
    "SyncResult",
    "get_calendar_client",
    "check_calendar_health",
]
