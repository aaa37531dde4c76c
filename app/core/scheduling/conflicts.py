"""
Conflict Detection.

Two tiers:
- Intake: only the first occurrence of a new rule is compared against
  existing sessions, by exact date and time of day. Later occurrences
  of a recurring rule are not checked; callers tell the user so.
- Sync: a single concrete occurrence is compared by real time-interval
  overlap before it is pushed to the external calendar.

Only scheduled sessions take part in either tier.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from app.core.scheduling.calculator import OccurrenceCalculator
from app.core.scheduling.errors import RepositoryUnavailable
from app.core.scheduling.types import Occurrence, ScheduledSession

logger = logging.getLogger(__name__)


def intervals_overlap(
    start: datetime,
    end: datetime,
    other_start: datetime,
    other_end: datetime,
) -> bool:
    """Half-open interval overlap: touching edges do not conflict."""
    return start < other_end and end > other_start


class ConflictDetector:
    """Finds existing sessions that collide with a candidate."""

    def __init__(self, calculator: OccurrenceCalculator):
        self.calculator = calculator

    def first_occurrence(self, candidate: ScheduledSession) -> Optional[Occurrence]:
        """The candidate's first occurrence, starting at its anchor date."""
        if candidate.anchor_date is None:
            return None
        return self.calculator.occurrence_on(candidate, candidate.anchor_date)

    def find_conflicts(
        self,
        candidate: ScheduledSession,
        existing: Optional[Sequence[ScheduledSession]],
        exclude_id: Optional[str] = None,
    ) -> list[ScheduledSession]:
        """Intake check of a new or modified session.

        Args:
            candidate: Session with its anchor date resolved
            existing: Sessions already stored for the owner, or None when
                they could not be loaded
            exclude_id: Session to ignore, e.g. the one being modified

        Returns:
            Existing sessions with an occurrence at the same date and time
            as the candidate's first occurrence

        Raises:
            RepositoryUnavailable: existing is None
        """
        if existing is None:
            raise RepositoryUnavailable(
                "Existing sessions unavailable; conflicts were not checked"
            )

        first = self.first_occurrence(candidate)
        if first is None:
            return []

        conflicts = []
        for session in existing:
            if not self._comparable(session, candidate, exclude_id):
                continue

            other = self.calculator.occurrence_on(session, first.date)
            if other is not None and other.start == first.start:
                conflicts.append(session)

        if conflicts:
            logger.info(
                f"Intake conflict for {candidate.subject_name} on {first.date.isoformat()}: "
                f"{len(conflicts)} session(s)"
            )
        return conflicts

    def find_overlaps(
        self,
        occurrence: Occurrence,
        existing: Iterable[Occurrence],
        exclude_id: Optional[str] = None,
    ) -> list[Occurrence]:
        """Sync-time check against concrete occurrences by interval overlap."""
        overlaps = []
        for other in existing:
            if exclude_id is not None and other.source_rule_id == exclude_id:
                continue
            if other.source_rule_id == occurrence.source_rule_id and other.date == occurrence.date:
                continue
            if intervals_overlap(occurrence.start, occurrence.end, other.start, other.end):
                overlaps.append(other)
        return overlaps

    def find_session_overlaps(
        self,
        occurrence: Occurrence,
        sessions: Optional[Sequence[ScheduledSession]],
        exclude_id: Optional[str] = None,
    ) -> list[Occurrence]:
        """Sync-time check against stored sessions.

        Sessions are expanded over the occurrence's date and its
        neighbours so that sessions crossing midnight are seen.

        Raises:
            RepositoryUnavailable: sessions is None
        """
        if sessions is None:
            raise RepositoryUnavailable(
                "Existing sessions unavailable; overlap was not checked"
            )

        first_day = occurrence.start.astimezone(self.calculator.timezone).date() - timedelta(days=1)
        last_day = occurrence.end.astimezone(self.calculator.timezone).date() + timedelta(days=1)
        span = (last_day - first_day).days + 1

        nearby: list[Occurrence] = []
        for session in sessions:
            if not session.is_active:
                continue
            if exclude_id is not None and session.id == exclude_id:
                continue
            nearby.extend(self.calculator.expand(session, first_day, last_day, max_count=span))

        return self.find_overlaps(occurrence, nearby, exclude_id=exclude_id)

    @staticmethod
    def _comparable(
        session: ScheduledSession,
        candidate: ScheduledSession,
        exclude_id: Optional[str],
    ) -> bool:
        if not session.is_active:
            return False
        if session.id in (exclude_id, candidate.id):
            return False
        return session.owner_id == candidate.owner_id
