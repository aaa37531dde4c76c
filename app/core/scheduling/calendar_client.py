"""
HTTP client for the external calendar API.

The calendar service runs separately and exposes a REST API for:
- Listing events in a time range
- Creating/updating/deleting events (with RRULE recurrence)
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

import httpx

from app.config import get_settings
from app.core.scheduling.conflicts import intervals_overlap
from app.core.scheduling.dates import combine, get_zone
from app.core.scheduling.descriptor import describe, recurrence_lines
from app.core.scheduling.errors import RepositoryUnavailable
from app.core.scheduling.types import Occurrence, ScheduledSession

logger = logging.getLogger(__name__)


@dataclass
class CalendarEvent:
    """Event as returned by the calendar API."""

    event_id: str
    summary: str
    start: datetime
    end: datetime
    is_recurring: bool = False

    @classmethod
    def from_dict(cls, data: dict, tz: Optional[ZoneInfo] = None) -> "CalendarEvent":
        """Create from API response dict.

        Accepts both ``{"start": {"dateTime": ...}}`` and flat
        ``start_time`` keys. All-day events use their date at midnight.
        Naive times are read in ``tz`` when given.
        """
        return cls(
            event_id=data.get("id", data.get("event_id", "")),
            summary=data.get("summary", ""),
            start=_parse_moment(data.get("start", data.get("start_time")), tz),
            end=_parse_moment(data.get("end", data.get("end_time")), tz),
            is_recurring=bool(data.get("recurrence")),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "summary": self.summary,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "is_recurring": self.is_recurring,
        }


def _parse_moment(value, tz: Optional[ZoneInfo] = None) -> datetime:
    if isinstance(value, dict):
        value = value.get("dateTime") or value.get("date")
    if not value:
        raise ValueError("Event is missing a start or end time")
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None and tz is not None:
        moment = moment.replace(tzinfo=tz)
    return moment


@dataclass
class SyncResult:
    """Result of a calendar write."""

    success: bool
    event_id: Optional[str] = None
    message: Optional[str] = None
    error_code: Optional[str] = None
    conflicts: Optional[list[CalendarEvent]] = None


class CalendarSyncClient:
    """
    HTTP client for the calendar API.

    The calendar API exposes:
    - GET /calendars/{id}/events - List events between timeMin and timeMax
    - POST /calendars/{id}/events - Create event
    - PUT /calendars/{id}/events/{event_id} - Update event
    - DELETE /calendars/{id}/events/{event_id} - Delete event
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        timezone: Optional[str] = None,
    ):
        """Initialize client.

        Args:
            base_url: Calendar API base URL (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings)
            timezone: Zone of event times (defaults to settings)
        """
        settings = get_settings()
        self.base_url = base_url or settings.calendar_api_url
        self.timeout = timeout or settings.calendar_api_timeout
        self.timezone = get_zone(timezone or settings.timezone)
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # === Events ===

    async def list_events(self, calendar_id: str, day: date) -> list[CalendarEvent]:
        """List events on one local day.

        Raises:
            RepositoryUnavailable: The calendar API could not be read.
                An unreadable calendar is never reported as empty.
        """
        client = await self._get_client()
        day_start = combine(day, datetime.min.time(), self.timezone)
        day_end = day_start + timedelta(days=1)

        try:
            response = await client.get(
                f"/calendars/{calendar_id}/events",
                params={
                    "timeMin": day_start.isoformat(),
                    "timeMax": day_end.isoformat(),
                    "singleEvents": "true",
                },
            )
            response.raise_for_status()

            data = response.json()
            if isinstance(data, list):
                items = data
            else:
                items = data.get("items", data.get("events", []))
            return [CalendarEvent.from_dict(item, self.timezone) for item in items]

        except httpx.HTTPError as e:
            logger.error(f"Failed to list events for {day.isoformat()}: {e}")
            raise RepositoryUnavailable(f"Calendar unavailable: {e}") from e

    async def check_conflict(
        self,
        calendar_id: str,
        occurrence: Occurrence,
        exclude_event_id: Optional[str] = None,
    ) -> list[CalendarEvent]:
        """Events overlapping an occurrence's time interval."""
        events = await self.list_events(calendar_id, occurrence.date)

        conflicts = [
            event
            for event in events
            if event.event_id != exclude_event_id
            and intervals_overlap(occurrence.start, occurrence.end, event.start, event.end)
        ]
        if conflicts:
            logger.info(
                f"Calendar conflict at {occurrence.start.isoformat()}: {len(conflicts)} event(s)"
            )
        return conflicts

    def build_event_payload(self, session: ScheduledSession, occurrence: Occurrence) -> dict:
        """Event body for a session starting at the given occurrence."""
        description = [describe(session.rule), f"Participant: {session.participant_name}"]
        if session.teacher:
            description.append(f"Teacher: {session.teacher}")

        payload: dict = {
            "summary": f"{session.participant_name} - {session.subject_name}",
            "description": "\n".join(description),
            "start": {"dateTime": occurrence.start.isoformat(), "timeZone": self.timezone.key},
            "end": {"dateTime": occurrence.end.isoformat(), "timeZone": self.timezone.key},
            "recurrence": recurrence_lines(session.rule),
            "extendedProperties": {"private": {"session_id": session.id}},
        }
        if occurrence.location or session.location:
            payload["location"] = occurrence.location or session.location
        return payload

    async def create_event(
        self,
        calendar_id: str,
        session: ScheduledSession,
        occurrence: Occurrence,
        check_conflicts: bool = True,
    ) -> SyncResult:
        """Create the calendar event for a session.

        Args:
            calendar_id: Target calendar
            session: Session being synced
            occurrence: First concrete occurrence (event start/end)
            check_conflicts: Refuse to write over overlapping events

        Returns:
            SyncResult with success status
        """
        if check_conflicts:
            try:
                conflicts = await self.check_conflict(calendar_id, occurrence)
            except RepositoryUnavailable as e:
                return SyncResult(
                    success=False,
                    error_code="calendar_unavailable",
                    message=str(e),
                )
            if conflicts:
                return SyncResult(
                    success=False,
                    error_code="time_conflict",
                    message="The time overlaps existing calendar events",
                    conflicts=conflicts,
                )

        client = await self._get_client()

        try:
            response = await client.post(
                f"/calendars/{calendar_id}/events",
                json=self.build_event_payload(session, occurrence),
            )

            data = response.json()

            if response.status_code in (200, 201):
                return SyncResult(
                    success=True,
                    event_id=data.get("id", data.get("event_id")),
                    message="Event created",
                )
            else:
                return SyncResult(
                    success=False,
                    error_code=data.get("error_code", "create_failed"),
                    message=data.get("message", data.get("error", "Event creation failed")),
                )

        except httpx.HTTPError as e:
            logger.error(f"Failed to create event: {e}")
            return SyncResult(
                success=False,
                error_code="connection_error",
                message="Unable to connect to calendar",
            )

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        session: ScheduledSession,
        occurrence: Occurrence,
    ) -> SyncResult:
        """Replace an event with the session's current rule and times."""
        try:
            conflicts = await self.check_conflict(
                calendar_id, occurrence, exclude_event_id=event_id
            )
        except RepositoryUnavailable as e:
            return SyncResult(success=False, error_code="calendar_unavailable", message=str(e))
        if conflicts:
            return SyncResult(
                success=False,
                event_id=event_id,
                error_code="time_conflict",
                message="The new time overlaps existing calendar events",
                conflicts=conflicts,
            )

        client = await self._get_client()

        try:
            response = await client.put(
                f"/calendars/{calendar_id}/events/{event_id}",
                json=self.build_event_payload(session, occurrence),
            )

            if response.status_code == 200:
                return SyncResult(success=True, event_id=event_id, message="Event updated")

            data = response.json()
            return SyncResult(
                success=False,
                event_id=event_id,
                error_code=data.get("error_code", "update_failed"),
                message=data.get("message", "Event update failed"),
            )

        except httpx.HTTPError as e:
            logger.error(f"Failed to update event {event_id}: {e}")
            return SyncResult(
                success=False,
                event_id=event_id,
                error_code="connection_error",
                message="Unable to connect to calendar",
            )

    async def delete_event(self, calendar_id: str, event_id: str) -> SyncResult:
        """Delete an event."""
        client = await self._get_client()

        try:
            response = await client.delete(f"/calendars/{calendar_id}/events/{event_id}")

            if response.status_code in (200, 204, 410):
                return SyncResult(success=True, event_id=event_id, message="Event deleted")

            data = response.json()
            return SyncResult(
                success=False,
                event_id=event_id,
                error_code=data.get("error_code", "delete_failed"),
                message=data.get("message", "Event deletion failed"),
            )

        except httpx.HTTPError as e:
            logger.error(f"Failed to delete event {event_id}: {e}")
            return SyncResult(
                success=False,
                event_id=event_id,
                error_code="connection_error",
                message="Unable to connect to calendar",
            )


# Singleton
_client: Optional[CalendarSyncClient] = None


def get_calendar_client() -> CalendarSyncClient:
    """Get singleton CalendarSyncClient."""
    global _client
    if _client is None:
        _client = CalendarSyncClient()
    return _client


async def check_calendar_health() -> bool:
    """Check that the calendar API answers."""
    client = await get_calendar_client()._get_client()
    try:
        response = await client.get("/health")
        return response.status_code < 500
    except httpx.HTTPError as e:
        logger.warning(f"Calendar health check failed: {e}")
        return False
