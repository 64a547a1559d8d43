"""
Google Calendar provider – implements the CalendarProvider protocol.

Translates Calendar v3 event resources into sessionbook.models. This is the
only layer that knows about both the Google event shape and ours.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sessionbook.config import (
    CALENDAR_TIMEZONE,
    GOOGLE_CALENDAR_ID,
    GOOGLE_DELEGATED_USER,
    GOOGLE_PRIVATE_KEY,
    GOOGLE_SERVICE_ACCOUNT_EMAIL,
    PROVIDER_TIMEOUT_SECONDS,
)
from sessionbook.errors import ProviderUnavailable
from sessionbook.models import EventDraft, ExternalCalendarEvent
from sessionbook.services.google_calendar.api_models import Event, EventDateTime
from sessionbook.services.google_calendar.auth import ServiceAccountSigner
from sessionbook.services.google_calendar.client import GoogleCalendarClient
from sessionbook.services.google_calendar.config import IDEMPOTENCY_PROPERTY, REMINDERS

logger = logging.getLogger(__name__)


class GoogleCalendarProvider:
    """
    Implements the CalendarProvider protocol for one Google calendar.

    Usage::

        client = GoogleCalendarClient(calendar_id=..., signer=..., service_account_email=...)
        provider = GoogleCalendarProvider(client)
        events = await provider.list_events(date.today())
    """

    name = "google"

    def __init__(self, client: GoogleCalendarClient, *, timezone: str = CALENDAR_TIMEZONE) -> None:
        self._client = client
        self._tz_name = timezone
        self._tz = ZoneInfo(timezone)

    @classmethod
    def from_config(cls) -> GoogleCalendarProvider:
        client = GoogleCalendarClient(
            calendar_id=GOOGLE_CALENDAR_ID,
            signer=ServiceAccountSigner(GOOGLE_PRIVATE_KEY),
            service_account_email=GOOGLE_SERVICE_ACCOUNT_EMAIL,
            subject=GOOGLE_DELEGATED_USER or None,
            timeout=PROVIDER_TIMEOUT_SECONDS,
        )
        return cls(client)

    async def close(self) -> None:
        await self._client.close()

    # ── Translation ───────────────────────────────────────────────────

    @staticmethod
    def _zone(name: str) -> ZoneInfo:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ProviderUnavailable(f"Google event has unknown timeZone {name!r}") from exc

    def _to_datetime(self, value: EventDateTime) -> datetime:
        if value.dateTime is not None:
            if value.dateTime.tzinfo is None:
                tz = self._zone(value.timeZone) if value.timeZone else self._tz
                return value.dateTime.replace(tzinfo=tz)
            return value.dateTime
        if value.date_ is not None:
            # All-day events: midnight in the calendar's timezone.
            return datetime.combine(value.date_, time.min, tzinfo=self._tz)
        raise ProviderUnavailable("Google event time has neither dateTime nor date")

    def _to_domain(self, event: Event) -> ExternalCalendarEvent:
        key = None
        if event.extendedProperties is not None:
            key = event.extendedProperties.private.get(IDEMPOTENCY_PROPERTY)
        return ExternalCalendarEvent(
            id=event.id,
            link=event.htmlLink,
            idempotency_key=key or event.iCalUID,
            summary=event.summary,
            description=event.description,
            start=self._to_datetime(event.start),
            end=self._to_datetime(event.end),
            attendees=[a.email for a in event.attendees],
        )

    def _to_body(self, draft: EventDraft) -> dict[str, Any]:
        return {
            "iCalUID": draft.idempotency_key,
            "summary": draft.summary,
            "description": draft.description,
            "location": draft.location,
            "start": {"dateTime": draft.start.isoformat(), "timeZone": draft.timezone},
            "end": {"dateTime": draft.end.isoformat(), "timeZone": draft.timezone},
            "attendees": [{"email": email} for email in draft.attendees],
            "reminders": REMINDERS,
            "extendedProperties": {"private": {IDEMPOTENCY_PROPERTY: draft.idempotency_key}},
        }

    # ── CalendarProvider protocol ─────────────────────────────────────

    async def list_events(self, day: date) -> list[ExternalCalendarEvent]:
        day_start = datetime.combine(day, time.min, tzinfo=self._tz)
        events = await self._client.list_events(
            time_min=day_start,
            time_max=day_start + timedelta(days=1),
        )
        return [self._to_domain(ev) for ev in events if ev.status != "cancelled"]

    async def find_event(self, idempotency_key: str) -> ExternalCalendarEvent | None:
        events = await self._client.list_events(ical_uid=idempotency_key)
        live = [ev for ev in events if ev.status != "cancelled"]
        if not live:
            return None
        if len(live) > 1:
            logger.warning(
                "%d live events share key %s, using the first", len(live), idempotency_key
            )
        return self._to_domain(live[0])

    async def create_event(self, draft: EventDraft) -> ExternalCalendarEvent:
        event = await self._client.insert_event(self._to_body(draft))
        logger.info("Created Google Calendar event %s (key=%s)", event.id, draft.idempotency_key)
        return self._to_domain(event)
