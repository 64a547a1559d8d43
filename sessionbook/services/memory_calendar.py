"""
In-process calendar used for local development and as the base of the
test fakes.

Behaves like the real provider where it matters to the pipeline: events
are append-only, and creating a second event with an existing idempotency
key raises DuplicateEventError.
"""

from __future__ import annotations

import asyncio
import itertools
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from sessionbook.config import CALENDAR_TIMEZONE
from sessionbook.errors import DuplicateEventError
from sessionbook.models import EventDraft, ExternalCalendarEvent


class InMemoryCalendarProvider:
    name = "memory"

    def __init__(
        self,
        events: list[ExternalCalendarEvent] | None = None,
        *,
        timezone: str = CALENDAR_TIMEZONE,
    ) -> None:
        self._tz = ZoneInfo(timezone)
        self._events: list[ExternalCalendarEvent] = list(events or [])
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()
        self.create_calls = 0

    @property
    def events(self) -> list[ExternalCalendarEvent]:
        return list(self._events)

    def add_event(self, event: ExternalCalendarEvent) -> None:
        """Seed an event that some other system created."""
        self._events.append(event)

    async def list_events(self, day: date) -> list[ExternalCalendarEvent]:
        day_start = datetime.combine(day, time.min, tzinfo=self._tz)
        day_end = day_start + timedelta(days=1)
        return sorted(
            (ev for ev in self._events if ev.start < day_end and ev.end > day_start),
            key=lambda ev: ev.start,
        )

    async def find_event(self, idempotency_key: str) -> ExternalCalendarEvent | None:
        for ev in self._events:
            if ev.idempotency_key == idempotency_key:
                return ev
        return None

    async def create_event(self, draft: EventDraft) -> ExternalCalendarEvent:
        async with self._lock:
            self.create_calls += 1
            if await self.find_event(draft.idempotency_key) is not None:
                raise DuplicateEventError(
                    f"event with key {draft.idempotency_key} already exists",
                    status_code=409,
                )
            event_id = f"mem{next(self._ids):06d}"
            event = ExternalCalendarEvent(
                id=event_id,
                link=f"memory://events/{event_id}",
                idempotency_key=draft.idempotency_key,
                summary=draft.summary,
                description=draft.description,
                start=draft.start,
                end=draft.end,
                attendees=list(draft.attendees),
            )
            self._events.append(event)
            return event

    async def close(self) -> None:
        pass
