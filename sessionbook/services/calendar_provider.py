"""
Abstract interface for the external calendar that owns booked events.

The reconciler and the availability service only ever talk to this
protocol, so the Google integration can be swapped for the in-memory
calendar (local development, tests) without touching the pipeline.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Protocol

from sessionbook.models import EventDraft, ExternalCalendarEvent

logger = logging.getLogger(__name__)


class CalendarProvider(Protocol):
    """Protocol that every calendar integration must satisfy.

    Implementations raise the sessionbook.errors.CalendarProviderError
    family: ProviderUnavailable for transient failures, ProviderRejected for
    4xx, DuplicateEventError when creating an event whose idempotency key
    already exists.
    """

    name: str

    async def list_events(self, day: date) -> list[ExternalCalendarEvent]:
        """Return every live event overlapping *day* (calendar timezone)."""
        ...

    async def find_event(self, idempotency_key: str) -> ExternalCalendarEvent | None:
        """Return the live event carrying *idempotency_key*, if any."""
        ...

    async def create_event(self, draft: EventDraft) -> ExternalCalendarEvent:
        """Create the event and return it as stored by the provider."""
        ...

    async def close(self) -> None:
        ...


def build_calendar_provider() -> CalendarProvider:
    """Construct the provider selected by CALENDAR_BACKEND."""
    from sessionbook.config import calendar_backend

    backend = calendar_backend()
    if backend == "google":
        from sessionbook.services.google_calendar.service import GoogleCalendarProvider

        provider: CalendarProvider = GoogleCalendarProvider.from_config()
    else:
        from sessionbook.services.memory_calendar import InMemoryCalendarProvider

        provider = InMemoryCalendarProvider()
    logger.info("Calendar backend: %s", provider.name)
    return provider
