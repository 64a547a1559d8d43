"""
Slot listing for the "getSlots" action.

Instantiates the weekly templates for a date and marks the ones that
collide with events already on the calendar. When the calendar cannot be
reached the bare templates are returned, all available: the listing stays
usable and the commit path re-checks against the provider anyway.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from zoneinfo import ZoneInfo

from sessionbook.config import CALENDAR_TIMEZONE, PROVIDER_TIMEOUT_SECONDS
from sessionbook.errors import CalendarProviderError
from sessionbook.models import SlotInstance
from sessionbook.services.calendar_provider import CalendarProvider
from sessionbook.services.conflicts import scan
from sessionbook.services.slot_templates import slots_for

logger = logging.getLogger(__name__)


class AvailabilityService:
    def __init__(
        self,
        provider: CalendarProvider,
        *,
        timezone: str = CALENDAR_TIMEZONE,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ) -> None:
        self._provider = provider
        self._tz = ZoneInfo(timezone)
        self._timeout = timeout

    async def get_slots(self, day: date) -> list[SlotInstance]:
        slots = slots_for(day)
        if not slots:
            return []

        try:
            events = await asyncio.wait_for(self._provider.list_events(day), self._timeout)
        except (CalendarProviderError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Calendar unavailable for %s (%s); serving %d unchecked slots",
                day, str(exc) or type(exc).__name__, len(slots),
            )
            return slots

        return scan(slots, events, self._tz)
