"""
External calendar reconciler.

Runs while the committer holds the reservation locks and makes the
provider, not our own database, the judge of whether a window is free:

1.  Derive the deterministic idempotency key for the booking window.
2.  Ask the provider for an event carrying that key (a previous attempt
    may have created it and died before unlocking or persisting).
3.  Re-scan the day's events for anything overlapping the selected slots.
4.  Create the event with the key attached as its iCalUID.

Provider exceptions never escape: each step returns a tagged outcome.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar
from zoneinfo import ZoneInfo

from sessionbook.config import (
    CALENDAR_TIMEZONE,
    IDEMPOTENCY_DOMAIN,
    PROVIDER_TIMEOUT_SECONDS,
    STAFF_ATTENDEES,
)
from sessionbook.errors import CalendarProviderError, DuplicateEventError
from sessionbook.models import (
    BookingPlan,
    BookingRequest,
    EventDraft,
    ExternalCalendarEvent,
    WindowKey,
)
from sessionbook.services.calendar_provider import CalendarProvider
from sessionbook.services.conflicts import window_conflicts
from sessionbook.services.outcomes import ErrDoubleBooked, ErrExternal, Ok

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "sped"
SUMMARY_PREFIX = "SPED Class"


def idempotency_key(window: WindowKey, *, domain: str = IDEMPOTENCY_DOMAIN) -> str:
    """Stable across retries of the same window, unique across windows."""
    return (
        f"{KEY_PREFIX}-{window.booking_date.isoformat()}"
        f"-{window.start_time:%H:%M:%S}-{window.end_time:%H:%M:%S}@{domain}"
    )


def _describe(request: BookingRequest, plan: BookingPlan) -> str:
    req, loc, det = request.requester, request.location, request.details
    slots = ", ".join(f"{s.start} ({s.duration_minutes} min)" for s in request.selected_slots)
    lines = [
        "SPED Class Booking",
        "",
        f"Contact: {req.full_name}",
        f"School: {loc.name}",
        f"Email: {req.email}",
        f"Phone: {req.phone}",
        f"Students: {det.number_of_students}",
        f"Grade: {det.grade_level or '-'}",
        f"Preferred Coach: {det.preferred_coach or '-'}",
        f"Special Requirements: {det.special_requirements or '-'}",
        f"Selected Slots: {slots}",
        f"Total Minutes: {plan.total_minutes}",
        f"Total Cost: ${plan.total_cost:.2f}",
    ]
    return "\n".join(lines)


class CalendarReconciler:
    def __init__(
        self,
        provider: CalendarProvider,
        *,
        timezone: str = CALENDAR_TIMEZONE,
        staff_attendees: list[str] | None = None,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ) -> None:
        self._provider = provider
        self._tz_name = timezone
        self._tz = ZoneInfo(timezone)
        self._staff = list(STAFF_ATTENDEES if staff_attendees is None else staff_attendees)
        self._timeout = timeout

    async def _call(self, awaitable: Awaitable[T]) -> T:
        """Abandon the provider call after the configured timeout."""
        return await asyncio.wait_for(awaitable, self._timeout)

    # ── Existence check ───────────────────────────────────────────────

    async def check(self, plan: BookingPlan) -> ErrDoubleBooked | ErrExternal | None:
        """None when the window is still free at the provider."""
        try:
            existing = await self._call(self._provider.find_event(plan.idempotency_key))
            if existing is not None:
                logger.info(
                    "Window %s already committed as event %s", plan.window, existing.id
                )
                return ErrDoubleBooked(plan.window, existing.id)

            events = await self._call(self._provider.list_events(plan.window.booking_date))
        except asyncio.TimeoutError:
            return ErrExternal("calendar lookup timed out", retryable=True)
        except CalendarProviderError as exc:
            return ErrExternal(str(exc), retryable=exc.retryable, status_code=exc.status_code)

        for window in plan.lock_windows:
            clashes = window_conflicts(window, events, self._tz)
            if clashes:
                logger.info(
                    "Window %s overlaps existing event %s", window, clashes[0].id
                )
                return ErrDoubleBooked(window, clashes[0].id)
        return None

    # ── Creation ──────────────────────────────────────────────────────

    def build_draft(self, plan: BookingPlan, request: BookingRequest) -> EventDraft:
        attendees = [request.requester.email]
        attendees += [e for e in self._staff if e.lower() != request.requester.email.lower()]
        return EventDraft(
            idempotency_key=plan.idempotency_key,
            summary=f"{SUMMARY_PREFIX} - {request.requester.full_name}",
            description=_describe(request, plan),
            location=request.location.one_line,
            start=plan.window.start_at(self._tz),
            end=plan.window.end_at(self._tz),
            timezone=self._tz_name,
            attendees=attendees,
        )

    async def create(
        self, plan: BookingPlan, request: BookingRequest
    ) -> Ok[ExternalCalendarEvent] | ErrDoubleBooked | ErrExternal:
        draft = self.build_draft(plan, request)
        try:
            event = await self._call(self._provider.create_event(draft))
        except DuplicateEventError:
            logger.info("Provider reports key %s already exists", plan.idempotency_key)
            return ErrDoubleBooked(plan.window)
        except asyncio.TimeoutError:
            # The create may still land; a retry will see it via the key.
            return ErrExternal("event creation timed out", retryable=True)
        except CalendarProviderError as exc:
            return ErrExternal(str(exc), retryable=exc.retryable, status_code=exc.status_code)
        return Ok(event)
