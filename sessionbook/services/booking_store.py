"""
Booking store – durable record of confirmed bookings.

Written only after the external event exists; rows are never updated back
to a pending state.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

import aiosqlite

from sessionbook.db import Database
from sessionbook.errors import PersistFailure
from sessionbook.models import (
    BookingPlan,
    BookingRequest,
    ConfirmedBooking,
    ExternalCalendarEvent,
)

logger = logging.getLogger(__name__)


class BookingStore:
    def __init__(self, db: Database) -> None:
        self._db = db

    async def save(
        self,
        request: BookingRequest,
        plan: BookingPlan,
        event: ExternalCalendarEvent,
    ) -> ConfirmedBooking:
        """Persist the booking. Raises PersistFailure if the write fails."""
        booking = ConfirmedBooking(
            id=uuid4(),
            requester=request.requester,
            location=request.location,
            details=request.details,
            booking_date=plan.window.booking_date,
            booking_time_start=plan.window.start_time,
            booking_time_end=plan.window.end_time,
            selected_slots=request.selected_slots,
            total_minutes=plan.total_minutes,
            rate_per_hour=plan.rate_per_hour,
            total_cost=plan.total_cost,
            idempotency_key=plan.idempotency_key,
            external_event_id=event.id,
            external_event_link=event.link,
            status="confirmed",
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self._db.insert_booking(booking)
        except aiosqlite.Error as exc:
            raise PersistFailure(str(exc)) from exc
        logger.info("Booking %s persisted for window %s", booking.id, plan.window)
        return booking

    async def get(self, booking_id: UUID | str) -> ConfirmedBooking | None:
        return await self._db.get_booking(booking_id)
