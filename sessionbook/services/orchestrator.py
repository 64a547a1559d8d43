"""
Booking commit orchestrator – the state machine behind "bookSlot".

    REQUESTED → LOCK_ACQUIRED → RECONCILED → EVENT_CREATED → PERSISTED → RELEASED

Failure exits (LOCK_DENIED, DOUBLE_BOOKED, EXTERNAL_FAILURE, PERSIST_FAILURE)
all pass through RELEASED before returning. Side effects are strictly
ordered: no external event before the locks are held, no local record
before the external event exists.

Every lock this attempt acquired is released exactly once, in a finally
block, whatever the exit. Locks that were denied belong to someone else
and are never touched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime
from uuid import uuid4
from zoneinfo import ZoneInfo

import aiosqlite

from sessionbook.config import CALENDAR_TIMEZONE, RATE_PER_HOUR
from sessionbook.errors import BookingValidationError, PersistFailure
from sessionbook.models import BookingPlan, BookingRequest, ConfirmedBooking, WindowKey
from sessionbook.services.booking_store import BookingStore
from sessionbook.services.locks import ReservationLockManager
from sessionbook.services.outcomes import (
    BookingState,
    CommitResult,
    ErrLockDenied,
    ErrPersist,
    Ok,
)
from sessionbook.services.reconciler import CalendarReconciler, idempotency_key
from sessionbook.services.slot_templates import find_template

logger = logging.getLogger(__name__)


def plan_booking(
    request: BookingRequest,
    *,
    today: date,
    now: datetime | None = None,
    rate_per_hour: float = RATE_PER_HOUR,
) -> BookingPlan:
    """
    Validate *request* against the weekly schedule and derive its plan.

    When *now* (timezone-aware) is given, a window that has already started
    is rejected as well.

    Raises BookingValidationError; nothing has been locked at this point.
    """
    day = request.booking_date
    if day < today:
        raise BookingValidationError(
            "Booking date is in the past", {"booking_date": day.isoformat()}
        )

    lock_windows: list[WindowKey] = []
    for slot in request.selected_slots:
        template = find_template(day, slot.start_time, slot.duration_minutes)
        if template is None:
            raise BookingValidationError(
                "Selected slot is not offered on this date",
                {"booking_date": day.isoformat(), "time": slot.start,
                 "durationMinutes": slot.duration_minutes},
            )
        lock_windows.append(WindowKey(day, template.start_time, template.end_time))

    lock_windows.sort()
    window = WindowKey(day, lock_windows[0].start_time, lock_windows[-1].end_time)
    if now is not None and window.start_at(now.tzinfo) <= now:
        raise BookingValidationError(
            "Selected slot has already started",
            {"booking_date": day.isoformat(), "time": window.start_time.strftime("%H:%M")},
        )
    total_minutes = sum(s.duration_minutes for s in request.selected_slots)
    return BookingPlan(
        window=window,
        lock_windows=tuple(lock_windows),
        total_minutes=total_minutes,
        rate_per_hour=rate_per_hour,
        total_cost=round(rate_per_hour * total_minutes / 60, 2),
        idempotency_key=idempotency_key(window),
    )


class BookingOrchestrator:
    """
    Sequences lock → reconcile → create → persist → unlock for one request.

    Stateless between calls; any number of commits may run concurrently.
    All collaborators are injected so tests can substitute fakes.
    """

    def __init__(
        self,
        locks: ReservationLockManager,
        reconciler: CalendarReconciler,
        store: BookingStore,
        *,
        timezone: str = CALENDAR_TIMEZONE,
        rate_per_hour: float = RATE_PER_HOUR,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._locks = locks
        self._reconciler = reconciler
        self._store = store
        self._tz = ZoneInfo(timezone)
        self._rate = rate_per_hour
        self._now = now or (lambda: datetime.now(self._tz))

    def plan(self, request: BookingRequest) -> BookingPlan:
        current = self._now()
        return plan_booking(
            request, today=current.date(), now=current, rate_per_hour=self._rate
        )

    async def commit(self, request: BookingRequest) -> CommitResult:
        """Run one booking attempt. Raises BookingValidationError before locking."""
        plan = self.plan(request)
        holder = uuid4().hex
        acquired: list[WindowKey] = []
        state = BookingState.REQUESTED
        result: CommitResult | None = None
        logger.info("Commit %s: %s for %s", holder, state.value, plan.window)

        try:
            # REQUESTED → LOCK_ACQUIRED
            for window in plan.lock_windows:
                if not await self._locks.acquire(window, holder):
                    result = ErrLockDenied(window)
                    return result
                acquired.append(window)
            state = self._advance(holder, BookingState.LOCK_ACQUIRED)

            # LOCK_ACQUIRED → RECONCILED
            failure = await self._reconciler.check(plan)
            if failure is not None:
                result = failure
                return result
            state = self._advance(holder, BookingState.RECONCILED)

            # RECONCILED → EVENT_CREATED
            created = await self._reconciler.create(plan, request)
            if not isinstance(created, Ok):
                result = created
                return result
            event = created.value
            state = self._advance(holder, BookingState.EVENT_CREATED)

            # EVENT_CREATED → PERSISTED
            try:
                booking: ConfirmedBooking = await self._store.save(request, plan, event)
            except PersistFailure as exc:
                logger.error(
                    "ORPHANED EVENT: external event %s (%s, key=%s) exists but booking "
                    "for %s could not be saved: %s",
                    event.id, event.link, plan.idempotency_key, plan.window, exc,
                )
                result = ErrPersist(event, str(exc))
                return result
            state = self._advance(holder, BookingState.PERSISTED)
            result = Ok(booking)
            return result
        finally:
            await self._release_all(holder, acquired)
            if result is None:
                logger.error("Commit %s aborted in state %s by an exception", holder, state.value)
            elif isinstance(result, Ok):
                logger.info("Commit %s: %s", holder, BookingState.RELEASED.value)
            else:
                log = logger.error if isinstance(result, ErrPersist) else logger.warning
                log(
                    "Commit %s exited %s after %s (%s)",
                    holder, result.exit_state.value, state.value, result.code,
                )

    @staticmethod
    def _advance(holder: str, state: BookingState) -> BookingState:
        logger.info("Commit %s: %s", holder, state.value)
        return state

    async def _release_all(self, holder: str, windows: list[WindowKey]) -> None:
        for window in windows:
            try:
                await self._locks.release(window)
            except aiosqlite.Error:
                # The row will expire on its own once the TTL passes.
                logger.exception("Commit %s could not release lock %s", holder, window)
