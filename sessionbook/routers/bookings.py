"""
Booking RPC endpoint – one POST, two actions.

    {"action": "getSlots", "date": "YYYY-MM-DD"}
    {"action": "bookSlot", "booking": {...}}

The second path keeps the URL existing browser clients already call.
"""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sessionbook.dependencies import Availability, Orchestrator
from sessionbook.models import (
    BookingAction,
    BookingConfirmation,
    BookingFailure,
    BookSlotAction,
    GetSlotsAction,
    SlotsResponse,
    SlotView,
)
from sessionbook.rate_limit import BOOKING, limiter
from sessionbook.services.availability import AvailabilityService
from sessionbook.services.orchestrator import BookingOrchestrator
from sessionbook.services.outcomes import (
    ErrDoubleBooked,
    ErrLockDenied,
    Ok,
    StageFailure,
)

router = APIRouter(tags=["booking"])

# Conflicts the caller can resolve by retrying or picking another slot.
_CONFLICTS = (ErrLockDenied, ErrDoubleBooked)


def _json(model: BaseModel, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def failure_response(outcome: StageFailure) -> JSONResponse:
    """Map a failed pipeline stage to its HTTP status and structured body."""
    body = BookingFailure(code=outcome.code, error=outcome.message, retryable=outcome.retryable)
    if isinstance(outcome, _CONFLICTS):
        return _json(body, status.HTTP_409_CONFLICT)
    return _json(body, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def _get_slots(action: GetSlotsAction, availability: AvailabilityService) -> JSONResponse:
    slots = await availability.get_slots(action.day)
    return _json(SlotsResponse(slots=[SlotView.from_instance(s) for s in slots]))


async def _book_slot(action: BookSlotAction, orchestrator: BookingOrchestrator) -> JSONResponse:
    result = await orchestrator.commit(action.booking)
    if not isinstance(result, Ok):
        return failure_response(result)

    booking = result.value
    return _json(
        BookingConfirmation(
            event_id=booking.external_event_id,
            event_link=booking.external_event_link,
            booking_id=booking.id,
        )
    )


@router.post(
    "/api/booking",
    operation_id="bookingAction",
    summary="List a day's slots or book one or more of them",
    responses={
        200: {"description": "Slots listed or booking confirmed"},
        400: {"model": BookingFailure, "description": "Malformed or invalid request"},
        409: {"model": BookingFailure, "description": "Slot held or already booked"},
        500: {"model": BookingFailure, "description": "Calendar or storage failure"},
    },
)
@router.post("/functions/v1/google-calendar", include_in_schema=False)
@limiter.limit(BOOKING)
async def booking_action(
    request: Request,
    body: BookingAction,
    orchestrator: Orchestrator,
    availability: Availability,
) -> JSONResponse:
    action = body.root
    if isinstance(action, GetSlotsAction):
        return await _get_slots(action, availability)
    return await _book_slot(action, orchestrator)
