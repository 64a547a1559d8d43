from typing import Annotated

from fastapi import Depends, Request

from sessionbook.services.availability import AvailabilityService
from sessionbook.services.orchestrator import BookingOrchestrator


# ── Pipeline services (built once by the lifespan) ────────────────────────


def get_orchestrator(request: Request) -> BookingOrchestrator:
    return request.app.state.orchestrator


def get_availability(request: Request) -> AvailabilityService:
    return request.app.state.availability


Orchestrator = Annotated[BookingOrchestrator, Depends(get_orchestrator)]
Availability = Annotated[AvailabilityService, Depends(get_availability)]
