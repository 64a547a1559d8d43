"""
Sessionbook – coaching-session reservation API.

Entry point for uvicorn:  uvicorn sessionbook.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from sessionbook.config import CORS_ALLOW_ORIGINS, ENVIRONMENT, LOG_LEVEL, VERSION
from sessionbook.db import Database
from sessionbook.errors import BookingValidationError
from sessionbook.models import BookingFailure
from sessionbook.rate_limit import limiter
from sessionbook.routers import bookings, health
from sessionbook.services.availability import AvailabilityService
from sessionbook.services.booking_store import BookingStore
from sessionbook.services.calendar_provider import build_calendar_provider
from sessionbook.services.locks import LockJanitor, ReservationLockManager
from sessionbook.services.orchestrator import BookingOrchestrator
from sessionbook.services.reconciler import CalendarReconciler

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ───────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database, build the pipeline, start the lock janitor."""
    db = Database()
    await db.connect()

    provider = build_calendar_provider()
    locks = ReservationLockManager(db)
    janitor = LockJanitor(locks)

    app.state.db = db
    app.state.provider = provider
    app.state.orchestrator = BookingOrchestrator(
        locks,
        CalendarReconciler(provider),
        BookingStore(db),
    )
    app.state.availability = AvailabilityService(provider)

    await janitor.start()
    logger.info("Sessionbook %s started (%s)", VERSION, ENVIRONMENT)
    try:
        yield
    finally:
        await janitor.stop()
        await provider.close()
        await db.close()


# ── App ────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Sessionbook",
    description="Books coaching sessions against a shared Google Calendar without double-booking",
    version=VERSION,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


# ── Error handlers ─────────────────────────────────────────────────────────


def _failure(status_code: int, body: BookingFailure) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return _failure(
        status.HTTP_400_BAD_REQUEST,
        BookingFailure(code="VALIDATION_ERROR", error="Invalid request", details={"errors": errors}),
    )


@app.exception_handler(BookingValidationError)
async def booking_validation_handler(request: Request, exc: BookingValidationError) -> JSONResponse:
    return _failure(
        status.HTTP_400_BAD_REQUEST,
        BookingFailure(code="VALIDATION_ERROR", error=exc.message, details=exc.details or None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _failure(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        BookingFailure(
            code="INTERNAL_ERROR",
            error="Something went wrong. Please try again later.",
            retryable=True,
        ),
    )


# ── Routers ────────────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(bookings.router)
