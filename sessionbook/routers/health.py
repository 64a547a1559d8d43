"""
Health check endpoint.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from sessionbook.config import VERSION
from sessionbook.models import HealthResponse

router = APIRouter(prefix="/api", tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    operation_id="getHealth",
    summary="Health check",
)
async def get_health(request: Request) -> HealthResponse:
    db_ok = await request.app.state.db.ping()
    return HealthResponse(
        status="ok" if db_ok else "degraded",
        version=VERSION,
        timestamp=datetime.now(timezone.utc),
        calendar_backend=request.app.state.provider.name,
    )
