"""Health check endpoint.

Verifies database connectivity and reports whether the auto-release scheduler
is running. Used by container healthchecks and load balancers.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from livestock_escrow.api.deps import get_db_session
from livestock_escrow.logging_config import get_logger
from livestock_escrow.schemas.pipeline import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> HealthResponse:
    try:
        await session.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        scheduler_status = "disabled"
    else:
        scheduler_status = "running" if scheduler.running else "stopped"

    return HealthResponse(
        status="ok" if db_status == "healthy" else "degraded",
        version="0.1.0",
        database=db_status,
        scheduler=scheduler_status,
    )
