"""Health check endpoints."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from papertrader.core.config import settings
from papertrader.database.connection import db_healthcheck
from papertrader.schemas.common import HealthResponse


router = APIRouter(prefix="/health")


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the API and its database.",
)
async def health_check() -> HealthResponse:
    checks = {"database": await db_healthcheck()}

    return HealthResponse(
        status="healthy" if all(checks.values()) else "unhealthy",
        version=settings.app_version,
        timestamp=datetime.now(UTC),
        checks=checks,
    )


@router.get("/ready", summary="Readiness check")
async def readiness_check():
    """Readiness probe: 503 until the database answers."""
    if not await db_healthcheck():
        return JSONResponse(status_code=503, content={"status": "not_ready"})
    return {"status": "ready"}


@router.get("/live", summary="Liveness check")
async def liveness_check() -> dict:
    return {"status": "alive"}
