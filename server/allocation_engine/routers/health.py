"""Operational endpoints: RPC ping with a store probe, and Prometheus scraping."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession
from ..core.observability import SERVICE_NAME, get_prometheus_metrics
from ..schemas.health import CheckStatus, HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.post("/v1/health/ping", response_model=HealthResponse)
async def health_ping(db: AsyncSession = DatabaseSession) -> JSONResponse:
    """
    Ping the service and its allocation store.

    Always answers 200; a failed store probe reports ``degraded`` so callers
    can tell a live process from a usable one.
    """
    try:
        await db.execute(text("SELECT 1"))
        database = CheckStatus.OK
    except SQLAlchemyError as e:
        logger.warning("Allocation store probe failed", extra={"error": str(e)})
        database = CheckStatus.UNAVAILABLE

    response_data = HealthResponse(
        status=HealthStatus.HEALTHY if database == CheckStatus.OK else HealthStatus.DEGRADED,
        service=SERVICE_NAME,
        timestamp=datetime.now(timezone.utc),
        checks={"database": database},
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


@router.get(
    "/metrics",
    summary="Prometheus Metrics",
    response_class=Response,
    tags=["Observability"]
)
async def metrics():
    """Request, booking, capacity and selection metrics in Prometheus text format."""
    return Response(content=get_prometheus_metrics(), media_type=CONTENT_TYPE_LATEST)
