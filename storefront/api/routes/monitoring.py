"""
Health and metrics endpoints.
"""
from typing import Any, Dict

import structlog
from fastapi import APIRouter, HTTPException, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from storefront.monitoring.health import HealthCheck

from ..schemas import HealthCheckResponse

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["monitoring"])

health_check = HealthCheck()


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check database, Redis and Stripe",
)
async def health() -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    try:
        return await health_check.check_all()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return {"status": "unhealthy", "checks": {"error": str(e)}}


@router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
    description="Kubernetes liveness probe endpoint",
)
async def liveness() -> Dict[str, Any]:
    return await health_check.liveness()


@router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
    description="Kubernetes readiness probe endpoint",
)
async def readiness() -> Dict[str, Any]:
    """Ready once the database answers."""
    result = await health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
