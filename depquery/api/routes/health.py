"""
Health Check Endpoints - Application health and status monitoring.
"""

from fastapi import APIRouter, Depends

from depquery.core.config import get_settings, Settings
from depquery.models.responses import HealthResponse


router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check if the API is running and healthy"
)
async def health_check(
    settings: Settings = Depends(get_settings)
) -> HealthResponse:
    """
    Basic health check endpoint.

    Does not contact the remote agent service; it only reports where
    queries will be sent.
    """
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
        agent_url=settings.agent_url,
    )


@router.get(
    "/live",
    summary="Liveness Check",
    description="Simple liveness probe"
)
async def liveness_check() -> dict:
    return {"status": "alive"}
