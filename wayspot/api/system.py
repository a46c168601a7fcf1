"""
System Health API endpoints.
"""
from fastapi import APIRouter
from fastapi.responses import JSONResponse
import logging

from wayspot.schemas.schemas import SystemHealthResponse
from wayspot.services.system_service import SystemService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["System"])


@router.get(
    "/health",
    response_model=SystemHealthResponse,
    summary="System Health Check",
    description="""
    Checks:
    - **Database**: PostgreSQL/PostGIS connection (or the in-memory store)
    - **Redis**: Celery broker connection

    Returns overall status:
    - healthy: All components operational
    - degraded: Non-critical component down or resource pressure
    - unhealthy: Critical components down
    """
)
async def health_check():
    """Get full system health status."""
    return await SystemService.get_full_health()


@router.get(
    "/ready",
    summary="Readiness Probe",
    description="503 until the store answers."
)
async def ready():
    result = await SystemService.check_database()
    if result["status"] != "healthy":
        return JSONResponse(status_code=503, content={"status": "not_ready", "detail": result["message"]})
    return {"status": "ready"}


@router.get("/live", summary="Liveness Probe")
async def live():
    return {"status": "alive"}
