"""
System Health and Monitoring Service.

Health Check Components:
==============================================================================
1. Store:
   - PostgreSQL: SELECT 1 plus the PostGIS version
   - memory backend: always healthy
2. Redis (Celery broker):
   - PING/PONG test
   - only critical when PROFILE_EVENTS_MODE=celery

Status Definitions:
==============================================================================
- healthy: all components working
- degraded: a non-critical component failing, or CPU/memory pressure
- unhealthy: a critical component failing
"""
from typing import Any, Dict
from datetime import datetime, timezone
import asyncio
import logging
import platform
import time

import psutil
from redis.asyncio import Redis
from sqlalchemy import text

from wayspot.config import settings
from wayspot.database import async_session_maker

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


class SystemService:
    """Service for system health monitoring."""

    # Component check timeout
    CHECK_TIMEOUT = 5.0

    # Health status thresholds
    CPU_WARNING_THRESHOLD = 80
    MEMORY_WARNING_THRESHOLD = 85
    DISK_WARNING_THRESHOLD = 90

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return round((time.perf_counter() - start) * 1000, 2)

    @staticmethod
    async def check_database() -> Dict[str, Any]:
        """Check PostgreSQL/PostGIS health."""
        if settings.STORE_BACKEND == "memory":
            return {"status": "healthy", "latency_ms": 0.0, "message": "In-memory store"}

        start = time.perf_counter()
        try:
            async with async_session_maker() as session:
                await asyncio.wait_for(session.execute(text("SELECT 1")), SystemService.CHECK_TIMEOUT)
                postgis = (await session.execute(text("SELECT postgis_version()"))).scalar()

            return {
                "status": "healthy",
                "latency_ms": SystemService._elapsed_ms(start),
                "message": f"Database connection successful (PostGIS {postgis})"
            }

        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "latency_ms": None,
                "message": str(e)
            }

    @staticmethod
    async def check_redis() -> Dict[str, Any]:
        """Check Redis broker health."""
        start = time.perf_counter()
        critical = settings.PROFILE_EVENTS_MODE == "celery"

        try:
            redis = Redis.from_url(
                settings.REDIS_URL,
                socket_connect_timeout=SystemService.CHECK_TIMEOUT,
                socket_timeout=SystemService.CHECK_TIMEOUT,
                decode_responses=True
            )
            await redis.ping()
            await redis.aclose()

            return {
                "status": "healthy",
                "latency_ms": SystemService._elapsed_ms(start),
                "message": "Redis connection successful"
            }

        except Exception as e:
            return {
                "status": "unhealthy" if critical else "degraded",
                "latency_ms": None,
                "message": str(e)
            }

    @staticmethod
    def get_system_metrics() -> Dict[str, float]:
        """CPU, memory and disk usage percentages."""
        try:
            return {
                "cpu_percent": psutil.cpu_percent(interval=0.1),
                "memory_percent": psutil.virtual_memory().percent,
                "disk_percent": round(psutil.disk_usage("/").percent, 1),
            }
        except Exception as e:
            logger.error(f"System metrics error: {e}")
            return {}

    @staticmethod
    def overall_status(components: Dict[str, Dict[str, Any]], metrics: Dict[str, float]) -> str:
        statuses = [c.get("status", "unknown") for c in components.values()]

        if any(s == "unhealthy" for s in statuses):
            return "unhealthy"
        if any(s != "healthy" for s in statuses):
            return "degraded"
        if metrics.get("cpu_percent", 0) > SystemService.CPU_WARNING_THRESHOLD or \
           metrics.get("memory_percent", 0) > SystemService.MEMORY_WARNING_THRESHOLD or \
           metrics.get("disk_percent", 0) > SystemService.DISK_WARNING_THRESHOLD:
            return "degraded"
        return "healthy"

    @staticmethod
    async def get_full_health() -> Dict[str, Any]:
        db_check, redis_check = await asyncio.gather(
            SystemService.check_database(),
            SystemService.check_redis(),
        )
        components = {"database": db_check, "redis": redis_check}
        metrics = SystemService.get_system_metrics()

        return {
            "status": SystemService.overall_status(components, metrics),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": components,
            "system": metrics,
            "version": {
                "api": API_VERSION,
                "python": platform.python_version(),
            }
        }
