# calsync/core/monitoring.py
"""Health checks and monitoring endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from calsync.config.database import get_db
from calsync.config.redis import get_redis
from calsync.services.calendar.registry import ProviderRegistry, get_provider_registry

health_router = APIRouter()


@health_router.get("/")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "calsync-api"}


@health_router.get("/detailed")
async def detailed_health_check(
        db: Session = Depends(get_db),
        registry: ProviderRegistry = Depends(get_provider_registry)
):
    """Detailed health check with dependencies"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown",
        "overall": "unknown"
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    try:
        redis_client = await get_redis()
        await redis_client.ping()
        checks["redis"] = "healthy"
    except Exception as e:
        checks["redis"] = f"unhealthy: {str(e)}"

    if all(status == "healthy" for status in checks.values() if status != "unknown"):
        checks["overall"] = "healthy"
    else:
        checks["overall"] = "degraded"

    checks["providers"] = sorted(adapter.provider for adapter in registry)
    if registry.meetings is not None:
        checks["meetings"] = registry.meetings.provider if registry.meetings.is_configured() else "not_configured"
    return checks
