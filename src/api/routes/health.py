"""
Health check endpoints.

Provides system health information for monitoring.
"""

from fastapi import APIRouter, HTTPException
import structlog

from src.api.dependencies import RegistryDep
from src.core.config import settings
from src.persistence.database import check_database_health

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(registry: RegistryDep):
    """
    Health check endpoint.

    Returns:
        System health status including database connectivity.
    """
    components = {"interviews": {"status": "healthy", "active": len(registry.list_ids())}}

    if settings.enable_persistence:
        components["database"] = await check_database_health()

    overall_status = (
        "healthy"
        if all(c["status"] == "healthy" for c in components.values())
        else "unhealthy"
    )

    return {
        "status": overall_status,
        "version": "0.1.0",
        "debug": settings.debug,
        "components": components,
    }


@router.get("/health/live")
async def liveness():
    """Liveness probe. Returns 200 if the application is running."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness():
    """Readiness probe. Returns 503 while the database is unavailable."""
    if settings.enable_persistence:
        db_health = await check_database_health()
        if db_health["status"] != "healthy":
            raise HTTPException(status_code=503, detail="Database not ready")

    return {"status": "ready"}
