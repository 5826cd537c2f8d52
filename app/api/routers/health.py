"""
Health check endpoints for monitoring and orchestration (K8s, Docker, etc.)

Provides multiple health check endpoints:
- /health: Basic liveness check (always returns 200)
- /health/db: Database connectivity check
- /health/ready: Readiness check (all dependencies healthy)
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.dependencies import Container, get_container

logger = logging.getLogger(__name__)

router = APIRouter()

SERVICE_NAME = "hotel-booking-engine"


async def _check_database(container: Container) -> str:
    """Returns "healthy", "in_memory" or "unhealthy"."""
    if container.engine is None:
        return "in_memory"
    try:
        async with container.engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            result.scalar()
        return "healthy"
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database health check failed", exc_info=e)
        return "unhealthy"


@router.get("/health")
async def health_check():
    """
    Basic liveness probe.

    Returns 200 OK if the application is running.
    """
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/health/db")
async def health_check_db(container: Container = Depends(get_container)):
    """
    Database connectivity health check.

    Returns 503 Service Unavailable if database is down.
    """
    database = await _check_database(container)
    if database == "unhealthy":
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "component": "database",
                "error": "Database connection failed",
            },
        )
    return {"status": "healthy", "component": "database", "mode": database}


@router.get("/health/ready")
async def health_check_ready(container: Container = Depends(get_container)):
    """
    Readiness probe.

    Checks database connectivity and reports how many bookings are being
    orchestrated. Returns 503 if not ready to accept requests.
    """
    health_status = {
        "status": "ready",
        "checks": {},
        "active_bookings": len(container.runner.active),
    }

    database = await _check_database(container)
    health_status["checks"]["database"] = database
    if database == "unhealthy":
        health_status["status"] = "not_ready"
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@router.get("/health/live")
async def health_check_live():
    """
    Alias for /health for Kubernetes liveness probe.
    """
    return {"status": "ok", "service": SERVICE_NAME}
