"""
Health Check Endpoints

Health, readiness, and liveness endpoints for container orchestration.
Each service app places its store on app.state.db and, when it relays an
outbox, the relay on app.state.relay.
"""

from typing import Dict, Any
import os

from fastapi import APIRouter, Request, Response

from ....core.timeutil import utcnow

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    """
    Basic health check.

    Returns 200 if the service is running.
    """
    return {
        "status": "healthy",
        "service": request.app.title,
        "timestamp": utcnow().isoformat(),
        "version": os.getenv("APP_VERSION", "0.1.0")
    }


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Returns 200 if the process is alive."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, Any]:
    """
    Readiness probe.

    Returns 503 until the store answers; reports the relay state when the
    service runs one.
    """
    checks = {}
    all_healthy = True

    db = getattr(request.app.state, "db", None)
    if db is None or not db.is_connected:
        checks["database"] = "not connected"
        all_healthy = False
    else:
        try:
            await db.fetchval("SELECT 1")
            checks["database"] = "healthy"
        except Exception as e:
            checks["database"] = f"unhealthy: {str(e)[:100]}"
            all_healthy = False

    relay = getattr(request.app.state, "relay", None)
    if relay is not None:
        checks["outbox_relay"] = "running" if relay.is_running else "not running"

    if not all_healthy:
        response.status_code = 503

    return {
        "status": "ready" if all_healthy else "not_ready",
        "checks": checks,
        "timestamp": utcnow().isoformat()
    }


@router.get("/api/version")
async def get_version() -> Dict[str, Any]:
    """Build version information for deployment verification."""
    return {
        "version": os.getenv("APP_VERSION", "dev"),
        "commit": os.getenv("GIT_COMMIT", "unknown"),
        "build_time": os.getenv("BUILD_TIME", "unknown"),
        "environment": os.getenv("APP_ENV", "development")
    }
