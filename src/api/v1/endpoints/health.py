"""Health check endpoints for monitoring and deployment."""
from datetime import datetime, timezone

import redis.asyncio as redis
import structlog
from fastapi import APIRouter
from sqlalchemy import text

from src.core.config import settings
from src.core.deps import DbSession

router = APIRouter()
logger = structlog.get_logger()


@router.get("/")
async def health_check() -> dict:
    """Basic health check for load balancers."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.get("/ready")
async def readiness_check(db: DbSession) -> dict:
    """
    Readiness check endpoint.

    Verifies database connectivity, and Redis when it backs the rate limiter.
    """
    checks = {"database": False}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error("Database health check failed", error=str(e))

    if settings.RATE_LIMIT_STORAGE == "redis":
        checks["redis"] = False
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        try:
            await client.ping()
            checks["redis"] = True
        except Exception as e:
            logger.error("Redis health check failed", error=str(e))
        finally:
            await client.aclose()

    all_healthy = all(checks.values())

    return {
        "status": "ready" if all_healthy else "not_ready",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }


@router.get("/live")
async def liveness_check() -> dict:
    """Liveness check."""
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
