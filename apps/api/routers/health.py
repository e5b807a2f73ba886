"""
Health check endpoints.
"""

from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
import redis.asyncio as redis

from config import settings
from database import engine

router = APIRouter()


async def _database_error() -> Optional[str]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        return str(exc)
    return None


async def _redis_error() -> Optional[str]:
    client = redis.from_url(settings.REDIS_URL)
    try:
        await client.ping()
    except Exception as exc:
        return str(exc)
    finally:
        await client.aclose()
    return None


@router.get("/health")
async def health_check():
    """
    Overall status. The ledger is degraded only when the database is down;
    redis backs rate limiting alone and falls back to in-process counters.
    """
    database_error = await _database_error()
    redis_error = await _redis_error()
    return {
        "status": "degraded" if database_error else "healthy",
        "api": "up",
        "database": f"down: {database_error}" if database_error else "up",
        "redis": f"down: {redis_error}" if redis_error else "up",
    }


@router.get("/health/ready")
async def readiness_check():
    """Kubernetes-style readiness probe."""
    database_error = await _database_error()
    if database_error:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "database": f"down: {database_error}"},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
