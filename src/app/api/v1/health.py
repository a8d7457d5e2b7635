"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks.
"""

from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.app.config import get_settings
from src.app.core.database import get_engine
from src.app.core.redis import get_redis_pool
from src.app.services.llm import get_llm_service

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies() -> dict:
    """Check the master database, Redis and LLM configuration."""
    checks: dict = {"database": "ok", "redis": "disabled", "llm": "ok"}

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    redis = get_redis_pool()
    if redis is not None:
        try:
            checks["redis"] = "ok" if await redis.ping() else "error"
        except RedisError as e:
            checks["redis"] = "error"
            checks["redis_error"] = str(e)

    if not get_llm_service().available:
        checks["llm"] = "no_keys"

    return checks


@router.get("/health/ready")
async def readiness_check():
    """Returns 200 if the database and (when configured) Redis respond, 503 otherwise.

    A missing LLM key degrades the livechat to fallback messages but does
    not make the service unready.
    """
    checks = await _check_dependencies()
    all_healthy = checks["database"] == "ok" and checks["redis"] in ("ok", "disabled")

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
        },
    )
