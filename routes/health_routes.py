"""
Health check endpoint.

GET /health — pings MongoDB and, when configured, Redis.
MongoDB down means "unhealthy" (503). Redis down or absent means "degraded"
(200), since Redis only backs per-IP rate limiting.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError

from schemas.dto.responses.common import HealthResponse
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["health"])

CHECK_OK = "ok"
CHECK_ERROR = "error"
CHECK_NOT_CONFIGURED = "not_configured"


async def _check_mongodb(db: Any) -> str:
    try:
        await db.command("ping")
    except PyMongoError as e:
        log.warning("health_mongodb_failed", error=str(e), error_type=type(e).__name__)
        return CHECK_ERROR
    return CHECK_OK


async def _check_redis(redis: Optional[Any]) -> str:
    if redis is None:
        return CHECK_NOT_CONFIGURED
    try:
        await redis.ping()
    except RedisError as e:
        log.warning("health_redis_failed", error=str(e), error_type=type(e).__name__)
        return CHECK_ERROR
    return CHECK_OK


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> JSONResponse:
    checks = {
        "mongodb": await _check_mongodb(request.app.state.db),
        "redis": await _check_redis(request.app.state.redis),
    }
    if checks["mongodb"] != CHECK_OK:
        overall, status_code = "unhealthy", 503
    elif checks["redis"] != CHECK_OK:
        overall, status_code = "degraded", 200
    else:
        overall, status_code = "healthy", 200
    return JSONResponse(
        status_code=status_code,
        content=HealthResponse(status=overall, checks=checks).model_dump(),
    )
