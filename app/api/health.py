"""Liveness and readiness checks.

/health answers "is the process alive" and reports each backing service;
it stays 200 when degraded so the orchestrator does not restart the pod
over a database blip. /ready answers "can this instance take traffic":
503 when the database is configured but unreachable. Redis is never
critical because the cache and rate limiter fall back to memory.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from app.core.config import SETTINGS
from app.db.engine import ping_database
from app.db.redis import ping_redis

router = APIRouter(tags=["health"])


async def _check_database() -> str:
    if SETTINGS.database_url is None:
        return "not_configured"
    return "ok" if await ping_database() else "degraded"


async def _check_redis() -> str:
    if SETTINGS.redis_url is None:
        return "not_configured"
    return "ok" if await ping_redis() else "degraded"


@router.get("/health")
async def health() -> dict:
    checks = {
        "database": await _check_database(),
        "redis": await _check_redis(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "environment": SETTINGS.app_env, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _check_database() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
