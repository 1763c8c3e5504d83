"""Redis connection management.

Mirrors engine.py: a connection pool when REDIS_URL is configured, None
otherwise. The report cache and the login rate limiter check for None and
fall back to their in-memory implementations, so local development and
tests need no Redis server.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


async def ping_redis() -> bool:
    if redis_pool is None:
        return False
    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
    except Exception:
        logger.exception("Redis ping failed")
        return False
    return True


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis.

    A failed ping on startup is logged but does not stop the app; the
    cache and rate limiter keep working against Redis once it recovers.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured; cache and rate limits are in-memory")
        yield
        return

    if await ping_redis():
        logger.info("Redis connected: %s", SETTINGS.redis_url)

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
