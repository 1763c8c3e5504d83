"""Read-through cache for report payloads.

Reports aggregate over most of the database, so their JSON is cached
under ``reports:<name>[:<id>]`` keys for ``REPORT_CACHE_TTL`` seconds.

Two invalidation strategies cover each other:

  1. TTL: every entry expires on its own, so a missed invalidation only
     serves stale numbers for a bounded time.
  2. Explicit: writes that change reported numbers call
     ``reports_changed(session)``; the reports are dropped once that
     session commits, so a concurrent read cannot re-cache the old state.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import SETTINGS
from app.core.metrics import CACHE_OPERATIONS
from app.db.engine import after_commit
from app.db.redis import redis_pool

logger = logging.getLogger(__name__)

REPORTS_PREFIX = "reports:"


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def delete(self, key: str) -> None:
        """Explicitly invalidate a cached entry."""
        ...

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching a glob pattern (e.g., 'reports:*')."""
        ...


class InMemoryCacheService:
    """Process-local cache used when REDIS_URL is unset.

    Entries expire after their TTL like Redis keys do; expired entries are
    dropped when read. The autouse fixture in conftest.py clears the store
    between tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        # key -> (expires_at, value)
        self._store: dict[str, tuple[float, str]] = {}
        self._clock = clock

    async def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._store[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = (self._clock() + ttl_seconds, value)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def delete_pattern(self, pattern: str) -> None:
        prefix = pattern.rstrip("*")
        for k in [k for k in self._store if k.startswith(prefix)]:
            del self._store[k]

class RedisCacheService:
    """Redis-backed cache shared across API instances."""

    # Keeps cache keys apart from the rate limiter's buckets.
    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")

    async def delete_pattern(self, pattern: str) -> None:
        # SCAN rather than KEYS: KEYS blocks the server for the whole keyspace.
        cursor = 0
        while True:
            cursor, keys = await self._redis.scan(
                cursor, match=f"{self._PREFIX}{pattern}", count=100
            )
            if keys:
                await self._redis.delete(*keys)
            if cursor == 0:
                break


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()


async def cached_json(
    key: str,
    compute: Callable[[], Awaitable[Any]],
    ttl_seconds: int | None = None,
) -> Any:
    """Return the cached JSON value for *key*, computing and storing it on a miss.

    A TTL of 0 bypasses the cache entirely.
    """
    ttl = SETTINGS.report_cache_ttl if ttl_seconds is None else ttl_seconds
    if ttl <= 0:
        return await compute()

    raw = await cache_service.get(key)
    if raw is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return json.loads(raw)

    CACHE_OPERATIONS.labels(operation="miss").inc()
    value = await compute()
    await cache_service.set(key, json.dumps(value, default=str), ttl)
    return value


async def invalidate_reports() -> None:
    CACHE_OPERATIONS.labels(operation="invalidate").inc()
    await cache_service.delete_pattern(f"{REPORTS_PREFIX}*")
    logger.debug("Report cache invalidated")


def reports_changed(session: AsyncSession) -> None:
    """Drop cached reports once *session* commits; nothing happens on rollback."""
    after_commit(session, invalidate_reports)
