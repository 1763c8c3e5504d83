"""Rate limiting as a route dependency.

A dependency rather than middleware so only the routes that declare it
are limited; /health and the authenticated API are never throttled.

Buckets are keyed by client IP plus the route's scope, so exhausting the
login bucket does not block password-reset requests from the same
address.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from app.core.metrics import RATE_LIMIT_HITS
from app.db.redis import redis_pool
from app.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RedisRateLimiter,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    _rate_limiter = RedisRateLimiter(redis_pool)
else:
    _rate_limiter = InMemoryRateLimiter()


def require_rate_limit(scope: str, config: RateLimitConfig):
    """Dependency factory: enforce *config* on a route.

    Usage:
        @router.post("/login", dependencies=[Depends(
            require_rate_limit("login", LOGIN_LIMIT)
        )])
    """

    async def _check(request: Request) -> None:
        key = f"{scope}:{_client_ip(request)}"
        result = await _rate_limiter.check(key, config)

        request.state.rate_limit_headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
        }

        if not result.allowed:
            RATE_LIMIT_HITS.labels(key_type=scope).inc()
            logger.warning("Rate limit exceeded key=%s", key)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests, please try again later",
                headers={
                    "Retry-After": str(int(result.retry_after) + 1),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check


def _client_ip(request: Request) -> str:
    # First hop of X-Forwarded-For when behind the load balancer.
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
