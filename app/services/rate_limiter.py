"""Token-bucket rate limiting.

A bucket holds up to ``capacity`` tokens and refills at ``refill_rate``
tokens per second; each request spends one. Short bursts (a learner
retyping a password) pass, sustained hammering does not.

Only the unauthenticated credential endpoints are limited:

  POST /api/users/login                   LOGIN_LIMIT
  POST /api/users/password-reset/request  PASSWORD_RESET_LIMIT
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Outcome of one check.

    retry_after is the number of seconds until the next token (0 if allowed).
    """

    allowed: bool
    remaining: int
    limit: int
    retry_after: float


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    capacity: int = 60
    refill_rate: float = 1.0

    @property
    def idle_ttl_seconds(self) -> int:
        """How long an untouched bucket is worth keeping (it is full by then)."""
        return int(self.capacity / self.refill_rate) + 60


# 10 attempts burst, then roughly one every 6 seconds.
LOGIN_LIMIT = RateLimitConfig(capacity=10, refill_rate=0.17)
# Each request may trigger a reset link; keep it tighter than login.
PASSWORD_RESET_LIMIT = RateLimitConfig(capacity=5, refill_rate=0.05)


@runtime_checkable
class RateLimiter(Protocol):
    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...
    async def reset(self, key: str) -> None: ...


def _spend(
    tokens: float, elapsed: float, config: RateLimitConfig
) -> tuple[float, RateLimitResult]:
    """Refill for *elapsed* seconds, then try to take one token."""
    tokens = min(config.capacity, tokens + elapsed * config.refill_rate)
    if tokens >= 1:
        tokens -= 1
        return tokens, RateLimitResult(True, int(tokens), config.capacity, 0)
    retry_after = (1 - tokens) / config.refill_rate
    return tokens, RateLimitResult(False, 0, config.capacity, retry_after)


class InMemoryRateLimiter:
    """Per-process buckets; used when REDIS_URL is unset and in tests.

    With several API processes each one keeps its own buckets, so the
    effective limit multiplies. Production deployments set REDIS_URL.
    """

    def __init__(self) -> None:
        # key -> (tokens, last_refill_monotonic)
        self._buckets: dict[str, tuple[float, float]] = {}

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = time.monotonic()
        tokens, last_refill = self._buckets.get(key, (float(config.capacity), now))
        tokens, result = _spend(tokens, now - last_refill, config)
        self._buckets[key] = (tokens, now)
        return result

    async def reset(self, key: str) -> None:
        self._buckets.pop(key, None)


class RedisRateLimiter:
    """Buckets stored as Redis hashes, shared by every API instance.

    The refill-and-spend step runs as one Lua script so concurrent
    requests cannot both spend the same token.
    """

    # KEYS[1] bucket key; ARGV capacity, refill_rate, now, idle ttl
    # Returns {allowed (0/1), remaining, retry_after_ms}
    _LUA_SCRIPT = """
    local key = KEYS[1]
    local capacity = tonumber(ARGV[1])
    local refill_rate = tonumber(ARGV[2])
    local now = tonumber(ARGV[3])
    local ttl = tonumber(ARGV[4])

    local bucket = redis.call('HMGET', key, 'tokens', 'last_refill')
    local tokens = tonumber(bucket[1]) or capacity
    local last_refill = tonumber(bucket[2]) or now

    tokens = math.min(capacity, tokens + (now - last_refill) * refill_rate)

    local allowed = 0
    local retry_after_ms = 0
    if tokens >= 1 then
        tokens = tokens - 1
        allowed = 1
    else
        retry_after_ms = math.ceil((1 - tokens) / refill_rate * 1000)
    end

    redis.call('HSET', key, 'tokens', tokens, 'last_refill', now)
    redis.call('EXPIRE', key, ttl)
    return {allowed, math.floor(tokens), retry_after_ms}
    """

    _PREFIX = "ratelimit:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._script = redis_client.register_script(self._LUA_SCRIPT)

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        allowed, remaining, retry_after_ms = await self._script(
            keys=[f"{self._PREFIX}{key}"],
            args=[
                config.capacity,
                config.refill_rate,
                time.time(),
                config.idle_ttl_seconds,
            ],
        )
        return RateLimitResult(
            allowed=bool(allowed),
            remaining=int(remaining) if allowed else 0,
            limit=config.capacity,
            retry_after=retry_after_ms / 1000,
        )

    async def reset(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")
