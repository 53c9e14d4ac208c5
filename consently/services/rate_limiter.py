"""Fixed-window request counters in Redis.

Key format: ratelimit:{scope}:{identifier}
The first hit in a window sets the expiry; the key's TTL is the wait
reported to callers once the limit is passed.
"""

from __future__ import annotations

from dataclasses import dataclass

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from consently.exceptions import RateLimitError

logger = structlog.get_logger()


@dataclass
class RateLimitResult:
    allowed: bool
    count: int
    limit: int
    retry_after: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


def rate_limit_key(scope: str, identifier: str) -> str:
    return f"ratelimit:{scope}:{identifier}"


async def hit(redis: aioredis.Redis, key: str, limit: int, window_seconds: int) -> RateLimitResult:
    """Count one request against ``key``.

    A Redis outage lets the request through.
    """
    try:
        count = await redis.incr(key)
        if count == 1:
            await redis.expire(key, window_seconds)
        if count <= limit:
            return RateLimitResult(allowed=True, count=count, limit=limit)

        ttl = await redis.ttl(key)
        if ttl is None or ttl < 0:
            # Expiry lost (e.g. crash between INCR and EXPIRE)
            await redis.expire(key, window_seconds)
            ttl = window_seconds
        return RateLimitResult(allowed=False, count=count, limit=limit, retry_after=int(ttl))
    except RedisError as e:
        logger.warning("rate_limit_unavailable", key=key, error=str(e))
        return RateLimitResult(allowed=True, count=0, limit=limit)


async def enforce(redis: aioredis.Redis, scope: str, identifier: str, limit: int, window_seconds: int) -> RateLimitResult:
    result = await hit(redis, rate_limit_key(scope, identifier), limit, window_seconds)
    if not result.allowed:
        logger.info("rate_limited", scope=scope, retry_after=result.retry_after)
        raise RateLimitError(retry_after=result.retry_after, limit=limit)
    return result
