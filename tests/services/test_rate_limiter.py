"""Tests for the Redis fixed-window rate limiter."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from consently.exceptions import RateLimitError
from consently.services.rate_limiter import enforce, hit, rate_limit_key


@pytest.fixture
def redis():
    client = AsyncMock()
    client.ttl.return_value = 42
    return client


class TestHit:
    @pytest.mark.asyncio
    async def test_first_hit_sets_expiry(self, redis):
        redis.incr.return_value = 1
        result = await hit(redis, "ratelimit:check:1.2.3.4", limit=5, window_seconds=60)
        assert result.allowed is True
        assert result.remaining == 4
        redis.expire.assert_awaited_once_with("ratelimit:check:1.2.3.4", 60)

    @pytest.mark.asyncio
    async def test_later_hits_keep_expiry(self, redis):
        redis.incr.return_value = 3
        result = await hit(redis, "k", limit=5, window_seconds=60)
        assert result.allowed is True
        redis.expire.assert_not_called()

    @pytest.mark.asyncio
    async def test_over_limit_reports_ttl(self, redis):
        redis.incr.return_value = 6
        result = await hit(redis, "k", limit=5, window_seconds=60)
        assert result.allowed is False
        assert result.retry_after == 42
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_lost_expiry_is_restored(self, redis):
        redis.incr.return_value = 6
        redis.ttl.return_value = -1
        result = await hit(redis, "k", limit=5, window_seconds=60)
        assert result.retry_after == 60
        redis.expire.assert_awaited_once_with("k", 60)

    @pytest.mark.asyncio
    async def test_redis_down_fails_open(self, redis):
        redis.incr.side_effect = RedisConnectionError("refused")
        result = await hit(redis, "k", limit=5, window_seconds=60)
        assert result.allowed is True


class TestEnforce:
    def test_key_format(self):
        assert rate_limit_key("consent_by_email", "10.0.0.1") == "ratelimit:consent_by_email:10.0.0.1"

    @pytest.mark.asyncio
    async def test_raises_with_headers(self, redis):
        redis.incr.return_value = 11
        with pytest.raises(RateLimitError) as exc:
            await enforce(redis, "consent_by_email", "10.0.0.1", 10, 3600)
        assert exc.value.headers["Retry-After"] == "42"
        assert exc.value.headers["X-RateLimit-Limit"] == "10"
        assert exc.value.to_body()["retryAfter"] == 42
        redis.incr.assert_awaited_once_with("ratelimit:consent_by_email:10.0.0.1")

    @pytest.mark.asyncio
    async def test_allowed_passes_through(self, redis):
        redis.incr.return_value = 1
        result = await enforce(redis, "check_consent", "10.0.0.1", 200, 60)
        assert result.count == 1
