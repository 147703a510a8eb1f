import logging
from dataclasses import dataclass

import redis.asyncio as redis

from live_offer_service import config

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_after: int


class RateLimiter:
    """Fixed-window counter per key. Redis failures let the request through."""

    def __init__(
        self,
        redis_client: redis.Redis,
        key_prefix: str,
        max_requests: int = config.PURCHASE_RATE_LIMIT_MAX,
        window_seconds: int = config.PURCHASE_RATE_LIMIT_WINDOW_SECONDS,
    ):
        self._redis = redis_client
        self.key_prefix = key_prefix
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    async def check(self, client_id: str) -> RateLimitResult:
        key = f"rate_limit:{self.key_prefix}:{client_id}"
        try:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, self.window_seconds)
            ttl = await self._redis.ttl(key)
            if ttl is None or ttl < 0:
                # expire가 유실된 키는 다시 창을 설정
                await self._redis.expire(key, self.window_seconds)
                ttl = self.window_seconds
        except Exception as e:
            logger.error(f"Rate limit check failed for {key}: {e}")
            return RateLimitResult(allowed=True, remaining=self.max_requests - 1, reset_after=self.window_seconds)

        if count > self.max_requests:
            logger.warning(f"Rate limit exceeded for {key}: {count}/{self.max_requests}")
            return RateLimitResult(allowed=False, remaining=0, reset_after=ttl)
        return RateLimitResult(allowed=True, remaining=self.max_requests - count, reset_after=ttl)
