"""Redis fixed-window rate limiter.

Key: ``{prefix}:{identity}:{window_start}``. The counter is read first; only
allowed requests increment it, and every increment refreshes the key's TTL to
the window length.
"""

import time
from typing import Optional

import redis.asyncio as redis

from chat_core.config.settings import settings as default_settings
from chat_core.domain.usage import RateLimitConfig, RateLimitResult

CHAT_KEY_PREFIX = "ratelimit:chat"


def chat_rate_limit_config(settings=default_settings) -> RateLimitConfig:
    return RateLimitConfig(
        limit=settings.rate_limit_max_requests,
        window=settings.rate_limit_window_seconds,
        key_prefix=CHAT_KEY_PREFIX,
    )


class RedisRateLimiter:
    def __init__(self, client: "redis.Redis", clock=time.time):
        self._redis = client
        self._clock = clock

    @classmethod
    def from_url(cls, url: str) -> "RedisRateLimiter":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def check_rate_limit(self, identity: str, config: RateLimitConfig) -> RateLimitResult:
        now = int(self._clock())
        window_start = now - (now % config.window)
        reset = window_start + config.window - now
        key = f"{config.key_prefix}:{identity}:{window_start}"

        current: Optional[str] = await self._redis.get(key)
        count = int(current) if current else 0
        if count >= config.limit:
            return RateLimitResult(allowed=False, limit=config.limit, remaining=0, reset=reset)

        new_count = await self._redis.incr(key)
        await self._redis.expire(key, config.window)
        return RateLimitResult(
            allowed=True,
            limit=config.limit,
            remaining=max(0, config.limit - int(new_count)),
            reset=reset,
        )

    async def reset_rate_limit(self, identity: str, config: RateLimitConfig) -> None:
        now = int(self._clock())
        window_start = now - (now % config.window)
        await self._redis.delete(f"{config.key_prefix}:{identity}:{window_start}")

    async def close(self) -> None:
        await self._redis.aclose()
