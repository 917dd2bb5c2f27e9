import os
import time
from typing import Dict, Tuple
from dotenv import load_dotenv
from univendor.db.database_redis import RedisManager

load_dotenv()

RATE_LIMIT_BACKEND = os.getenv("RATE_LIMIT_BACKEND", "redis")
RATE_LIMIT_WINDOW_SECONDS = 15 * 60
MAX_REQUESTS = {
    "login": 5,
    "register": 3,
    "reset_password": 3,
    "default": 100,
}


class RedisRateLimitRepository:
    """
    Fixed-window counters in Redis, shared by every API process.
    INCR creates the key; EXPIRE is set only on the first hit of a window.
    """

    @staticmethod
    async def hit(key: str, window: int = RATE_LIMIT_WINDOW_SECONDS) -> Tuple[int, int]:
        redis = RedisManager.get_client()
        redis_key = f"ratelimit:{key}"
        count = await redis.incr(redis_key)
        if count == 1:
            await redis.expire(redis_key, window)
        ttl = await redis.ttl(redis_key)
        if ttl is None or ttl < 0:
            ttl = window
        return count, ttl

    @staticmethod
    async def reset():
        redis = RedisManager.get_client()
        async for key in redis.scan_iter("ratelimit:*"):
            await redis.delete(key)


class LocalRateLimitRepository:
    """Single-process counters; only correct when one API process serves all traffic."""

    _windows: Dict[str, Tuple[int, float]] = {}

    @classmethod
    async def hit(cls, key: str, window: int = RATE_LIMIT_WINDOW_SECONDS) -> Tuple[int, int]:
        now = time.monotonic()
        cls._prune(now)
        count, reset_at = cls._windows.get(key, (0, 0.0))
        if now >= reset_at:
            count, reset_at = 0, now + window
        count += 1
        cls._windows[key] = (count, reset_at)
        return count, max(1, int(reset_at - now))

    @classmethod
    def _prune(cls, now: float):
        expired = [key for key, (_, reset_at) in cls._windows.items() if reset_at <= now]
        for key in expired:
            del cls._windows[key]

    @classmethod
    async def reset(cls):
        cls._windows.clear()


def get_rate_limit_repository():
    if RATE_LIMIT_BACKEND == "local":
        return LocalRateLimitRepository
    return RedisRateLimitRepository
