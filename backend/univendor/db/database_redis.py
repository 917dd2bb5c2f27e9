import json
import os
import redis.asyncio as redis
from redis.asyncio.client import PubSub
from dotenv import load_dotenv

load_dotenv()

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Shared connection pool; the broker, the rate limiter and scripts all borrow from it
pool = redis.ConnectionPool.from_url(REDIS_URL, decode_responses=True)

class RedisManager:
    @staticmethod
    def get_client() -> redis.Redis:
        """
        Returns an async Redis client from the global connection pool.
        """
        return redis.Redis(connection_pool=pool)

    @staticmethod
    async def publish_json(channel: str, payload: dict) -> int:
        """Publishes a JSON document and returns the number of receiving subscribers."""
        client = RedisManager.get_client()
        return await client.publish(channel, json.dumps(payload, default=str))

    @staticmethod
    def pubsub() -> PubSub:
        """Dedicated pub/sub connection (one per subscriber)."""
        return RedisManager.get_client().pubsub(ignore_subscribe_messages=True)

    @staticmethod
    async def close():
        await pool.disconnect()
