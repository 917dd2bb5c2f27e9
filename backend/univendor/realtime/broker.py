"""
Publish/subscribe backbone for live events.

Every relay transport (WebSocket connections, the HTTP trampoline) goes through a
Broker addressed by channel name, so call sites never touch connection maps.

- RedisBroker: Redis pub/sub, shared by every API process. This is the production path.
- LocalBroker: in-process registry. Events only reach subscribers connected to the
  same process, so it is for single-node deployments and tests.
"""
import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import suppress
from typing import Awaitable, Callable, Dict, Set
from dotenv import load_dotenv
from univendor.db.database_redis import RedisManager

load_dotenv()

logger = logging.getLogger(__name__)

REALTIME_BACKEND = os.getenv("REALTIME_BACKEND", "redis")

Handler = Callable[[str, dict], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


class Broker(ABC):
    name = "abstract"

    @abstractmethod
    async def publish(self, channel: str, event: str, payload: dict) -> int:
        """Sends `event` with `payload` to everyone on `channel`; returns the receiver count."""

    @abstractmethod
    async def subscribe(self, channel: str, handler: Handler) -> Unsubscribe:
        """Registers `handler(event, payload)` on `channel` and returns an async unsubscribe callable."""

    async def close(self):
        pass


class LocalBroker(Broker):
    name = "local"

    def __init__(self):
        # channel -> live handlers; mutated only from the event loop
        self._subscribers: Dict[str, Set[Handler]] = defaultdict(set)

    async def publish(self, channel: str, event: str, payload: dict) -> int:
        delivered = 0
        for handler in list(self._subscribers.get(channel, ())):
            try:
                await handler(event, payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"[Broker] Local handler failed on {channel} ({event}): {e}")
        return delivered

    async def subscribe(self, channel: str, handler: Handler) -> Unsubscribe:
        self._subscribers[channel].add(handler)

        async def unsubscribe():
            handlers = self._subscribers.get(channel)
            if handlers is None:
                return
            handlers.discard(handler)
            if not handlers:
                del self._subscribers[channel]

        return unsubscribe

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))

    async def close(self):
        self._subscribers.clear()


class RedisBroker(Broker):
    name = "redis"

    async def publish(self, channel: str, event: str, payload: dict) -> int:
        return await RedisManager.publish_json(channel, {"event": event, "data": payload})

    async def subscribe(self, channel: str, handler: Handler) -> Unsubscribe:
        pubsub = RedisManager.pubsub()
        await pubsub.subscribe(channel)
        reader = asyncio.create_task(self._read(pubsub, channel, handler))

        async def unsubscribe():
            try:
                if reader.done():
                    if not reader.cancelled() and reader.exception() is not None:
                        logger.warning(f"[Broker] Subscription on {channel} had already died: {reader.exception()!r}")
                else:
                    reader.cancel()
                    with suppress(asyncio.CancelledError):
                        await reader
                await pubsub.unsubscribe(channel)
            except Exception as e:
                logger.warning(f"[Broker] Unsubscribe from {channel} failed: {e!r}")
            finally:
                await pubsub.aclose()

        return unsubscribe

    async def _read(self, pubsub, channel: str, handler: Handler):
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                envelope = json.loads(message["data"])
            except (TypeError, ValueError) as e:
                logger.warning(f"[Broker] Dropping malformed frame on {channel}: {e}")
                continue
            try:
                await handler(envelope.get("event"), envelope.get("data") or {})
            except Exception:
                logger.exception(f"[Broker] Redis handler failed on {channel}")

    async def close(self):
        await RedisManager.close()


def create_broker(backend: str = None) -> Broker:
    backend = backend or REALTIME_BACKEND
    if backend == "local":
        logger.warning("[Broker] Using in-process broker; events will not cross process boundaries")
        return LocalBroker()
    if backend == "redis":
        return RedisBroker()
    raise ValueError(f"Unknown REALTIME_BACKEND: {backend}")
