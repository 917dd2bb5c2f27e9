import asyncio
import inspect
import logging
from typing import Callable, Optional
import httpx
from univendor.client.messaging_client import MessagingClient

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 30.0


class UnreadBadgePoller:
    """
    Polls the unread count on a fixed interval, live connection or not,
    and calls `on_change(count)` when it moves.
    """

    def __init__(self, client: MessagingClient, on_change: Callable, interval: float = POLL_INTERVAL_SECONDS):
        self.client = client
        self.on_change = on_change
        self.interval = interval
        self.count: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

    async def poll_once(self) -> Optional[int]:
        try:
            count = await self.client.unread_count()
        except httpx.HTTPError as e:
            logger.warning(f"[Client] Unread count poll failed: {e}")
            return self.count

        if count != self.count:
            self.count = count
            result = self.on_change(count)
            if inspect.isawaitable(result):
                await result
        return count

    async def run(self):
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
