"""Push-based change notification for live views over a store."""

import asyncio
import logging
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class ChangeFeed:
    """
    Fan-out of "something changed" signals to any number of subscribers.

    Each subscriber owns a queue. Signals are coalesced: a subscriber that has
    not consumed the previous signal yet does not get a second one, so a slow
    consumer re-reads the store once instead of once per write.
    """

    def __init__(self) -> None:
        self._queues: set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def publish(self) -> None:
        for queue in self._queues:
            if queue.empty():
                queue.put_nowait(None)

    async def changes(self, initial: bool = True) -> AsyncIterator[None]:
        """
        Yield once per change, plus once immediately when `initial` is set.

        The subscription is registered before the initial yield, so a write
        that lands while the consumer handles the first item is not lost.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._queues.add(queue)
        logger.debug(f"Subscriber added ({len(self._queues)} active)")
        try:
            if initial:
                yield None
            while True:
                await queue.get()
                yield None
        finally:
            self._queues.discard(queue)
            logger.debug(f"Subscriber removed ({len(self._queues)} active)")
