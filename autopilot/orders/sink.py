"""Order sink — the single entry point into the execution path."""

import asyncio
import logging
from collections import deque

from autopilot.orders.models import QueueItem

logger = logging.getLogger("autopilot.sink")


class OrderSink:
    """FIFO of :class:`QueueItem` messages for the execution service.

    ``history`` keeps the most recent items for status reporting.
    """

    def __init__(self, history_size: int = 200) -> None:
        self._queue: asyncio.Queue[QueueItem] = asyncio.Queue()
        self.history: deque[QueueItem] = deque(maxlen=history_size)

    def put(self, item: QueueItem) -> None:
        self._queue.put_nowait(item)
        self.history.append(item)
        logger.debug("Sink <- %s reset=%s", item.symbol, item.reset)

    async def get(self) -> QueueItem:
        return await self._queue.get()

    def qsize(self) -> int:
        return self._queue.qsize()

    async def forward_to(self, client) -> None:
        """Forward items to ``client.send_algo_queue_item`` until cancelled.

        A failed forward is logged and the item dropped; the execution
        service re-syncs on the next reset signal.
        """
        while True:
            item = await self.get()
            try:
                await client.send_algo_queue_item(item)
            except Exception as exc:
                logger.warning(
                    "Failed to forward %s (reset=%s): %s",
                    item.symbol, item.reset, exc,
                )
