"""Prediction stream — fan-out of per-symbol model results to subscribers.

A :class:`Subscription` is an explicit, cancellable handle. It delivers at
most ``max_items`` batches, and its ``finalize`` hook runs exactly once
whether the subscription completes, errors, or is cancelled.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from autopilot.broker.models import PredictionBatch

logger = logging.getLogger("autopilot.stream")

OnNext = Callable[[PredictionBatch], Awaitable[None]]
OnError = Callable[[Exception], Any]


class PredictionStreamError(Exception):
    """The prediction source failed; the subscription is terminated."""


class Subscription:
    """One consumer's view of the stream."""

    def __init__(
        self,
        stream: "PredictionStream",
        on_next: OnNext,
        on_error: Optional[OnError] = None,
        max_items: Optional[int] = None,
        finalize: Optional[Callable[[], None]] = None,
    ) -> None:
        self._stream = stream
        self._on_next = on_next
        self._on_error = on_error
        self._max_items = max_items
        self._finalize = finalize
        self.received = 0
        self.active = True

    async def _deliver(self, batch: PredictionBatch) -> None:
        if not self.active:
            return
        self.received += 1
        try:
            await self._on_next(batch)
        except Exception as exc:
            logger.error("Subscriber failed on %s: %s", batch.label, exc)
        if self._max_items is not None and self.received >= self._max_items:
            self._close()

    async def _fail(self, exc: Exception) -> None:
        if not self.active:
            return
        self._close()
        if self._on_error is not None:
            result = self._on_error(exc)
            if inspect.isawaitable(result):
                await result

    def cancel(self) -> None:
        """Stop receiving; runs ``finalize`` if it has not run yet."""
        self._close()

    def _close(self) -> None:
        if not self.active:
            return
        self.active = False
        self._stream._detach(self)
        if self._finalize is not None:
            self._finalize()


class PredictionStream:
    """Requests neutral predictions and publishes them to subscribers.

    Args:
        client: Backend client exposing ``get_neutral_prediction(symbol)``.
    """

    def __init__(self, client) -> None:
        self._client = client
        self._subscribers: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(
        self,
        on_next: OnNext,
        on_error: Optional[OnError] = None,
        max_items: Optional[int] = None,
        finalize: Optional[Callable[[], None]] = None,
    ) -> Subscription:
        sub = Subscription(self, on_next, on_error, max_items, finalize)
        self._subscribers.append(sub)
        return sub

    def _detach(self, sub: Subscription) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    async def publish(self, batch: PredictionBatch) -> None:
        for sub in list(self._subscribers):
            await sub._deliver(batch)

    async def publish_error(self, exc: Exception) -> None:
        for sub in list(self._subscribers):
            await sub._fail(exc)

    async def request(self, symbol: str) -> None:
        """Fetch a prediction for *symbol* and publish it (or the failure)."""
        try:
            batch = await self._client.get_neutral_prediction(symbol)
        except Exception as exc:
            logger.warning("Prediction request for %s failed: %s", symbol, exc)
            await self.publish_error(
                PredictionStreamError(f"prediction for {symbol} failed: {exc}")
            )
            return
        logger.info(
            "Received neutral results for %s (%d values)",
            batch.label, len(batch.values),
        )
        await self.publish(batch)
