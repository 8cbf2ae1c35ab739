"""Order execution throttle — paces dispatch of queued orders.

Two cursors persist across ticks within a trading day:

  - ``executed_index``: orders dispatched in the current burst.
  - ``last_order_list_index``: position in the combined sell → buy → other
    queue.

Each burst dispatches until ``executed_index`` reaches
``min(simultaneous_order_limit, len(orders))`` or the queue is exhausted.
Dispatches are staggered by ``stagger × queue position``; the queue cursor
wraps to 0 at the end, and ``executed_index`` resets one stagger interval
after the burst fills up.
"""

import functools
import logging

from autopilot.orders.cart import Cart
from autopilot.orders.models import QueueItem
from autopilot.orders.sink import OrderSink

logger = logging.getLogger("autopilot.throttle")

_RESET_KEY = "reset_executed_index"


class OrderThrottle:
    """Drains the cart into the order sink under a concurrency ceiling.

    Args:
        cart: Order queues to read from (never mutated here).
        sink: Destination for dispatch and reset messages.
        scheduler: Delayed-job scheduler (``schedule`` / ``call_later`` / ``cancel``).
        simultaneous_order_limit: Maximum dispatches per burst.
        stagger_seconds: Delay unit between dispatches.
    """

    def __init__(
        self,
        cart: Cart,
        sink: OrderSink,
        scheduler,
        simultaneous_order_limit: int = 3,
        stagger_seconds: float = 0.5,
    ) -> None:
        self._cart = cart
        self._sink = sink
        self._scheduler = scheduler
        self._limit = simultaneous_order_limit
        self._stagger = stagger_seconds
        self.executed_index = 0
        self.last_order_list_index = 0

    def initialize_orders(self) -> int:
        """Clear every order's stopped flag and send a reset per symbol."""
        orders = self._cart.all_orders()
        for order in orders:
            order.stopped = False
            self._sink.put(QueueItem(symbol=order.symbol, reset=True))
        logger.info("Initialised %d order(s)", len(orders))
        return len(orders)

    def execute_order_list(self) -> list[str]:
        """Run one burst. Returns the symbols submitted for dispatch."""
        orders = self._cart.all_orders()
        if not orders:
            return []
        limit = min(self._limit, len(orders))
        dispatched: list[str] = []

        while (
            self.executed_index < limit
            and self.last_order_list_index < len(orders)
        ):
            item = QueueItem(
                symbol=orders[self.last_order_list_index].symbol,
                reset=False,
            )
            self._scheduler.call_later(
                self._stagger * self.last_order_list_index,
                functools.partial(self._sink.put, item),
            )
            dispatched.append(item.symbol)
            self.last_order_list_index += 1
            self.executed_index += 1

        if self.last_order_list_index >= len(orders):
            self.last_order_list_index = 0
        if self.executed_index >= limit:
            self._scheduler.schedule(_RESET_KEY, self._reset_executed_index, self._stagger)

        if dispatched:
            logger.info("Dispatching %s", ", ".join(dispatched))
        return dispatched

    def _reset_executed_index(self) -> None:
        self.executed_index = 0

    def reset(self) -> None:
        """Zero both cursors and drop a pending burst reset."""
        self.executed_index = 0
        self.last_order_list_index = 0
        self._scheduler.cancel(_RESET_KEY)
