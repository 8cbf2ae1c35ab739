"""Order cart — three FIFO queues (sell, buy, other/day-trade)."""

import logging

from autopilot.orders.models import Order, OrderSide

logger = logging.getLogger("autopilot.cart")


class Cart:
    """In-memory order queues.

    Orders are kept in insertion order. Adding an order for a symbol that
    already sits in the same queue replaces it in place, so a symbol is
    never dispatched twice from one queue.
    """

    def __init__(self) -> None:
        self.sell_orders: list[Order] = []
        self.buy_orders: list[Order] = []
        self.other_orders: list[Order] = []

    def _queue_for(self, side: OrderSide) -> list[Order]:
        if side == OrderSide.SELL:
            return self.sell_orders
        if side == OrderSide.BUY:
            return self.buy_orders
        return self.other_orders

    def add_to_cart(self, order: Order) -> None:
        queue = self._queue_for(order.side)
        for i, existing in enumerate(queue):
            if existing.symbol == order.symbol:
                queue[i] = order
                logger.info("Replaced %s order for %s", order.side.value, order.symbol)
                return
        queue.append(order)
        logger.info(
            "Queued %s %s x%d @ %.2f",
            order.side.value, order.symbol, order.quantity, order.price,
        )

    def delete_buy(self, symbol: str) -> None:
        self.buy_orders = [o for o in self.buy_orders if o.symbol != symbol]

    def delete_sell(self, symbol: str) -> None:
        self.sell_orders = [o for o in self.sell_orders if o.symbol != symbol]

    def delete_cart(self) -> None:
        """Drop every queued order."""
        self.sell_orders = []
        self.buy_orders = []
        self.other_orders = []

    def all_orders(self) -> list[Order]:
        """Sell, then buy, then day-trade orders, each in FIFO order."""
        return [*self.sell_orders, *self.buy_orders, *self.other_orders]

    def has_orders(self) -> bool:
        return bool(self.sell_orders or self.buy_orders or self.other_orders)

    def to_dict(self) -> dict:
        return {
            "sell": [o.to_dict() for o in self.sell_orders],
            "buy": [o.to_dict() for o in self.buy_orders],
            "other": [o.to_dict() for o in self.other_orders],
        }
