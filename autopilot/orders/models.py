"""Order data models — queued orders and order-sink items."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from autopilot.risk.position_sizer import calculate_order_size


class OrderSide(str, Enum):
    BUY = "Buy"
    SELL = "Sell"
    DAYTRADE = "DayTrade"


@dataclass
class Order:
    """A smart order waiting in the cart.

    Identity fields (symbol, side, quantity, price, thresholds) are fixed at
    creation; only the execution flags change afterwards.
    """

    symbol: str
    quantity: int
    price: float
    side: OrderSide
    order_size: int
    loss_threshold: Optional[float]
    profit_target: Optional[float]
    trailing_stop: Optional[float]
    allocation: Optional[float] = None
    submitted: bool = False
    pending: bool = False
    stopped: bool = False
    use_stop_loss: bool = True
    use_trailing_stop_loss: bool = True
    use_take_profit: bool = True
    sell_at_close: bool = False

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "quantity": self.quantity,
            "price": self.price,
            "side": self.side.value,
            "order_size": self.order_size,
            "loss_threshold": self.loss_threshold,
            "profit_target": self.profit_target,
            "trailing_stop": self.trailing_stop,
            "allocation": self.allocation,
            "submitted": self.submitted,
            "pending": self.pending,
            "stopped": self.stopped,
        }


@dataclass(frozen=True)
class QueueItem:
    """Order-sink message.

    ``reset=True`` clears the symbol's execution state; ``reset=False``
    requests a live dispatch.
    """

    symbol: str
    reset: bool


def build_order(
    symbol: str,
    quantity: int = 0,
    price: float = 0.0,
    side: OrderSide = OrderSide.DAYTRADE,
    order_size_pct: float = 0.5,
    loss_threshold: Optional[float] = -0.004,
    profit_target: Optional[float] = 0.008,
    trailing_stop: Optional[float] = -0.003,
    allocation: Optional[float] = None,
) -> Order:
    """Create an order with the default day-trade exit bounds.

    Passing ``None`` for a threshold disables that bound.
    """
    return Order(
        symbol=symbol,
        quantity=quantity,
        price=price,
        side=side,
        order_size=calculate_order_size(quantity, order_size_pct),
        loss_threshold=loss_threshold,
        profit_target=profit_target,
        trailing_stop=trailing_stop,
        allocation=allocation,
    )
