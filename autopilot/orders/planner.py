"""Order planner — turns candidates and holdings into sized cart orders.

Each add awaits its indicator fetch before computing exit thresholds, and
awaits price and balance before sizing, so calls for one symbol are
strictly sequenced.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from autopilot.orders.cart import Cart
from autopilot.orders.models import OrderSide, build_order
from autopilot.risk.position_sizer import buy_order_size_pct, calculate_quantity
from autopilot.risk.sl_tp import RiskLevels, calculate_exit_thresholds
from autopilot.strategy.adaptation import StrategySelector
from autopilot.strategy.models import Holding

logger = logging.getLogger("autopilot.planner")

INDICATOR_LOOKBACK_DAYS = 100


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class OrderPlanner:
    """Builds buy, sell and day-trade orders and adds them to the cart.

    Args:
        client: Backend client (``get_price``, ``get_balance``,
                ``get_backtest_evaluation``).
        cart: Destination queues.
        selector: Source of the current risk multipliers.
        max_trade_count: Cap on the buy and day-trade queues.
        today: Date provider for indicator windows.
    """

    def __init__(
        self,
        client,
        cart: Cart,
        selector: StrategySelector,
        max_trade_count: int = 5,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self._client = client
        self._cart = cart
        self._selector = selector
        self._max_trade_count = max_trade_count
        self._today = today

    async def exit_thresholds(self, symbol: str) -> RiskLevels:
        """Profit target and stop loss from the last indicator bar."""
        end = self._today()
        start = end - timedelta(days=INDICATOR_LOOKBACK_DAYS)
        evaluation = await self._client.get_backtest_evaluation(
            symbol, start.isoformat(), end.isoformat(), "daily-indicators",
        )
        last = evaluation.last
        return calculate_exit_thresholds(last.low, last.high)

    async def _thresholds_or_none(self, symbol: str) -> tuple[Optional[float], Optional[float]]:
        try:
            levels = await self.exit_thresholds(symbol)
        except Exception as exc:
            logger.warning("Error getting backtest data for %s: %s", symbol, exc)
            return None, None
        return levels.profit_target, levels.stop_loss

    # ── Adds (capped) ────────────────────────────────────────────────────

    async def add_buy(self, holding: Holding) -> bool:
        """Queue a swing buy unless the buy queue is full."""
        if len(self._cart.buy_orders) >= self._max_trade_count:
            return False
        profit, stop = await self._thresholds_or_none(holding.symbol)
        return await self.portfolio_buy(
            holding, round(self._selector.risk_tolerance, 2), profit, stop,
        )

    async def add_daytrade(self, symbol: str) -> bool:
        """Queue a day trade unless the day-trade queue is full."""
        if len(self._cart.other_orders) >= self._max_trade_count:
            return False
        profit, stop = await self._thresholds_or_none(symbol)
        return await self.portfolio_daytrade(
            symbol, round(self._selector.day_trade_risk_tolerance, 2), profit, stop,
        )

    # ── Order construction ───────────────────────────────────────────────

    async def portfolio_sell(self, holding: Holding) -> bool:
        """Queue a sell of the full position, half per slice."""
        try:
            price = await self._client.get_price(holding.symbol)
        except Exception as exc:
            logger.warning("Skipping sell of %s, no price: %s", holding.symbol, exc)
            return False
        order = build_order(
            holding.symbol, int(holding.shares), price, OrderSide.SELL,
            0.5, None, None, None,
        )
        self._cart.add_to_cart(order)
        return True

    async def portfolio_buy(
        self,
        holding: Holding,
        allocation: float,
        profit_threshold: Optional[float] = None,
        stop_loss_threshold: Optional[float] = None,
    ) -> bool:
        try:
            price = await self._client.get_price(holding.symbol)
            balance = await self._client.get_balance()
            quantity = calculate_quantity(price, allocation, balance.cash_balance)
        except Exception as exc:
            logger.warning("Skipping buy of %s: %s", holding.symbol, exc)
            return False
        order = build_order(
            holding.symbol, quantity, price, OrderSide.BUY,
            buy_order_size_pct(self._selector.risk_tolerance),
            stop_loss_threshold, profit_threshold, stop_loss_threshold,
        )
        self._cart.add_to_cart(order)
        return True

    async def portfolio_daytrade(
        self,
        symbol: str,
        allocation: float,
        profit_threshold: Optional[float] = None,
        stop_loss_threshold: Optional[float] = None,
    ) -> bool:
        try:
            price = await self._client.get_price(symbol)
            balance = await self._client.get_balance()
            quantity = calculate_quantity(price, allocation, balance.cash_balance)
        except Exception as exc:
            logger.warning("Skipping day trade of %s: %s", symbol, exc)
            return False
        order = build_order(
            symbol, quantity, price, OrderSide.DAYTRADE, 0.5,
            stop_loss_threshold, profit_threshold, stop_loss_threshold,
            allocation,
        )
        self._cart.add_to_cart(order)
        return True
