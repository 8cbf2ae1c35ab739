"""Position risk monitor — the once-a-day review of current holdings.

Holdings are rebuilt from the broker's positions, scored against their
technical indicators, and then passed through two independent rules:

  - stop-loss: ``profit_and_loss / net_liquidation < stop_loss_pct`` sells,
    a positive ratio adds to the position.
  - over-concentration: more than ``max_trade_count`` holdings sells the
    single worst performer.

Finally each holding's neutral prediction decides whether a queued sell or
buy for it is withdrawn.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from autopilot.broker.models import PortfolioPosition
from autopilot.orders.cart import Cart
from autopilot.orders.planner import OrderPlanner
from autopilot.strategy.models import Holding, Recommendation
from autopilot.strategy.prediction_filter import is_buy_prediction

logger = logging.getLogger("autopilot.positions")

OPTION_MULTIPLIER = 100
INDICATOR_LOOKBACK_DAYS = 365

# Key of the overall verdict inside an indicator recommendation map.
_OVERALL_KEY = "recommendation"


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def build_holdings(positions: Iterable[PortfolioPosition], total_value: float) -> list[Holding]:
    """Turn broker positions into fresh :class:`Holding` rows.

    Option cost basis is scaled by the contract multiplier. Allocation is
    cost basis over *total_value*.
    """
    holdings: list[Holding] = []
    for p in positions:
        cost = p.average_price * p.long_quantity
        if p.is_option:
            cost *= OPTION_MULTIPLIER
        holdings.append(
            Holding(
                symbol=p.symbol,
                profit_and_loss=p.market_value - cost,
                net_liquidation=p.market_value,
                shares=p.long_quantity,
                allocation=(p.average_price * p.long_quantity) / total_value if total_value else 0.0,
            )
        )
    return holdings


def get_recommendation_reason(recommendation: dict) -> tuple[list[str], list[str]]:
    """Split an indicator map into (bullish indicators, bearish indicators)."""
    buy_reasons: list[str] = []
    sell_reasons: list[str] = []
    for name, verdict in recommendation.items():
        if name == _OVERALL_KEY or not isinstance(verdict, str):
            continue
        text = verdict.lower()
        if text == "bullish":
            buy_reasons.append(name)
        elif text == "bearish":
            sell_reasons.append(name)
    return buy_reasons, sell_reasons


class PositionMonitor:
    """Reviews holdings and feeds buy/sell decisions into the cart.

    Args:
        client: Backend client (``get_balance``, ``get_portfolio``,
                ``get_backtest_evaluation``, ``get_signal_scores``,
                ``get_neutral_prediction``).
        planner: Builds the resulting orders.
        cart: Queues withdrawn by the prediction review.
        max_trade_count: Holding count above which the worst is sold.
        stop_loss_pct: Loss ratio below which a holding is sold.
        today: Date provider for indicator windows.
    """

    def __init__(
        self,
        client,
        planner: OrderPlanner,
        cart: Cart,
        max_trade_count: int = 5,
        stop_loss_pct: float = -0.05,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self._client = client
        self._planner = planner
        self._cart = cart
        self._max_trade_count = max_trade_count
        self._stop_loss_pct = stop_loss_pct
        self._today = today
        self.current_holdings: list[Holding] = []

    async def process_current_positions(self) -> Optional[list[Holding]]:
        """Run the full review.

        Returns the reviewed holdings, or ``None`` when the account has no
        cash (the review is skipped).
        """
        balance = await self._client.get_balance()
        total_value = balance.cash_balance
        if total_value <= 0:
            logger.info("No cash available (%.2f), skipping position review", total_value)
            return None

        positions = await self._client.get_portfolio()
        self.current_holdings = build_holdings(positions, total_value)
        logger.info("Reviewing %d holding(s)", len(self.current_holdings))

        equities = {p.symbol for p in positions if p.is_equity}
        for holding in self.current_holdings:
            if holding.symbol in equities:
                await self.score_holding(holding)

        await self.check_if_too_many_holdings(self.current_holdings)
        await self.check_for_stop_loss(self.current_holdings)
        await self.review_predictions(self.current_holdings)
        return self.current_holdings

    # ── Indicator analysis ───────────────────────────────────────────────

    async def score_holding(self, holding: Holding) -> None:
        """Fill recommendation, reasons and confidences, then act on them."""
        end = self._today()
        start = end - timedelta(days=INDICATOR_LOOKBACK_DAYS)
        try:
            evaluation = await self._client.get_backtest_evaluation(
                holding.symbol, start.isoformat(), end.isoformat(), "daily-indicators",
            )
            last = evaluation.last
        except Exception as exc:
            logger.warning("Indicators unavailable for %s: %s", holding.symbol, exc)
            return

        holding.recommendation = Recommendation.parse(last.overall)
        holding.buy_reasons, holding.sell_reasons = get_recommendation_reason(
            last.recommendation
        )

        try:
            scores = await self._client.get_signal_scores(evaluation.signals)
        except Exception as exc:
            logger.warning("Signal scores unavailable for %s: %s", holding.symbol, exc)
            return

        for name in holding.buy_reasons:
            score = scores.get(name)
            if score is not None:
                holding.buy_confidence += score.bullish_mid_term_profit_loss
        for name in holding.sell_reasons:
            score = scores.get(name)
            if score is not None:
                holding.sell_confidence += score.bearish_mid_term_profit_loss

        await self.analyse_recommendations(holding)

    async def analyse_recommendations(self, holding: Holding) -> Optional[str]:
        """Buy on a confident bullish verdict, sell on a confident bearish one."""
        if holding.recommendation == Recommendation.BULLISH and holding.buy_confidence >= 0:
            logger.info("Buying %s (confidence %.2f)", holding.symbol, holding.buy_confidence)
            await self._planner.add_buy(holding)
            return "buy"
        if holding.recommendation == Recommendation.BEARISH and holding.sell_confidence >= 0:
            logger.info("Selling %s (confidence %.2f)", holding.symbol, holding.sell_confidence)
            await self._planner.portfolio_sell(holding)
            return "sell"
        return None

    # ── Rules ────────────────────────────────────────────────────────────

    async def check_if_too_many_holdings(self, holdings: list[Holding]) -> Optional[Holding]:
        """Sell the worst performer when over the holding cap."""
        if len(holdings) <= self._max_trade_count:
            return None
        worst = sorted(holdings, key=lambda h: h.profit_and_loss)[0]
        logger.info(
            "Too many holdings (%d > %d), selling %s",
            len(holdings), self._max_trade_count, worst.symbol,
        )
        await self._planner.portfolio_sell(worst)
        return worst

    async def check_for_stop_loss(self, holdings: list[Holding]) -> dict[str, str]:
        """Apply the stop-loss rule; returns ``{symbol: "sell" | "buy"}``."""
        actions: dict[str, str] = {}
        for holding in holdings:
            if not holding.net_liquidation:
                continue
            percent_loss = holding.profit_and_loss / holding.net_liquidation
            if percent_loss < self._stop_loss_pct:
                logger.info("Stop loss hit on %s (%.4f)", holding.symbol, percent_loss)
                await self._planner.portfolio_sell(holding)
                actions[holding.symbol] = "sell"
            elif percent_loss > 0:
                await self._planner.add_buy(holding)
                actions[holding.symbol] = "buy"
        return actions

    async def review_predictions(self, holdings: list[Holding]) -> None:
        """Withdraw queued orders that contradict the holding's prediction."""
        for holding in holdings:
            try:
                batch = await self._client.get_neutral_prediction(holding.symbol)
            except Exception as exc:
                logger.warning("No prediction for %s: %s", holding.symbol, exc)
                continue
            is_buy = is_buy_prediction(batch)
            if is_buy is True:
                self._cart.delete_sell(holding.symbol)
                await self._planner.add_buy(holding)
            elif is_buy is False:
                self._cart.delete_buy(holding.symbol)
