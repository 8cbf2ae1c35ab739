"""Trade discovery — finds today's candidates for the selected strategy.

Swing and short discovery are driven by the prediction stream: each
received batch is classified, handed to a candidate callback, and the next
symbol is requested after ``retry_seconds`` under the ``findTrades`` key.
Day-trade-short discovery walks the bear list sequentially instead.

Only one stream-driven run exists at a time; starting a run cancels the
previous one.
"""

import functools
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Sequence

from autopilot.audit import AuditTrail
from autopilot.broker.models import PredictionBatch
from autopilot.discovery.stream import PredictionStream, Subscription
from autopilot.discovery.watchlists import BEAR_LIST, PRIMARY_LIST, WatchlistCursor
from autopilot.ledger.ledger import ProfitLossLedger, SnapshotStore
from autopilot.orders.cart import Cart
from autopilot.orders.planner import OrderPlanner
from autopilot.session.clock import DEFAULT_TIMEZONE, last_trade_date
from autopilot.strategy.adaptation import StrategySelector
from autopilot.strategy.models import Holding, Strategy
from autopilot.strategy.prediction_filter import is_buy_prediction

logger = logging.getLogger("autopilot.discovery")

FIND_TRADES_KEY = "findTrades"
REQUEST_KEY = "portfolio_mgmt_ai"
LAST_ML_RESULT_KEY = "lastMlResult"

# Extra stream items allowed beyond the watch-list size.
STREAM_SLACK = 10

DAYTRADE_MIN_ACCURACY = 0.6
DAYTRADE_MIN_GUESSES = 20
DAYTRADE_SHORT_MIN_GUESSES = 50

CandidateCallback = Callable[[Holding], Awaitable[None]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DiscoveryRun:
    """Cancellation token for one stream-driven discovery pass."""

    def __init__(self, next_symbol: Callable[[], Optional[str]]) -> None:
        self.next_symbol = next_symbol
        self.subscription: Optional[Subscription] = None

    @property
    def active(self) -> bool:
        return self.subscription is not None and self.subscription.active

    def cancel(self) -> None:
        if self.subscription is not None:
            self.subscription.cancel()


class TradeDiscovery:
    """Dispatches discovery on the current strategy.

    Args:
        stream: Prediction stream to subscribe to.
        client: Backend client (``train_stock``).
        planner: Adds candidate orders to the cart.
        cart: Order queues (read for the day-trade cap).
        selector: Source of the current strategy.
        ledger: Persisted profit record (for profitable re-queues).
        audit: Audit trail for accepted candidates.
        scheduler: Delayed-job scheduler.
        last_result_store: Ephemeral slot for the last classified batch.
        primary_list: Swing / day-trade candidates.
        bear_list: Short / day-trade-short candidates.
        max_trade_count: Day-trade queue cap for the sequential path.
        retry_seconds: Delay between candidate requests and after errors.
        tz_name: Exchange timezone for training windows.
        clock: Returns the current time.
    """

    def __init__(
        self,
        stream: PredictionStream,
        client,
        planner: OrderPlanner,
        cart: Cart,
        selector: StrategySelector,
        ledger: ProfitLossLedger,
        audit: AuditTrail,
        scheduler,
        last_result_store: SnapshotStore,
        primary_list: Sequence[str] = PRIMARY_LIST,
        bear_list: Sequence[str] = BEAR_LIST,
        max_trade_count: int = 5,
        retry_seconds: float = 60.0,
        tz_name: str = DEFAULT_TIMEZONE,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._stream = stream
        self._client = client
        self._planner = planner
        self._cart = cart
        self._selector = selector
        self._ledger = ledger
        self._audit = audit
        self._scheduler = scheduler
        self._last_result = last_result_store
        self._primary_list = tuple(primary_list)
        self._bear_list = tuple(bear_list)
        self._max_trade_count = max_trade_count
        self._retry_seconds = retry_seconds
        self._tz_name = tz_name
        self._clock = clock
        self.run: Optional[DiscoveryRun] = None
        self.loading = False

    # ── Dispatch ─────────────────────────────────────────────────────────

    async def get_new_trades(self) -> Strategy:
        """Start discovery for the selected strategy; returns that strategy."""
        strategy = self._selector.current_strategy
        logger.info("Finding trades for %s", strategy.value)

        if strategy == Strategy.DAYTRADE:
            self.find_swingtrades(self._daytrade_candidate)
            for symbol in self._ledger.profitable_symbols():
                await self._planner.add_daytrade(symbol)
        elif strategy == Strategy.SWINGTRADE:
            self.find_swingtrades(self._swing_candidate)
        elif strategy == Strategy.SHORT:
            self.find_short()
        elif strategy == Strategy.DAYTRADE_SHORT:
            await self.find_daytrade_short()
        else:
            logger.info("%s has no discovery path", strategy.value)
        return strategy

    def find_swingtrades(self, on_candidate: CandidateCallback) -> Optional[DiscoveryRun]:
        cursor = WatchlistCursor(self._primary_list, wrap=True)
        return self._start_run(
            cursor.next, len(self._primary_list) + STREAM_SLACK, on_candidate,
        )

    def find_short(self) -> Optional[DiscoveryRun]:
        cursor = WatchlistCursor(self._bear_list, wrap=False)
        return self._start_run(cursor.next, len(self._bear_list), self._short_candidate)

    async def find_daytrade_short(self) -> int:
        """Train each bear-list symbol in turn; returns how many were queued."""
        self.cancel()
        self.loading = True
        queued = 0
        try:
            for symbol in self._bear_list:
                last = last_trade_date(self._clock(), self._tz_name)
                start = last - timedelta(days=1)
                end = start + timedelta(days=1)
                result = await self._train(symbol, start, end)
                if result is None:
                    continue
                if (result.accuracy > DAYTRADE_MIN_ACCURACY
                        and result.guesses > DAYTRADE_SHORT_MIN_GUESSES):
                    self._audit.add(
                        symbol,
                        f"Day trade short training results correct: "
                        f"{result.correct}, guesses: {result.guesses}",
                    )
                    if await self._planner.add_daytrade(symbol):
                        queued += 1
                if len(self._cart.other_orders) >= self._max_trade_count:
                    break
        finally:
            self.loading = False
        return queued

    # ── Stream-driven runs ───────────────────────────────────────────────

    def _start_run(
        self,
        next_symbol: Callable[[], Optional[str]],
        max_items: int,
        on_candidate: CandidateCallback,
    ) -> Optional[DiscoveryRun]:
        self.cancel()
        if max_items <= 0:
            logger.info("Watch-list is empty, nothing to discover")
            return None

        run = DiscoveryRun(next_symbol)

        async def on_next(batch: PredictionBatch) -> None:
            await self._handle_batch(run, batch, on_candidate)

        run.subscription = self._stream.subscribe(
            on_next,
            on_error=self._on_stream_error,
            max_items=max_items,
            finalize=self._finish_loading,
        )
        self.run = run
        self.loading = True
        self.trigger_next()
        return run

    async def _handle_batch(
        self,
        run: DiscoveryRun,
        batch: PredictionBatch,
        on_candidate: CandidateCallback,
    ) -> None:
        self._last_result.set(LAST_ML_RESULT_KEY, batch.to_json())
        if is_buy_prediction(batch):
            try:
                await on_candidate(Holding(symbol=batch.label))
            except Exception as exc:
                logger.warning("Candidate %s failed: %s", batch.label, exc)
        if run.active:
            self._scheduler.schedule(FIND_TRADES_KEY, self.trigger_next, self._retry_seconds)

    def trigger_next(self) -> Optional[str]:
        """Request a prediction for the run's next symbol."""
        run = self.run
        if run is None or not run.active:
            return None
        symbol = run.next_symbol()
        if symbol is None:
            run.cancel()
            return None
        self._scheduler.schedule(
            REQUEST_KEY, functools.partial(self._stream.request, symbol), 0,
        )
        return symbol

    def _on_stream_error(self, exc: Exception) -> None:
        logger.warning("Prediction stream failed, retrying discovery: %s", exc)
        self._scheduler.schedule(FIND_TRADES_KEY, self.get_new_trades, self._retry_seconds)

    def _finish_loading(self) -> None:
        self.loading = False

    def cancel(self) -> None:
        """Cancel the active run and its pending requests."""
        if self.run is not None:
            self.run.cancel()
            self.run = None
        self._scheduler.cancel(FIND_TRADES_KEY)
        self._scheduler.cancel(REQUEST_KEY)
        self.loading = False

    # ── Candidate callbacks ──────────────────────────────────────────────

    async def _swing_candidate(self, holding: Holding) -> None:
        if await self._planner.add_buy(holding):
            self._audit.add(holding.symbol, "Adding swing trade")

    async def _short_candidate(self, holding: Holding) -> None:
        if await self._planner.add_buy(holding):
            self._audit.add(holding.symbol, "Adding short setup")

    async def _daytrade_candidate(self, holding: Holding) -> None:
        last = last_trade_date(self._clock(), self._tz_name)
        start = last - timedelta(days=2)
        end = start + timedelta(days=3)
        result = await self._train(holding.symbol, start, end)
        if result is None:
            return
        if result.accuracy > DAYTRADE_MIN_ACCURACY and result.guesses > DAYTRADE_MIN_GUESSES:
            self._audit.add(
                holding.symbol,
                f"Day trade training results correct: {result.correct}, "
                f"guesses: {result.guesses}",
            )
            await self._planner.add_daytrade(holding.symbol)

    async def _train(self, symbol: str, start: datetime, end: datetime):
        try:
            results = await self._client.train_stock(
                symbol, start.date().isoformat(), end.date().isoformat(),
            )
        except Exception as exc:
            logger.warning("Training %s failed: %s", symbol, exc)
            return None
        if not results:
            return None
        return results[0]
