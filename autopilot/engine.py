"""Trade autopilot — session engine (orchestration loop).

One tick evaluates exactly one :class:`SessionPhase`:

  - closing: export the day's audit trail, persist the ledger, reset the cart.
  - backtest: adapt strategy and risk, review holdings, start discovery.
  - active: drain the order throttle, or warm up before the first burst.
  - idle: re-arm the backtest once the exchange-local date has moved on.

Every delayed side effect goes through the engine's scheduler so ``stop()``
can cancel all of it.
"""

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional

import pytz

from autopilot.api.routers import push_notification, update_autopilot_status
from autopilot.audit import AuditTrail
from autopilot.config import Config
from autopilot.discovery.orchestrator import TradeDiscovery
from autopilot.discovery.stream import PredictionStream
from autopilot.ledger.ledger import ProfitLossLedger, SnapshotStore
from autopilot.ledger.score_keeper import ScoreKeeper
from autopilot.orders.cart import Cart
from autopilot.orders.planner import OrderPlanner
from autopilot.orders.sink import OrderSink
from autopilot.orders.throttle import OrderThrottle
from autopilot.repos.audit_repo import AuditRepo
from autopilot.repos.snapshot_repo import MemorySnapshotStore
from autopilot.risk.position_monitor import PositionMonitor
from autopilot.scheduler import Scheduler
from autopilot.session.clock import SessionWindow, seconds_until_start, session_bounds
from autopilot.session.phases import SessionPhase, select_phase
from autopilot.strategy.adaptation import StrategySelector

logger = logging.getLogger("autopilot")

WARMUP_KEY = "initialize_orders"
RESET_BACKTESTED_KEY = "reset_backtested"

NotifyFn = Callable[[str, str, str], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class AutopilotEngine:
    """Owns the day's trading state and advances it one tick at a time.

    Args:
        config: Application configuration.
        client: A ``BackendClient`` (or compatible duck-type / mock).
        scheduler: Delayed-job scheduler. Defaults to a new ``Scheduler``.
        snapshot_store: Persistent store for the ledger. Defaults to memory.
        audit_repo: Destination for exported audit entries.
        sink: Order sink. Defaults to a new ``OrderSink``.
        stream: Prediction stream. Defaults to one over *client*.
        notify: ``(key, severity, summary)`` callback for user-facing events.
        clock: Returns the current time for ``run()``.
    """

    def __init__(
        self,
        config: Config,
        client,
        scheduler=None,
        snapshot_store: Optional[SnapshotStore] = None,
        audit_repo: Optional[AuditRepo] = None,
        sink: Optional[OrderSink] = None,
        stream: Optional[PredictionStream] = None,
        notify: Optional[NotifyFn] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._config = config
        self._client = client
        self._scheduler = scheduler if scheduler is not None else Scheduler()
        self._notify_fn = notify if notify is not None else push_notification
        self._clock = clock
        self._tz = pytz.timezone(config.market_timezone)

        self.sink = sink if sink is not None else OrderSink()
        self.cart = Cart()
        self.selector = StrategySelector(notify=self._notify, tz_name=config.market_timezone)
        self.ledger = ProfitLossLedger(
            snapshot_store if snapshot_store is not None else MemorySnapshotStore()
        )
        self.score_keeper = ScoreKeeper()
        self.audit = AuditTrail(audit_repo)
        self.planner = OrderPlanner(
            client, self.cart, self.selector,
            max_trade_count=config.max_trade_count,
        )
        self.throttle = OrderThrottle(
            self.cart, self.sink, self._scheduler,
            simultaneous_order_limit=config.simultaneous_order_limit,
            stagger_seconds=config.dispatch_stagger_seconds,
        )
        self.monitor = PositionMonitor(
            client, self.planner, self.cart,
            max_trade_count=config.max_trade_count,
            stop_loss_pct=config.stop_loss_pct,
        )
        self.stream = stream if stream is not None else PredictionStream(client)
        self.discovery = TradeDiscovery(
            self.stream, client, self.planner, self.cart, self.selector,
            self.ledger, self.audit, self._scheduler, MemorySnapshotStore(),
            max_trade_count=config.max_trade_count,
            retry_seconds=config.discovery_retry_seconds,
            tz_name=config.market_timezone,
            clock=clock,
        )

        self.is_backtested = False
        self.is_trading_started = False
        self._backtested_on: Optional[date] = None
        self._running = False
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._tick_count = 0
        self._last_phase: Optional[SessionPhase] = None

        self.selector.restore(self.ledger.previous())

    # ── Lifecycle ────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Mark the autopilot running and announce it.

        Each start opens a new generation; a loop or tick left over from an
        earlier generation winds down instead of carrying on.
        """
        self._generation += 1
        self._running = True
        self._notify("autopilot_start", "success", "Autopilot started")
        self._publish_status()

    def launch(self, max_ticks: int = 0) -> asyncio.Task:
        """Start the autopilot and run its loop as a background task."""
        self.start()
        self._task = asyncio.create_task(self.run(max_ticks=max_ticks))
        return self._task

    def stop(self) -> None:
        """Stop the loop and cancel every pending job and discovery run.

        The loop task started by :meth:`launch` is cancelled, so a tick in
        flight is abandoned. The cart and throttle cursors are cleared so no
        partially drained burst survives.
        """
        self._running = False
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self.discovery.cancel()
        self._scheduler.cancel_all()
        self.throttle.reset()
        self.cart.delete_cart()
        self.is_trading_started = False
        self._notify("autopilot_stop", "danger", "Autopilot stopped")
        self._publish_status()

    def _stale(self, generation: int) -> bool:
        return generation != self._generation

    def _abandon_tick(self) -> dict:
        # stop() already tore the session down; undo what the tick added since.
        if not self._running:
            self.discovery.cancel()
            self.cart.delete_cart()
        logger.info("Tick abandoned, autopilot was stopped")
        return {"action": "stopped"}

    def _notify(self, key: str, severity: str, summary: str) -> None:
        self._notify_fn(key, severity, summary)

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(self, max_ticks: int = 0) -> list[dict]:
        """Tick until stopped.

        The first tick runs immediately. Outside a session the loop then
        waits for the next session open; afterwards it ticks every
        ``tick_interval_seconds``. The loop belongs to the generation that
        was current when it began and exits once ``stop()`` or a later
        ``start()`` replaces it.

        Args:
            max_ticks: Stop after this many ticks (0 = unlimited).

        Returns:
            List of per-tick result dicts.
        """
        results: list[dict] = []
        ticks = 0
        first = True
        generation = self._generation

        while self._running and not self._stale(generation):
            ticks += 1
            try:
                result = await self.run_once()
            except Exception as exc:
                logger.error("Tick %d error: %s", ticks, exc)
                result = {"phase": None, "action": "error", "reason": str(exc)}
            results.append(result)
            logger.info("Tick %d: %s/%s", ticks, result.get("phase"), result.get("action"))

            if max_ticks > 0 and ticks >= max_ticks:
                break

            wait = self._config.tick_interval_seconds
            if first:
                first = False
                now = self._clock()
                if not self.session_window(now).contains(now):
                    wait = seconds_until_start(
                        now, self._config.market_timezone, self._config.session_start_time,
                    )

            # Interruptible sleep, checks the generation every second
            for _ in range(int(wait)):
                if not self._running or self._stale(generation):
                    break
                await asyncio.sleep(1)

        self._publish_status()
        return results

    # ── Single tick ──────────────────────────────────────────────────────

    def session_window(self, now: datetime) -> SessionWindow:
        return session_bounds(
            now,
            self._config.market_timezone,
            self._config.session_start_time,
            self._config.session_end_time,
        )

    async def run_once(self, now: Optional[datetime] = None) -> dict:
        """Execute one tick.

        Returns a dict with the ``phase`` evaluated and the ``action`` taken,
        e.g. ``{"phase": "active", "action": "orders_dispatched", ...}``.
        A failing phase is logged and reported as ``action: "error"``.
        """
        now = now or self._clock()
        window = self.session_window(now)
        phase = select_phase(
            now, window, self.is_backtested, self._config.closing_window_minutes,
        )
        if phase != self._last_phase:
            logger.info("Entering %s phase", phase.value)
            self._last_phase = phase

        handler = {
            SessionPhase.CLOSING: self._closing,
            SessionPhase.BACKTEST: self._backtest,
            SessionPhase.ACTIVE: self._active,
            SessionPhase.IDLE: self._idle,
        }[phase]

        try:
            result = await handler(now)
        except Exception as exc:
            logger.error("%s phase failed: %s", phase.value, exc)
            result = {"action": "error", "reason": str(exc)}

        self._tick_count += 1
        result = {"phase": phase.value, **result}
        self._publish_status(phase=phase.value, last_tick_at=now.isoformat())
        return result

    # ── Phases ───────────────────────────────────────────────────────────

    async def _closing(self, now: datetime) -> dict:
        if not self.audit.has_entries():
            return {"action": "skipped", "reason": "no_activity"}

        total = self.score_keeper.total
        logger.info("Profit %s", total)
        self.audit.add(None, f"Profit {total}")
        exported = self.audit.export()
        self.ledger.close_session(
            total,
            self.selector.current_strategy,
            self.selector.risk_index,
            self.score_keeper.profit_loss_hash,
            now,
        )
        self.score_keeper.reset()
        self.reset_cart()
        return {"action": "session_closed", "profit": total, "exported": exported}

    async def _backtest(self, now: datetime) -> dict:
        generation = self._generation
        result = await self.develop_strategy(now)
        if self._stale(generation):
            return self._abandon_tick()
        self.is_backtested = True
        self._backtested_on = self._local_date(now)
        self._scheduler.schedule(
            RESET_BACKTESTED_KEY,
            self._clear_backtested,
            self._config.backtest_cooldown_seconds,
        )
        return {"action": "backtested", **result}

    async def _active(self, now: datetime) -> dict:
        if self.is_trading_started and self.has_orders():
            dispatched = self.throttle.execute_order_list()
            self.ledger.record(
                self.score_keeper.total,
                self.selector.current_strategy,
                self.selector.risk_index,
                self.score_keeper.profit_loss_hash,
                now,
            )
            return {"action": "orders_dispatched", "symbols": dispatched}

        scheduled = self._scheduler.schedule(
            WARMUP_KEY, self._start_trading, self._config.warmup_seconds, coalesce=True,
        )
        return {"action": "warming_up", "scheduled": scheduled}

    async def _idle(self, now: datetime) -> dict:
        if (
            self.is_backtested
            and self._backtested_on is not None
            and self._backtested_on < self._local_date(now)
        ):
            self.is_backtested = False
            return {"action": "backtest_cleared"}
        return {"action": "waiting"}

    # ── Strategy / orders ────────────────────────────────────────────────

    async def develop_strategy(self, now: Optional[datetime] = None) -> dict:
        """Adapt to the previous session, review holdings, then discover trades."""
        now = now or self._clock()
        generation = self._generation
        record = self.ledger.previous()
        adaptation = self.selector.adapt(record, self.session_window(now).trade_date)
        logger.info(
            "Developing strategy: %s (strategy %s, risk %d, day trade risk %d)",
            adaptation,
            self.selector.current_strategy.value,
            self.selector.risk_index,
            self.selector.day_trade_risk_index,
        )

        holdings = await self.monitor.process_current_positions()
        if holdings is None or self._stale(generation):
            return {"adaptation": adaptation, "strategy": None, "holdings": 0}

        strategy = await self.discovery.get_new_trades()
        return {
            "adaptation": adaptation,
            "strategy": strategy.value,
            "holdings": len(holdings),
        }

    def _start_trading(self) -> None:
        self.throttle.initialize_orders()
        self.is_trading_started = True
        logger.info("Trading started")

    def _clear_backtested(self) -> None:
        self.is_backtested = False

    def reset_cart(self) -> None:
        """Clear the cart and throttle cursors for the next session."""
        self.throttle.reset()
        self._scheduler.cancel(WARMUP_KEY)
        self.is_trading_started = False
        self.cart.delete_cart()

    def has_orders(self) -> bool:
        return self.cart.has_orders()

    def record_profit(self, symbol: str, amount: float) -> float:
        """Credit realised profit/loss for *symbol*; returns the day total."""
        self.score_keeper.add_profit_loss(symbol, amount)
        return self.score_keeper.total

    def next_strategy(self) -> str:
        return self.selector.change_strategy().value

    # ── Status ───────────────────────────────────────────────────────────

    def _local_date(self, now: datetime) -> date:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self._tz).date()

    def status(self) -> dict:
        return {
            "running": self._running,
            "strategy": self.selector.current_strategy.value,
            "risk_index": self.selector.risk_index,
            "day_trade_risk_index": self.selector.day_trade_risk_index,
            "is_backtested": self.is_backtested,
            "is_trading_started": self.is_trading_started,
            "orders": {
                "sell": len(self.cart.sell_orders),
                "buy": len(self.cart.buy_orders),
                "other": len(self.cart.other_orders),
            },
            "loading": self.discovery.loading,
            "sink_depth": self.sink.qsize(),
            "tick_count": self._tick_count,
            "profit_today": self.score_keeper.total,
        }

    def _publish_status(self, **fields) -> None:
        update_autopilot_status(**self.status(), **fields)
