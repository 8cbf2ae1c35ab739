"""Strategy adaptation — pick today's strategy and risk level from yesterday's result.

Rules applied once per trading day, to the previous session's ledger record:

  - Loss on a day-trade strategy → widen day-trade risk (one step up).
  - Loss on any other strategy → lower swing risk, then rotate strategy.
  - Profit on a day-trade strategy → reset day-trade risk to zero, then
    rotate strategy.
  - Profit on any other strategy → raise swing risk.
  - No record, or exactly zero profit → unchanged.
"""

import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional

import pytz

from autopilot.session.clock import DEFAULT_TIMEZONE
from autopilot.strategy.models import (
    DAY_TRADE_RISK_TOLERANCE_LIST,
    RISK_TOLERANCE_LIST,
    STRATEGY_LIST,
    ProfitLossRecord,
    RiskTolerance,
    Strategy,
)

logger = logging.getLogger("autopilot.strategy")

NotifyFn = Callable[[str, str, str], None]


def _clamp(index: int, length: int) -> int:
    return max(0, min(index, length - 1))


class StrategySelector:
    """Holds the strategy cursor and both risk cursors.

    Args:
        notify: Optional ``(key, severity, summary)`` callback for
                user-facing events.
        tz_name: Exchange timezone used to date persisted records.
    """

    def __init__(
        self,
        notify: Optional[NotifyFn] = None,
        tz_name: str = DEFAULT_TIMEZONE,
    ) -> None:
        self.strategies: tuple[Strategy, ...] = STRATEGY_LIST
        self.risk_tolerances: tuple[RiskTolerance, ...] = RISK_TOLERANCE_LIST
        self.day_trade_risk_tolerances: tuple[RiskTolerance, ...] = (
            DAY_TRADE_RISK_TOLERANCE_LIST
        )
        self.strategy_index = 0
        self.risk_index = 1
        self.day_trade_risk_index = 0
        self._notify = notify
        self._tz = pytz.timezone(tz_name)
        self._adapted_for: Optional[date] = None

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def current_strategy(self) -> Strategy:
        return self.strategies[self.strategy_index]

    @property
    def risk_tolerance(self) -> float:
        """Swing allocation multiplier at the current risk index."""
        return float(self.risk_tolerances[self.risk_index])

    @property
    def day_trade_risk_tolerance(self) -> float:
        """Day-trade allocation multiplier at the current day-trade index."""
        return float(self.day_trade_risk_tolerances[self.day_trade_risk_index])

    # ── Restore ──────────────────────────────────────────────────────────

    def restore(self, record: Optional[ProfitLossRecord]) -> None:
        """Resume from the persisted record's strategy and risk index.

        Unknown strategy names fall back to the first strategy.
        """
        if record is None or not record.last_strategy:
            self.strategy_index = 0
            return
        wanted = record.last_strategy.lower()
        matches = [
            i for i, s in enumerate(self.strategies) if s.value.lower() == wanted
        ]
        self.strategy_index = matches[0] if matches else 0
        self.risk_index = _clamp(
            record.last_risk_tolerance or 0, len(self.risk_tolerances)
        )

    # ── Mutation ─────────────────────────────────────────────────────────

    def increase_risk_tolerance(self) -> None:
        self.risk_index = _clamp(self.risk_index + 1, len(self.risk_tolerances))
        logger.info("Increase risk to %d", self.risk_index)

    def decrease_risk_tolerance(self) -> None:
        self.risk_index = _clamp(self.risk_index - 1, len(self.risk_tolerances))
        self.change_strategy()

    def increase_day_trade_risk_tolerance(self) -> None:
        self.day_trade_risk_index = _clamp(
            self.day_trade_risk_index + 1, len(self.day_trade_risk_tolerances)
        )
        logger.info("Increase day trade risk to %d", self.day_trade_risk_index)

    def decrease_day_trade_risk_tolerance(self) -> None:
        # Resets rather than stepping down one level.
        if self.day_trade_risk_index > 0:
            self.day_trade_risk_index = 0
        self.change_strategy()

    def change_strategy(self) -> Strategy:
        """Advance to the next strategy, wrapping after the last one."""
        self.strategy_index = (self.strategy_index + 1) % len(self.strategies)
        strategy = self.current_strategy
        if self._notify is not None:
            self._notify(
                "strategy_change", "info", f"Strategy changed to {strategy.value}"
            )
        logger.info(
            "Strategy changed to %s. Risk tolerance %d",
            strategy.value, self.risk_index,
        )
        return strategy

    def _record_day(self, record: ProfitLossRecord) -> Optional[date]:
        try:
            stamp = datetime.fromisoformat(record.date)
        except ValueError:
            return None
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=timezone.utc)
        return stamp.astimezone(self._tz).date()

    def adapt(self, record: Optional[ProfitLossRecord], today: date) -> str:
        """Apply the previous session's result. Returns a short slug of what changed.

        Runs at most once per trading day: re-running the backtest phase
        later the same day returns ``already_applied``. A record stamped
        with *today* (or later) is an intraday ledger write, not a previous
        result, and leaves the cursors alone.
        """
        if self._adapted_for == today:
            return "already_applied"
        if record is None or not record.profit:
            return "unchanged"
        recorded_on = self._record_day(record)
        if recorded_on is not None and recorded_on >= today:
            return "unchanged"
        self._adapted_for = today

        is_daytrade = record.last_strategy == Strategy.DAYTRADE.value
        if record.profit < 0:
            if is_daytrade:
                self.increase_day_trade_risk_tolerance()
                return "increase_day_trade_risk"
            self.decrease_risk_tolerance()
            return "decrease_risk"

        if is_daytrade:
            self.decrease_day_trade_risk_tolerance()
            return "reset_day_trade_risk"
        self.increase_risk_tolerance()
        return "increase_risk"
