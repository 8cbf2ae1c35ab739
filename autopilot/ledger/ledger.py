"""Profit/loss ledger — the single persisted snapshot that links one day to the next.

The snapshot holds the last day's total, the strategy and risk index that
produced it, and a per-symbol profit map that accumulates across days and
never resets.
"""

import logging
from datetime import datetime
from typing import Mapping, Optional, Protocol

from autopilot.strategy.models import ProfitLossRecord, Strategy

logger = logging.getLogger("autopilot.ledger")

PROFIT_LOSS_KEY = "profitLoss"


class SnapshotStore(Protocol):
    """Key/value store of JSON-compatible dicts."""

    def get(self, key: str) -> Optional[dict]: ...

    def set(self, key: str, value: dict) -> None: ...


def merge_profit_records(
    previous: Optional[Mapping[str, float]],
    current: Mapping[str, float],
) -> dict[str, float]:
    """Add every non-zero *previous* value into a copy of *current*.

    Keys only in *previous* are carried over; overlapping keys are summed.
    """
    merged = dict(current)
    for symbol, profit in (previous or {}).items():
        if profit:
            merged[symbol] = merged.get(symbol, 0.0) + profit
    return merged


class ProfitLossLedger:
    """Reads and writes the latest :class:`ProfitLossRecord`.

    Intraday updates and the session-close write all merge today's
    per-symbol map onto the same baseline (the snapshot as it stood before
    the first write of the day), so repeated updates never double count.

    Args:
        store: Snapshot store (``get`` / ``set``).
        key: Name of the snapshot slot.
    """

    def __init__(self, store: SnapshotStore, key: str = PROFIT_LOSS_KEY) -> None:
        self._store = store
        self._key = key
        self._baseline: Optional[dict[str, float]] = None

    def previous(self) -> Optional[ProfitLossRecord]:
        """The persisted record, or ``None`` if nothing has been saved."""
        data = self._store.get(self._key)
        if not data:
            return None
        return ProfitLossRecord.from_dict(data)

    def record(
        self,
        total_profit: float,
        strategy: Strategy,
        risk_index: int,
        per_symbol: Mapping[str, float],
        now: datetime,
    ) -> ProfitLossRecord:
        """Merge today's figures onto the baseline and persist them."""
        if self._baseline is None:
            prev = self.previous()
            self._baseline = dict(prev.profit_record) if prev else {}

        record = ProfitLossRecord(
            date=now.isoformat(),
            profit=total_profit,
            last_strategy=strategy.value,
            last_risk_tolerance=risk_index,
            profit_record=merge_profit_records(self._baseline, per_symbol),
        )
        self._store.set(self._key, record.to_dict())
        return record

    def close_session(
        self,
        total_profit: float,
        strategy: Strategy,
        risk_index: int,
        per_symbol: Mapping[str, float],
        now: datetime,
    ) -> ProfitLossRecord:
        """Final write of the day; the next write starts a new baseline."""
        record = self.record(total_profit, strategy, risk_index, per_symbol, now)
        self._baseline = None
        logger.info(
            "Session closed: profit %.2f, strategy %s, risk %d",
            total_profit, strategy.value, risk_index,
        )
        return record

    def profitable_symbols(self) -> list[str]:
        """Symbols with positive accumulated profit, in stored order."""
        prev = self.previous()
        if prev is None:
            return []
        return [s for s, p in prev.profit_record.items() if p > 0]
