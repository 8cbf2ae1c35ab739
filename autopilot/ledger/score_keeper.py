"""Day score keeper — running realized profit for the current session."""

import logging

logger = logging.getLogger("autopilot.ledger")


class ScoreKeeper:
    """Accumulates realized profit/loss reported by the execution side."""

    def __init__(self) -> None:
        self.total: float = 0.0
        self.profit_loss_hash: dict[str, float] = {}

    def add_profit_loss(self, symbol: str, amount: float) -> None:
        self.total = round(self.total + amount, 2)
        self.profit_loss_hash[symbol] = round(
            self.profit_loss_hash.get(symbol, 0.0) + amount, 2
        )
        logger.info("%s realized %.2f (day total %.2f)", symbol, amount, self.total)

    def reset(self) -> None:
        """Start a new day: both the total and the per-symbol map go to zero."""
        self.total = 0.0
        self.profit_loss_hash = {}
