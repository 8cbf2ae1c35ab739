"""Exit thresholds derived from the last indicator bar.

The profit target is half of the bar's high/low range (as a fraction);
the stop loss is half of the profit target, on the losing side::

    profit_target = round(((high / low) - 1) / 2, 4)
    stop_loss     = -round(profit_target / 2, 4)
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RiskLevels:
    """Fractional exit bounds for a new order."""

    profit_target: float
    stop_loss: float


def calculate_exit_thresholds(low: float, high: float) -> RiskLevels:
    """Compute profit target and stop loss from the bar range.

    Raises:
        ValueError: If *low* is non-positive.
    """
    if low <= 0:
        raise ValueError(f"low must be positive, got {low}")
    profit_target = round(((high / low) - 1) / 2, 4)
    stop_loss = -round(profit_target / 2, 4)
    return RiskLevels(profit_target=profit_target, stop_loss=stop_loss)
