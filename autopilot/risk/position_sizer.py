"""Position sizing — pure math, no I/O.

Converts an allocation fraction of the cash balance into a share count,
and a share count into the slice submitted per order.
"""

import math


def calculate_quantity(
    price: float,
    allocation_pct: float,
    cash_balance: float,
) -> int:
    """Calculate how many shares an allocation buys.

    Formula::

        total_cost = round(cash_balance × allocation_pct, 2)
        quantity   = ceil(total_cost / price)

    Args:
        price: Current share price (e.g. 125.40).
        allocation_pct: Fraction of cash to commit (e.g. 0.5).
        cash_balance: Available cash.

    Returns:
        Share count, rounded up.

    Raises:
        ValueError: If *price* is non-positive.
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    total_cost = round(cash_balance * allocation_pct, 2)
    return math.ceil(total_cost / price)


def calculate_order_size(quantity: float, order_size_pct: float) -> int:
    """Shares per submitted slice: ``floor(quantity × pct)``, at least 1."""
    return math.floor(quantity * order_size_pct) or 1


def buy_order_size_pct(risk_multiplier: float) -> float:
    """Bigger slices for aggressive risk levels (above 0.5)."""
    return 0.5 if risk_multiplier > 0.5 else 0.3
