"""Strategy data models — strategies, risk multipliers, holdings, ledger record."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Strategy(str, Enum):
    """Named trading modes. Values match the persisted ledger record."""

    DAYTRADE_SHORT = "DaytradeShort"
    DAYTRADE = "Daytrade"
    SWINGTRADE = "Swingtrade"
    INVERSE_SWINGTRADE = "InverseSwingtrade"  # reserved
    SHORT = "Short"


class RiskTolerance(float, Enum):
    """Allocation-fraction multipliers."""

    ZERO = 0.01
    LOWER = 0.02
    LOW = 0.05
    EXTREME_FEAR = 0.1
    FEAR = 0.25
    NEUTRAL = 0.5
    GREED = 0.75
    EXTREME_GREED = 1.0
    XL_GREED = 1.05
    XXL_GREED = 1.1
    XXXL_GREED = 1.25
    XXXXL_GREED = 1.5
    XXXXXL_GREED = 1.75


# Rotation order. InverseSwingtrade is intentionally not in rotation.
STRATEGY_LIST: tuple[Strategy, ...] = (
    Strategy.SWINGTRADE,
    Strategy.DAYTRADE,
    Strategy.DAYTRADE_SHORT,
    Strategy.SHORT,
)

RISK_TOLERANCE_LIST: tuple[RiskTolerance, ...] = (
    RiskTolerance.FEAR,
    RiskTolerance.NEUTRAL,
    RiskTolerance.GREED,
    RiskTolerance.EXTREME_GREED,
)

DAY_TRADE_RISK_TOLERANCE_LIST: tuple[RiskTolerance, ...] = (
    RiskTolerance.LOW,
    RiskTolerance.EXTREME_FEAR,
    RiskTolerance.FEAR,
    RiskTolerance.NEUTRAL,
    RiskTolerance.EXTREME_GREED,
)


class Recommendation(str, Enum):
    NONE = "None"
    BULLISH = "Bullish"
    BEARISH = "Bearish"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Recommendation":
        """Map backend wording (buy/bullish, sell/bearish) onto the enum."""
        text = (value or "").strip().lower()
        if text in ("buy", "bullish"):
            return cls.BULLISH
        if text in ("sell", "bearish"):
            return cls.BEARISH
        return cls.NONE


@dataclass
class Holding:
    """A position (or candidate) under review for one day.

    Rebuilt from scratch every review cycle.
    """

    symbol: str
    profit_and_loss: float = 0.0
    net_liquidation: float = 0.0
    shares: float = 0.0
    allocation: float = 0.0
    recommendation: Recommendation = Recommendation.NONE
    buy_reasons: list[str] = field(default_factory=list)
    sell_reasons: list[str] = field(default_factory=list)
    buy_confidence: float = 0.0
    sell_confidence: float = 0.0
    prediction: Optional[float] = None


@dataclass(frozen=True)
class ProfitLossRecord:
    """Latest ledger snapshot: yesterday's outcome plus carried per-symbol profit."""

    date: str
    profit: float
    last_strategy: str
    last_risk_tolerance: int
    profit_record: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "profit": self.profit,
            "lastStrategy": self.last_strategy,
            "lastRiskTolerance": self.last_risk_tolerance,
            "profitRecord": dict(self.profit_record),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProfitLossRecord":
        """Build a record from its persisted JSON form.

        Missing fields fall back to neutral values; ``lastStrategy``
        defaults to the first strategy in rotation.
        """
        profit_record = data.get("profitRecord") or {}
        return cls(
            date=str(data.get("date", "")),
            profit=float(data.get("profit") or 0.0),
            last_strategy=data.get("lastStrategy") or STRATEGY_LIST[0].value,
            last_risk_tolerance=int(data.get("lastRiskTolerance") or 0),
            profit_record={k: float(v) for k, v in profit_record.items()},
        )
