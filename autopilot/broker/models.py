"""Backend data models — typed representations of market-data, indicator,
training and prediction payloads."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Balance:
    """Account balance snapshot."""

    cash_balance: float


@dataclass(frozen=True)
class PortfolioPosition:
    """A position as reported by the broker backend."""

    symbol: str
    asset_type: str  # "EQUITY", "OPTION", ...
    market_value: float
    average_price: float
    long_quantity: float

    @property
    def is_option(self) -> bool:
        return self.asset_type.lower() == "option"

    @property
    def is_equity(self) -> bool:
        return self.asset_type.lower() == "equity"


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Last bar of an indicator backtest.

    ``recommendation`` maps indicator name → ``"Bullish"`` / ``"Bearish"`` /
    ``"Neutral"``, plus the overall verdict under the ``"recommendation"`` key.
    """

    low: float
    high: float
    recommendation: dict = field(default_factory=dict)

    @property
    def overall(self) -> Optional[str]:
        return self.recommendation.get("recommendation")


@dataclass(frozen=True)
class BacktestEvaluation:
    """Ordered daily signal snapshots for one symbol."""

    signals: list

    @property
    def last(self) -> IndicatorSnapshot:
        """The most recent bar. Raises ``ValueError`` if there are none."""
        if not self.signals:
            raise ValueError("Backtest evaluation returned no signals")
        bar = self.signals[-1]
        return IndicatorSnapshot(
            low=float(bar["low"]),
            high=float(bar["high"]),
            recommendation=dict(bar.get("recommendation") or {}),
        )


@dataclass(frozen=True)
class SignalScore:
    """Historical mid-term profit/loss of trading one indicator's signal."""

    bullish_mid_term_profit_loss: float
    bearish_mid_term_profit_loss: float


@dataclass(frozen=True)
class TrainingResult:
    """Day-trade model training outcome."""

    correct: int
    guesses: int

    @property
    def accuracy(self) -> float:
        if self.guesses <= 0:
            return 0.0
        return self.correct / self.guesses


@dataclass(frozen=True)
class PredictionPoint:
    prediction: float


@dataclass(frozen=True)
class PredictionBatch:
    """Per-symbol batch of model scores (one stream item)."""

    label: str
    values: list[PredictionPoint]

    @classmethod
    def from_json(cls, data: dict) -> "PredictionBatch":
        return cls(
            label=data["label"],
            values=[
                PredictionPoint(prediction=float(v["prediction"]))
                for v in data.get("value", [])
            ],
        )

    def to_json(self) -> dict:
        return {
            "label": self.label,
            "value": [{"prediction": p.prediction} for p in self.values],
        }
