"""Shared fakes for autopilot tests: config factory, manual scheduler, fake backend."""

import inspect
import itertools
from typing import Any, Callable, Optional

from autopilot.broker.models import (
    Balance,
    BacktestEvaluation,
    PortfolioPosition,
    PredictionBatch,
    PredictionPoint,
    SignalScore,
    TrainingResult,
)
from autopilot.config import Config


def make_config(**overrides) -> Config:
    """Build a Config with sensible test defaults."""
    defaults = dict(
        backend_base_url="https://backend.test",
        backend_api_token="test-token",
        account_id="ACC-001",
        db_path=":memory:",
        log_level="WARNING",
    )
    defaults.update(overrides)
    return Config(**defaults)


def make_batch(symbol: str, values: list[float]) -> PredictionBatch:
    return PredictionBatch(
        label=symbol, values=[PredictionPoint(prediction=v) for v in values],
    )


def make_evaluation(low: float = 100.0, high: float = 104.0, recommendation=None) -> BacktestEvaluation:
    """A one-bar indicator evaluation."""
    return BacktestEvaluation(signals=[{
        "low": low,
        "high": high,
        "recommendation": recommendation or {"recommendation": "None"},
    }])


def make_position(symbol: str, market_value: float, average_price: float,
                  quantity: float, asset_type: str = "EQUITY") -> PortfolioPosition:
    return PortfolioPosition(
        symbol=symbol,
        asset_type=asset_type,
        market_value=market_value,
        average_price=average_price,
        long_quantity=quantity,
    )


# ── Manual scheduler ─────────────────────────────────────────────────────


class ManualScheduler:
    """Duck-typed ``Scheduler`` that only runs jobs when told to.

    Keyed jobs follow the real scheduler's rules: a new ``schedule`` for a
    pending key replaces it, unless ``coalesce=True``.
    """

    def __init__(self) -> None:
        self.keyed: dict[str, tuple[Callable[[], Any], float]] = {}
        self.anonymous: dict[int, tuple[Callable[[], Any], float]] = {}
        self.history: list[tuple[Optional[str], float]] = []
        self._ids = itertools.count()

    def schedule(self, key, job, delay, coalesce=False) -> bool:
        if key in self.keyed and coalesce:
            return False
        self.keyed[key] = (job, delay)
        self.history.append((key, delay))
        return True

    def call_later(self, delay, job) -> int:
        job_id = next(self._ids)
        self.anonymous[job_id] = (job, delay)
        self.history.append((None, delay))
        return job_id

    def is_pending(self, key) -> bool:
        return key in self.keyed

    def delay_of(self, key) -> float:
        return self.keyed[key][1]

    @property
    def pending_count(self) -> int:
        return len(self.keyed) + len(self.anonymous)

    def cancel(self, key) -> bool:
        return self.keyed.pop(key, None) is not None

    def cancel_all(self) -> None:
        self.keyed.clear()
        self.anonymous.clear()

    async def run_key(self, key):
        job, _ = self.keyed.pop(key)
        result = job()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def run_anonymous(self) -> int:
        """Run every pending anonymous job in delay order; returns the count."""
        jobs = sorted(self.anonymous.items(), key=lambda kv: (kv[1][1], kv[0]))
        self.anonymous.clear()
        for _, (job, _) in jobs:
            result = job()
            if inspect.isawaitable(result):
                await result
        return len(jobs)


# ── Fake backend ─────────────────────────────────────────────────────────


class FakeBackend:
    """Duck-typed ``BackendClient`` with canned responses.

    Any mapping value that is an ``Exception`` instance is raised instead
    of returned.
    """

    def __init__(
        self,
        cash: float = 10_000.0,
        prices: Optional[dict] = None,
        positions: Optional[list] = None,
        evaluations: Optional[dict] = None,
        scores: Optional[dict] = None,
        training: Optional[dict] = None,
        predictions: Optional[dict] = None,
    ) -> None:
        self.cash = cash
        self.prices = prices or {}
        self.positions = positions or []
        self.evaluations = evaluations or {}
        self.scores = scores or {}
        self.training = training or {}
        self.predictions = predictions or {}
        self.calls: list[tuple] = []
        self.sent: list = []

    @staticmethod
    def _unwrap(value):
        if isinstance(value, Exception):
            raise value
        return value

    async def get_price(self, symbol: str) -> float:
        self.calls.append(("get_price", symbol))
        return self._unwrap(self.prices.get(symbol, 100.0))

    async def get_balance(self) -> Balance:
        self.calls.append(("get_balance",))
        return Balance(cash_balance=self._unwrap(self.cash))

    async def get_portfolio(self) -> list[PortfolioPosition]:
        self.calls.append(("get_portfolio",))
        return list(self.positions)

    async def get_backtest_evaluation(self, symbol, start_date, end_date, window_kind="daily-indicators"):
        self.calls.append(("get_backtest_evaluation", symbol, start_date, end_date, window_kind))
        return self._unwrap(self.evaluations.get(symbol, make_evaluation()))

    async def get_signal_scores(self, signals) -> dict[str, SignalScore]:
        self.calls.append(("get_signal_scores",))
        return self._unwrap(self.scores)

    async def train_stock(self, symbol, start_date, end_date) -> list[TrainingResult]:
        self.calls.append(("train_stock", symbol, start_date, end_date))
        return self._unwrap(self.training.get(symbol, []))

    async def get_neutral_prediction(self, symbol) -> PredictionBatch:
        self.calls.append(("get_neutral_prediction", symbol))
        return self._unwrap(self.predictions.get(symbol, make_batch(symbol, [0.5])))

    async def send_algo_queue_item(self, item) -> None:
        self.sent.append(item)

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]
