"""Trading backend REST async client.

Handles all communication with the backend: quotes, balance and positions,
indicator backtests, day-trade training, model predictions, and forwarding
order-sink items to the execution queue.
"""

import asyncio
import logging
from typing import Optional

import httpx

from autopilot.broker.models import (
    Balance,
    BacktestEvaluation,
    PortfolioPosition,
    PredictionBatch,
    SignalScore,
    TrainingResult,
)
from autopilot.config import Config
from autopilot.orders.models import QueueItem

logger = logging.getLogger("autopilot")

# Backoff policy
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds, first backoff
_TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})


class BackendClient:
    """Async client wrapping the trading backend's REST API."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._base_url = config.backend_base_url
        self._account_id = config.account_id
        self._headers = {
            "Authorization": f"Bearer {config.backend_api_token}",
            "Content-Type": "application/json",
        }

    # ── Transport ────────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """Send one backend call, backing off on transient failures.

        Gateway errors, rate limits and transport failures are retried up
        to ``_MAX_RETRIES`` times with a doubling delay. Any other HTTP
        error is raised straight away.
        """
        failure: Optional[Exception] = None

        for attempt in range(1, _MAX_RETRIES + 1):
            backoff = _RETRY_BASE_DELAY * 2 ** (attempt - 1)
            try:
                async with httpx.AsyncClient() as http:
                    resp = await getattr(http, method)(
                        url,
                        headers=self._headers,
                        timeout=30.0,
                        **kwargs,
                    )
            except httpx.TransportError as exc:
                logger.warning(
                    "%s %s failed (%s); attempt %d/%d, sleeping %.1fs",
                    method.upper(), url, exc, attempt, _MAX_RETRIES, backoff,
                )
                failure = exc
                await asyncio.sleep(backoff)
                continue

            if resp.status_code not in _TRANSIENT_STATUS_CODES:
                resp.raise_for_status()
                return resp

            logger.warning(
                "%s %s answered %d; attempt %d/%d, sleeping %.1fs",
                method.upper(), url, resp.status_code, attempt, _MAX_RETRIES, backoff,
            )
            failure = httpx.HTTPStatusError(
                f"Backend returned {resp.status_code}",
                request=resp.request,
                response=resp,
            )
            await asyncio.sleep(backoff)

        raise failure  # type: ignore[misc]

    # ── Market data ──────────────────────────────────────────────────────

    async def get_price(self, symbol: str) -> float:
        """Latest traded price for *symbol*."""
        url = f"{self._base_url}/api/portfolio/quote"
        resp = await self._request_with_retry("get", url, params={"symbol": symbol})
        return float(resp.json()["price"])

    async def get_balance(self) -> Balance:
        """Cash balance of the configured account."""
        url = f"{self._base_url}/api/portfolio/balance"
        resp = await self._request_with_retry(
            "get", url, params={"accountId": self._account_id},
        )
        return Balance(cash_balance=float(resp.json()["cashBalance"]))

    async def get_portfolio(self) -> list[PortfolioPosition]:
        """Current holdings of the configured account."""
        url = f"{self._base_url}/api/portfolio/positions"
        resp = await self._request_with_retry(
            "get", url, params={"accountId": self._account_id},
        )
        positions: list[PortfolioPosition] = []
        for p in resp.json().get("positions", []):
            instrument = p["instrument"]
            positions.append(
                PortfolioPosition(
                    symbol=instrument["symbol"],
                    asset_type=instrument.get("assetType", "EQUITY"),
                    market_value=float(p["marketValue"]),
                    average_price=float(p["averagePrice"]),
                    long_quantity=float(p["longQuantity"]),
                )
            )
        return positions

    # ── Indicators / training / predictions ──────────────────────────────

    async def get_backtest_evaluation(
        self,
        symbol: str,
        start_date: str,
        end_date: str,
        window_kind: str = "daily-indicators",
    ) -> BacktestEvaluation:
        """Daily indicator signals for *symbol* between two ``YYYY-MM-DD`` dates."""
        url = f"{self._base_url}/api/backtest/evaluate"
        params = {
            "ticker": symbol,
            "start": start_date,
            "end": end_date,
            "algo": window_kind,
        }
        resp = await self._request_with_retry("get", url, params=params)
        return BacktestEvaluation(signals=list(resp.json().get("signals", [])))

    async def get_signal_scores(self, signals: list) -> dict[str, SignalScore]:
        """Score each indicator by the historical profit of following it."""
        url = f"{self._base_url}/api/backtest/signal-scores"
        resp = await self._request_with_retry("post", url, json={"signals": signals})
        scores: dict[str, SignalScore] = {}
        for name, s in resp.json().get("scores", {}).items():
            scores[name] = SignalScore(
                bullish_mid_term_profit_loss=float(s.get("bullishMidTermProfitLoss", 0)),
                bearish_mid_term_profit_loss=float(s.get("bearishMidTermProfitLoss", 0)),
            )
        return scores

    async def train_stock(
        self,
        symbol: str,
        start_date: str,
        end_date: str,
    ) -> list[TrainingResult]:
        """Train the intraday model on *symbol* and return its hit rate."""
        url = f"{self._base_url}/api/machine-learning/train-daytrade"
        params = {"symbol": symbol, "startDate": start_date, "endDate": end_date}
        resp = await self._request_with_retry("get", url, params=params)
        return [
            TrainingResult(correct=int(r["correct"]), guesses=int(r["guesses"]))
            for r in resp.json()
        ]

    async def get_neutral_prediction(self, symbol: str) -> PredictionBatch:
        """Run the neutral-horizon model for *symbol*."""
        url = f"{self._base_url}/api/machine-learning/neutral-prediction"
        resp = await self._request_with_retry("get", url, params={"symbol": symbol})
        return PredictionBatch.from_json(resp.json())

    # ── Execution queue ──────────────────────────────────────────────────

    async def send_algo_queue_item(self, item: QueueItem) -> None:
        """Forward an order-sink item to the execution service."""
        url = f"{self._base_url}/api/trade/algo-queue"
        await self._request_with_retry(
            "post", url, json={"symbol": item.symbol, "reset": item.reset},
        )
