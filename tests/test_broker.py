"""Tests for autopilot.broker — backend client with mocked HTTP responses."""

import pytest
import httpx

from autopilot.broker import client as client_module
from autopilot.broker.client import BackendClient
from autopilot.broker.models import Balance, PortfolioPosition, PredictionBatch, TrainingResult
from autopilot.orders.models import QueueItem
from tests.helpers import make_config


# ── Mock backend responses ───────────────────────────────────────────────

MOCK_POSITIONS_RESPONSE = {
    "positions": [
        {
            "instrument": {"symbol": "AAPL", "assetType": "EQUITY"},
            "marketValue": "1890.50",
            "averagePrice": "180.00",
            "longQuantity": "10",
        },
        {
            "instrument": {"symbol": "AAPL261218C00200000", "assetType": "OPTION"},
            "marketValue": 420.0,
            "averagePrice": 3.5,
            "longQuantity": 1,
        },
    ]
}

MOCK_EVALUATION_RESPONSE = {
    "signals": [
        {"date": "2026-10-15", "low": 176.2, "high": 181.0, "recommendation": {}},
        {
            "date": "2026-10-16",
            "low": 178.0,
            "high": 183.5,
            "recommendation": {"recommendation": "Buy", "RSI": "Bullish"},
        },
    ]
}

MOCK_PREDICTION_RESPONSE = {
    "label": "MSFT",
    "value": [{"prediction": 0.71}, {"prediction": "0.64"}],
}


def _patch(monkeypatch, method: str, handler):
    """Route ``httpx.AsyncClient.<method>`` to *handler* and record calls."""
    calls = []

    async def _mock(self, url, *, headers=None, params=None, json=None, timeout=None):
        calls.append({"url": url, "headers": headers, "params": params, "json": json})
        return handler(url, len(calls))

    monkeypatch.setattr(httpx.AsyncClient, method, _mock)
    return calls


def _ok(payload, method="GET"):
    def handler(url, _):
        return httpx.Response(200, json=payload, request=httpx.Request(method, url))
    return handler


# ── Tests ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_price(monkeypatch):
    calls = _patch(monkeypatch, "get", _ok({"symbol": "AAPL", "price": "189.05"}))
    price = await BackendClient(make_config()).get_price("AAPL")
    assert price == pytest.approx(189.05)
    assert calls[0]["url"] == "https://backend.test/api/portfolio/quote"
    assert calls[0]["params"] == {"symbol": "AAPL"}
    assert calls[0]["headers"]["Authorization"] == "Bearer test-token"


@pytest.mark.asyncio
async def test_get_balance_uses_account(monkeypatch):
    calls = _patch(monkeypatch, "get", _ok({"cashBalance": 25000.75}))
    balance = await BackendClient(make_config()).get_balance()
    assert balance == Balance(cash_balance=25000.75)
    assert calls[0]["params"] == {"accountId": "ACC-001"}


@pytest.mark.asyncio
async def test_get_portfolio(monkeypatch):
    _patch(monkeypatch, "get", _ok(MOCK_POSITIONS_RESPONSE))
    positions = await BackendClient(make_config()).get_portfolio()
    assert len(positions) == 2
    equity, option = positions
    assert isinstance(equity, PortfolioPosition)
    assert equity.symbol == "AAPL"
    assert equity.market_value == pytest.approx(1890.5)
    assert equity.is_equity and not equity.is_option
    assert option.is_option
    assert option.long_quantity == 1.0


@pytest.mark.asyncio
async def test_backtest_evaluation(monkeypatch):
    calls = _patch(monkeypatch, "get", _ok(MOCK_EVALUATION_RESPONSE))
    evaluation = await BackendClient(make_config()).get_backtest_evaluation(
        "AAPL", "2026-07-11", "2026-10-19",
    )
    assert calls[0]["params"] == {
        "ticker": "AAPL",
        "start": "2026-07-11",
        "end": "2026-10-19",
        "algo": "daily-indicators",
    }
    last = evaluation.last
    assert (last.low, last.high) == (178.0, 183.5)
    assert last.overall == "Buy"


@pytest.mark.asyncio
async def test_signal_scores_posts_signals(monkeypatch):
    payload = {"scores": {
        "RSI": {"bullishMidTermProfitLoss": 1.25, "bearishMidTermProfitLoss": -0.5},
        "MACD": {},
    }}
    calls = _patch(monkeypatch, "post", _ok(payload, "POST"))
    scores = await BackendClient(make_config()).get_signal_scores(MOCK_EVALUATION_RESPONSE["signals"])
    assert calls[0]["json"] == {"signals": MOCK_EVALUATION_RESPONSE["signals"]}
    assert scores["RSI"].bullish_mid_term_profit_loss == 1.25
    assert scores["RSI"].bearish_mid_term_profit_loss == -0.5
    assert scores["MACD"].bullish_mid_term_profit_loss == 0.0


@pytest.mark.asyncio
async def test_train_stock(monkeypatch):
    calls = _patch(monkeypatch, "get", _ok([{"correct": 33, "guesses": 48}]))
    results = await BackendClient(make_config()).train_stock("TSLA", "2026-10-18", "2026-10-21")
    assert results == [TrainingResult(correct=33, guesses=48)]
    assert results[0].accuracy == pytest.approx(0.6875)
    assert calls[0]["params"] == {"symbol": "TSLA", "startDate": "2026-10-18", "endDate": "2026-10-21"}


@pytest.mark.asyncio
async def test_neutral_prediction(monkeypatch):
    _patch(monkeypatch, "get", _ok(MOCK_PREDICTION_RESPONSE))
    batch = await BackendClient(make_config()).get_neutral_prediction("MSFT")
    assert isinstance(batch, PredictionBatch)
    assert batch.label == "MSFT"
    assert [p.prediction for p in batch.values] == [0.71, 0.64]
    assert batch.to_json() == {"label": "MSFT", "value": [{"prediction": 0.71}, {"prediction": 0.64}]}


@pytest.mark.asyncio
async def test_send_algo_queue_item(monkeypatch):
    calls = _patch(monkeypatch, "post", _ok({}, "POST"))
    await BackendClient(make_config()).send_algo_queue_item(QueueItem("AAPL", reset=True))
    assert calls[0]["url"] == "https://backend.test/api/trade/algo-queue"
    assert calls[0]["json"] == {"symbol": "AAPL", "reset": True}


# ── Retry behaviour ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_retries_transient_status(monkeypatch):
    monkeypatch.setattr(client_module, "_RETRY_BASE_DELAY", 0.0)

    def handler(url, attempt):
        status = 503 if attempt == 1 else 200
        return httpx.Response(status, json={"price": 10}, request=httpx.Request("GET", url))

    calls = _patch(monkeypatch, "get", handler)
    assert await BackendClient(make_config()).get_price("AAPL") == 10.0
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_gives_up_after_max_retries(monkeypatch):
    monkeypatch.setattr(client_module, "_RETRY_BASE_DELAY", 0.0)

    def handler(url, _):
        return httpx.Response(429, json={}, request=httpx.Request("GET", url))

    calls = _patch(monkeypatch, "get", handler)
    with pytest.raises(httpx.HTTPStatusError):
        await BackendClient(make_config()).get_price("AAPL")
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_client_error_not_retried(monkeypatch):
    def handler(url, _):
        return httpx.Response(404, json={"error": "unknown symbol"}, request=httpx.Request("GET", url))

    calls = _patch(monkeypatch, "get", handler)
    with pytest.raises(httpx.HTTPStatusError):
        await BackendClient(make_config()).get_price("ZZZZ")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_transport_error_retried(monkeypatch):
    monkeypatch.setattr(client_module, "_RETRY_BASE_DELAY", 0.0)

    def handler(url, attempt):
        if attempt < 3:
            raise httpx.ConnectError("connection refused")
        return httpx.Response(200, json={"cashBalance": 1}, request=httpx.Request("GET", url))

    calls = _patch(monkeypatch, "get", handler)
    assert (await BackendClient(make_config()).get_balance()).cash_balance == 1.0
    assert len(calls) == 3
