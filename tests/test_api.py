"""Tests for the internal API — status, notifications, orders, ledger, audit, control."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from autopilot.api import routers
from autopilot.api.routers import configure_routers, push_notification, update_autopilot_status
from autopilot.engine import AutopilotEngine
from autopilot.ledger.ledger import PROFIT_LOSS_KEY
from autopilot.main import app
from autopilot.orders.models import OrderSide, build_order
from autopilot.repos.snapshot_repo import MemorySnapshotStore
from tests.helpers import FakeBackend, ManualScheduler, make_config

client = TestClient(app)


@pytest.fixture(autouse=True)
def _reset_router_state():
    routers.reset_state()
    yield
    routers.reset_state()


def _make_engine(store=None) -> AutopilotEngine:
    return AutopilotEngine(
        make_config(),
        FakeBackend(),
        scheduler=ManualScheduler(),
        snapshot_store=store or MemorySnapshotStore(),
        notify=push_notification,
    )


def _mock_engine(running: bool = False) -> MagicMock:
    engine = MagicMock()
    engine.running = running
    engine.next_strategy.return_value = "Daytrade"
    return engine


class TestHealthAndStatus:
    def test_health(self):
        assert client.get("/health").json() == {"status": "ok"}

    def test_status_defaults(self):
        data = client.get("/status").json()
        assert data["running"] is False
        assert data["phase"] is None
        assert data["orders"] == {"sell": 0, "buy": 0, "other": 0}
        assert data["sink_depth"] == 0

    def test_status_reflects_updates(self):
        update_autopilot_status(phase="active", strategy="Short", tick_count=4)
        data = client.get("/status").json()
        assert (data["phase"], data["strategy"], data["tick_count"]) == ("active", "Short", 4)


class TestNotifications:
    def test_newest_first(self):
        push_notification("autopilot_start", "success", "Autopilot started")
        push_notification("strategy_change", "info", "Strategy changed to Daytrade")
        data = client.get("/notifications").json()["notifications"]
        assert [n["key"] for n in data] == ["strategy_change", "autopilot_start"]
        assert data[0]["severity"] == "info"
        assert "created_at" in data[0]

    def test_ring_buffer_and_limit(self):
        for i in range(60):
            push_notification("strategy_change", "info", f"event {i}")
        assert len(routers._notifications) == 50
        data = client.get("/notifications", params={"limit": 5}).json()["notifications"]
        assert [n["summary"] for n in data] == [f"event {i}" for i in range(59, 54, -1)]

    def test_limit_validated(self):
        assert client.get("/notifications", params={"limit": 0}).status_code == 422


class TestOrdersLedgerAudit:
    def test_orders_without_engine(self):
        assert client.get("/orders").json() == {"sell": [], "buy": [], "other": []}

    def test_orders_from_cart(self):
        engine = _make_engine()
        engine.cart.add_to_cart(build_order("AAPL", 10, 189.0, OrderSide.BUY))
        engine.cart.add_to_cart(build_order("SQQQ", 5, 12.0, OrderSide.DAYTRADE))
        configure_routers(engine=engine)

        data = client.get("/orders").json()
        assert [o["symbol"] for o in data["buy"]] == ["AAPL"]
        assert [o["symbol"] for o in data["other"]] == ["SQQQ"]
        assert data["other"][0]["side"] == "DayTrade"

    def test_ledger(self):
        store = MemorySnapshotStore()
        store.set(PROFIT_LOSS_KEY, {
            "date": "2026-10-16T16:00:00-04:00",
            "profit": 3.5,
            "lastStrategy": "Daytrade",
            "lastRiskTolerance": 1,
            "profitRecord": {"TSLA": 3.5},
        })
        configure_routers(engine=_make_engine(store))
        record = client.get("/ledger").json()["record"]
        assert record["lastStrategy"] == "Daytrade"
        assert record["profitRecord"] == {"TSLA": 3.5}

    def test_ledger_empty(self):
        configure_routers(engine=_make_engine())
        assert client.get("/ledger").json() == {"record": None}

    def test_audit_without_repo(self):
        assert client.get("/audit").json() == {"entries": [], "total": 0}

    def test_audit_delegates_to_repo(self):
        repo = MagicMock()
        repo.get_entries.return_value = {"entries": [{"message": "Profit 1.0"}], "total": 1}
        configure_routers(audit_repo=repo)
        assert client.get("/audit", params={"limit": 10}).json()["total"] == 1
        repo.get_entries.assert_called_once_with(limit=10)


class TestControl:
    def test_start_without_engine(self):
        assert client.post("/control/start").json() == {"error": "No engine"}

    def test_start(self):
        engine = _mock_engine()
        configure_routers(engine=engine)
        assert client.post("/control/start").json() == {"status": "started"}
        engine.launch.assert_called_once_with()

    def test_start_when_running(self):
        engine = _mock_engine(running=True)
        configure_routers(engine=engine)
        assert client.post("/control/start").json() == {"status": "already_running"}
        engine.launch.assert_not_called()

    def test_stop(self):
        engine = _mock_engine(running=True)
        configure_routers(engine=engine)
        assert client.post("/control/stop").json() == {"status": "stopped"}
        engine.stop.assert_called_once()

    def test_next_strategy(self):
        configure_routers(engine=_make_engine())
        assert client.post("/control/strategy/next").json() == {"strategy": "Daytrade"}
        assert client.get("/status").json()["strategy"] == "Daytrade"
        notes = client.get("/notifications").json()["notifications"]
        assert notes[0]["summary"] == "Strategy changed to Daytrade"


class TestProfit:
    def test_records_profit(self):
        engine = _make_engine()
        configure_routers(engine=engine)
        client.post("/profit", json={"symbol": "AAPL", "amount": 10.0})
        resp = client.post("/profit", json={"symbol": "AAPL", "amount": "-2.5"}).json()
        assert resp == {"status": "ok", "symbol": "AAPL", "total": 7.5}
        assert engine.score_keeper.profit_loss_hash == {"AAPL": 7.5}
        assert client.get("/status").json()["profit_today"] == 7.5

    def test_validation_errors(self):
        configure_routers(engine=_make_engine())
        resp = client.post("/profit", json={"amount": "lots"}).json()
        assert resp == {
            "status": "error",
            "errors": ["symbol is required", "amount must be a number"],
        }

    def test_without_engine(self):
        assert client.post("/profit", json={"symbol": "AAPL", "amount": 1}).json() == {"error": "No engine"}
