"""Internal API routers — /status, /notifications, /orders, /ledger, /audit, /control.

No business logic, no DB access. Delegates to the engine, repos, and shared state.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Query

logger = logging.getLogger("autopilot")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_DEFAULT_STATUS: dict = {
    "running": False,
    "phase": None,
    "strategy": None,
    "risk_index": None,
    "day_trade_risk_index": None,
    "is_backtested": False,
    "is_trading_started": False,
    "orders": {"sell": 0, "buy": 0, "other": 0},
    "loading": False,
    "sink_depth": 0,
    "tick_count": 0,
    "last_tick_at": None,
    "profit_today": 0.0,
}

_status: dict = {**_DEFAULT_STATUS}
_notifications: list = []  # Ring buffer of user-facing events (max 50)
_engine = None       # Set via configure_routers()
_audit_repo = None   # Set via configure_routers()

_MAX_NOTIFICATIONS = 50


def configure_routers(engine=None, audit_repo=None) -> None:
    """Inject dependencies from the application startup.

    Args:
        engine: An ``AutopilotEngine`` for order, ledger and control endpoints.
        audit_repo: An ``AuditRepo`` (or duck-type for tests).
    """
    global _engine, _audit_repo  # noqa: PLW0603
    _engine = engine
    _audit_repo = audit_repo


def update_autopilot_status(**fields) -> None:
    """Update individual fields of the status dict."""
    _status.update(fields)


def push_notification(key: str, severity: str, summary: str) -> None:
    """Append a user-facing event to the ring buffer (max 50)."""
    _notifications.append({
        "key": key,
        "severity": severity,
        "summary": summary,
        "created_at": datetime.now(timezone.utc).isoformat(),
    })
    if len(_notifications) > _MAX_NOTIFICATIONS:
        del _notifications[0]
    logger.info("[%s] %s", severity, summary)


def reset_state() -> None:
    """Restore the module state to its startup defaults."""
    global _engine, _audit_repo  # noqa: PLW0603
    _status.clear()
    _status.update(_DEFAULT_STATUS)
    _notifications.clear()
    _engine = None
    _audit_repo = None


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    return _status


@router.get("/notifications")
async def get_notifications(limit: int = Query(default=20, ge=1, le=50)):
    """Return recent notifications, newest first."""
    return {"notifications": list(reversed(_notifications))[:limit]}


@router.get("/orders")
async def get_orders():
    """Return the three cart queues."""
    if _engine is None:
        return {"sell": [], "buy": [], "other": []}
    return _engine.cart.to_dict()


@router.get("/ledger")
async def get_ledger():
    """Return the persisted profit/loss record, if any."""
    if _engine is None:
        return {"record": None}
    record = _engine.ledger.previous()
    return {"record": record.to_dict() if record else None}


@router.get("/audit")
async def get_audit(limit: int = Query(default=50, ge=1, le=500)):
    """Return exported audit entries, newest first."""
    if _audit_repo is None:
        return {"entries": [], "total": 0}
    return _audit_repo.get_entries(limit=limit)


@router.post("/control/start")
async def control_start():
    """Start the autopilot loop."""
    if _engine:
        if _engine.running:
            return {"status": "already_running"}
        _engine.launch()
        logger.info("Autopilot started via API.")
        return {"status": "started"}
    return {"error": "No engine"}


@router.post("/control/stop")
async def control_stop():
    """Stop the autopilot and cancel all pending work."""
    if _engine:
        _engine.stop()
        logger.info("Autopilot stopped via API.")
        return {"status": "stopped"}
    return {"error": "No engine"}


@router.post("/control/strategy/next")
async def control_next_strategy():
    """Rotate to the next strategy."""
    if _engine:
        strategy = _engine.next_strategy()
        update_autopilot_status(strategy=strategy)
        return {"strategy": strategy}
    return {"error": "No engine"}


@router.post("/profit")
async def report_profit(body: dict):
    """Credit realised profit/loss reported by the execution service."""
    if not _engine:
        return {"error": "No engine"}
    errors = []
    symbol = body.get("symbol")
    if not symbol or not isinstance(symbol, str):
        errors.append("symbol is required")
    try:
        amount = float(body.get("amount"))
    except (TypeError, ValueError):
        errors.append("amount must be a number")
    if errors:
        return {"status": "error", "errors": errors}

    total = _engine.record_profit(symbol, amount)
    update_autopilot_status(profit_today=total)
    return {"status": "ok", "symbol": symbol, "total": total}
