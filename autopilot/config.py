"""Autopilot — application configuration.

Loads .env variables into a typed config object.
Validates required variables on startup.
"""

import os
from dataclasses import dataclass
from datetime import time

from dotenv import load_dotenv


_REQUIRED_VARS = [
    "BACKEND_BASE_URL",
    "BACKEND_API_TOKEN",
    "ACCOUNT_ID",
]


def parse_clock_time(value: str) -> time:
    """Parse an ``HH:MM`` string into a ``datetime.time``.

    Raises ``ValueError`` when the string is not a valid wall-clock time.
    """
    try:
        hour_str, minute_str = value.strip().split(":")
        return time(int(hour_str), int(minute_str))
    except (AttributeError, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid HH:MM time: {value!r}") from exc


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    backend_base_url: str
    backend_api_token: str
    account_id: str
    market_timezone: str = "America/New_York"
    session_start: str = "09:50"
    session_end: str = "16:00"
    closing_window_minutes: int = 5
    tick_interval_seconds: int = 90
    warmup_seconds: int = 90
    backtest_cooldown_seconds: int = 18_000
    discovery_retry_seconds: float = 60.0
    dispatch_stagger_seconds: float = 0.5
    simultaneous_order_limit: int = 3
    max_trade_count: int = 5
    stop_loss_pct: float = -0.05
    db_path: str = "data/autopilot.db"
    log_level: str = "INFO"
    health_port: int = 8080

    @property
    def session_start_time(self) -> time:
        """Exchange-local session open."""
        return parse_clock_time(self.session_start)

    @property
    def session_end_time(self) -> time:
        """Exchange-local session close."""
        return parse_clock_time(self.session_end)


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing variable when a
    required variable is absent, or when a session time is malformed.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    config = Config(
        backend_base_url=os.environ["BACKEND_BASE_URL"].rstrip("/"),
        backend_api_token=os.environ["BACKEND_API_TOKEN"],
        account_id=os.environ["ACCOUNT_ID"],
        market_timezone=os.environ.get("MARKET_TIMEZONE", "America/New_York"),
        session_start=os.environ.get("SESSION_START", "09:50"),
        session_end=os.environ.get("SESSION_END", "16:00"),
        closing_window_minutes=int(os.environ.get("CLOSING_WINDOW_MINUTES", "5")),
        tick_interval_seconds=int(os.environ.get("TICK_INTERVAL_SECONDS", "90")),
        warmup_seconds=int(os.environ.get("WARMUP_SECONDS", "90")),
        backtest_cooldown_seconds=int(
            os.environ.get("BACKTEST_COOLDOWN_SECONDS", "18000")
        ),
        discovery_retry_seconds=float(
            os.environ.get("DISCOVERY_RETRY_SECONDS", "60")
        ),
        dispatch_stagger_seconds=float(
            os.environ.get("DISPATCH_STAGGER_SECONDS", "0.5")
        ),
        simultaneous_order_limit=int(
            os.environ.get("SIMULTANEOUS_ORDER_LIMIT", "3")
        ),
        max_trade_count=int(os.environ.get("MAX_TRADE_COUNT", "5")),
        stop_loss_pct=float(os.environ.get("STOP_LOSS_PCT", "-0.05")),
        db_path=os.environ.get("DB_PATH", "data/autopilot.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=int(os.environ.get("HEALTH_PORT", "8080")),
    )
    # Fail fast on malformed session times.
    config.session_start_time
    config.session_end_time
    return config
