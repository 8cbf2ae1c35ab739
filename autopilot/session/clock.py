"""Session clock — pure functions over the current instant and the exchange timezone.

Computes the trading-session window the autopilot is working towards and
the last completed trading date used to bound training windows.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

import pytz

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_SESSION_START = time(9, 50)
DEFAULT_SESSION_END = time(16, 0)

# weekday() → days to subtract to reach the previous trading day
_LAST_TRADE_OFFSETS: dict[int, int] = {
    0: 3,  # Monday → Friday
    1: 1,
    2: 1,
    3: 1,
    4: 1,
    5: 1,  # Saturday → Friday
    6: 2,  # Sunday → Friday
}


@dataclass(frozen=True)
class SessionWindow:
    """Start and end of one trading session (tz-aware)."""

    start: datetime
    end: datetime

    def contains(self, now: datetime) -> bool:
        """True when *now* falls strictly inside the session."""
        return self.start < now < self.end

    def in_closing_window(self, now: datetime, minutes: int = 5) -> bool:
        """True during the last *minutes* before the session end."""
        return self.end - timedelta(minutes=minutes) < now < self.end

    @property
    def trade_date(self) -> date:
        return self.start.date()


def _localize(now: datetime, tz) -> datetime:
    if now.tzinfo is None:
        now = pytz.utc.localize(now)
    return now.astimezone(tz)


def _at(tz, day: date, clock: time) -> datetime:
    return tz.localize(datetime.combine(day, clock))


def session_bounds(
    now: datetime,
    tz_name: str = DEFAULT_TIMEZONE,
    start: time = DEFAULT_SESSION_START,
    end: time = DEFAULT_SESSION_END,
) -> SessionWindow:
    """Return the current or next session window.

    Rules (exchange-local):
      - Saturday → Monday's window (+2 days).
      - Sunday → Monday's window (+1 day).
      - Inside today's start/end → today's window.
      - Otherwise → the next calendar day's window.

    Args:
        now: Current instant. Naive datetimes are treated as UTC.
        tz_name: Exchange timezone name.
        start: Session open (local wall clock).
        end: Session close (local wall clock).
    """
    tz = pytz.timezone(tz_name)
    local_now = _localize(now, tz)
    today = local_now.date()
    weekday = today.weekday()

    if weekday == 5:
        day = today + timedelta(days=2)
    elif weekday == 6:
        day = today + timedelta(days=1)
    elif _at(tz, today, start) < local_now < _at(tz, today, end):
        day = today
    else:
        day = today + timedelta(days=1)

    return SessionWindow(start=_at(tz, day, start), end=_at(tz, day, end))


def last_trade_date(
    now: datetime,
    tz_name: str = DEFAULT_TIMEZONE,
    start: time = DEFAULT_SESSION_START,
) -> datetime:
    """Return the session open of the most recent prior trading day.

    Uses a fixed per-weekday offset: Monday −3, Sunday −2, every other
    day −1.
    """
    tz = pytz.timezone(tz_name)
    local_now = _localize(now, tz)
    today = local_now.date()
    offset = _LAST_TRADE_OFFSETS[today.weekday()]
    return _at(tz, today - timedelta(days=offset), start)


def next_session_open(
    now: datetime,
    tz_name: str = DEFAULT_TIMEZONE,
    start: time = DEFAULT_SESSION_START,
) -> datetime:
    """Return the next weekday session open strictly after *now*.

    Today's open is used while it is still ahead; otherwise the next day,
    pushed past the weekend (Saturday +2, Sunday +1).
    """
    tz = pytz.timezone(tz_name)
    local_now = _localize(now, tz)
    today = local_now.date()

    if today.weekday() < 5 and local_now < _at(tz, today, start):
        day = today
    else:
        day = today + timedelta(days=1)

    if day.weekday() == 5:
        day += timedelta(days=2)
    elif day.weekday() == 6:
        day += timedelta(days=1)
    return _at(tz, day, start)


def seconds_until_start(
    now: datetime,
    tz_name: str = DEFAULT_TIMEZONE,
    start: time = DEFAULT_SESSION_START,
) -> float:
    """Seconds from *now* until :func:`next_session_open`."""
    tz = pytz.timezone(tz_name)
    opens_at = next_session_open(now, tz_name, start)
    return max(0.0, (opens_at - _localize(now, tz)).total_seconds())
