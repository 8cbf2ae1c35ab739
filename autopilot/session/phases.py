"""Session phases — one enumerated state per tick.

``select_phase`` is the whole transition table of the autopilot loop. It is
pure so the priority order can be tested without timers.
"""

from datetime import datetime
from enum import Enum

from autopilot.session.clock import SessionWindow


class SessionPhase(str, Enum):
    """Mutually exclusive work item for a single tick."""

    CLOSING = "closing"
    BACKTEST = "backtest"
    ACTIVE = "active"
    IDLE = "idle"


def select_phase(
    now: datetime,
    window: SessionWindow,
    is_backtested: bool,
    closing_minutes: int = 5,
) -> SessionPhase:
    """Pick the phase for this tick.

    Priority: closing window, then pending backtest, then the active
    session, otherwise idle.
    """
    if window.in_closing_window(now, closing_minutes):
        return SessionPhase.CLOSING
    if not is_backtested:
        return SessionPhase.BACKTEST
    if window.contains(now):
        return SessionPhase.ACTIVE
    return SessionPhase.IDLE
