"""Audit trail — the day's human-readable decision log."""

import logging
from datetime import datetime, timezone
from typing import Optional

from autopilot.repos.audit_repo import AuditRepo

logger = logging.getLogger("autopilot.audit")


class AuditTrail:
    """Collects entries during the day and exports them at session close.

    Args:
        repo: Destination for exported entries. ``None`` keeps entries
              in memory only.
    """

    def __init__(self, repo: Optional[AuditRepo] = None) -> None:
        self._repo = repo
        self.entries: list[dict] = []

    def add(self, symbol: Optional[str], message: str) -> None:
        self.entries.append({
            "symbol": symbol,
            "message": message,
            "created_at": datetime.now(timezone.utc).isoformat(),
        })
        logger.info("%s%s", f"[{symbol}] " if symbol else "", message)

    def has_entries(self) -> bool:
        return bool(self.entries)

    def export(self) -> int:
        """Persist and clear the collected entries. Returns how many were exported."""
        count = len(self.entries)
        if self._repo is not None and count:
            self._repo.insert_entries(self.entries)
        self.entries = []
        return count
