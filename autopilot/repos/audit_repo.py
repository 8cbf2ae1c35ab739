"""Audit repository — SQLite operations for the audit_log table."""

from autopilot.repos.db import get_connection


class AuditRepo:
    """Data access layer for exported audit-trail entries.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def insert_entries(self, entries: list[dict]) -> int:
        """Append entries (``symbol``, ``message``, ``created_at``); returns the count."""
        conn = get_connection(self._db_path)
        try:
            conn.executemany(
                """
                INSERT INTO audit_log (symbol, message, created_at)
                VALUES (?, ?, ?)
                """,
                [(e.get("symbol"), e["message"], e["created_at"]) for e in entries],
            )
            conn.commit()
            return len(entries)
        finally:
            conn.close()

    def get_entries(self, limit: int = 50) -> dict:
        """Return recent entries, newest first.

        Returns:
            ``{"entries": [...], "total": int}``
        """
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
            total = conn.execute("SELECT COUNT(*) FROM audit_log").fetchone()[0]
            return {"entries": [dict(row) for row in rows], "total": total}
        finally:
            conn.close()
