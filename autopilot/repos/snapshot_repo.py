"""Snapshot repositories — named JSON blobs.

``SnapshotRepo`` persists to the ``snapshots`` table; ``MemorySnapshotStore``
keeps the same interface in process memory for ephemeral slots.
"""

import json
from datetime import datetime, timezone
from typing import Optional

from autopilot.repos.db import get_connection


class SnapshotRepo:
    """Data access layer for the ``snapshots`` key/value table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def get(self, key: str) -> Optional[dict]:
        """Return the blob stored under *key*, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT value FROM snapshots WHERE key = ?", (key,)
            ).fetchone()
            return json.loads(row["value"]) if row else None
        finally:
            conn.close()

    def set(self, key: str, value: dict) -> None:
        """Replace the blob stored under *key*."""
        updated_at = datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO snapshots (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE
                    SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), updated_at),
            )
            conn.commit()
        finally:
            conn.close()


class MemorySnapshotStore:
    """In-process snapshot store (lost on restart)."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[dict]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: dict) -> None:
        self._data[key] = json.dumps(value)
