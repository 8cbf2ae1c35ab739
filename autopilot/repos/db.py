"""SQLite bootstrap — schema migrations and the connection factory."""

import pathlib
import sqlite3


_MIGRATION_DIR = pathlib.Path(__file__).resolve().parent.parent.parent / "db" / "migrations"


def init_db(db_path: str) -> None:
    """Apply every ``db/migrations/*.sql`` script in filename order.

    Scripts only use ``IF NOT EXISTS`` statements, so this is safe on every
    boot. The parent directory of *db_path* is created when missing.
    """
    if db_path != ":memory:":
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        for script in sorted(_MIGRATION_DIR.glob("*.sql")):
            conn.executescript(script.read_text(encoding="utf-8"))
    finally:
        conn.close()


def get_connection(db_path: str) -> sqlite3.Connection:
    """New connection with ``sqlite3.Row`` rows; the caller closes it."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn
