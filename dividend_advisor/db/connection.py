"""
SQLite connection management.

``get_connection()`` is a context manager that:
  - enables foreign key enforcement (OFF by default in SQLite);
  - enables WAL journal mode so CLI reads do not block a running pipeline;
  - sets a busy timeout for lock contention;
  - uses the ``sqlite3.Row`` factory so rows behave like dicts;
  - commits on clean exit and rolls back on exception.

Usage::

    from dividend_advisor.db.connection import get_connection

    with get_connection("data/db/dividend_advisor.db") as conn:
        HoldingRepository(conn).insert(holding)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Yield a configured SQLite connection.

    Parent directories of ``db_path`` are created if missing.

    Args:
        db_path: Database file path, or ``":memory:"`` (tests).
        wal_mode: Enable WAL journal mode.
        busy_timeout_ms: Milliseconds to wait on a locked database.

    Raises:
        sqlite3.OperationalError: If the database cannot be opened or is locked.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")
        if wal_mode and db_path != ":memory:":
            conn.execute("PRAGMA journal_mode = WAL;")

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        conn.close()
