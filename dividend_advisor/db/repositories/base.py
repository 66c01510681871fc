"""
Shared plumbing for the SQLite repositories.

Each repository wraps a caller-owned ``sqlite3.Connection``; the caller
(``get_connection()`` or ``SqliteStore``) decides when to commit.  SQL is
written out by hand in repository methods and rows come back as
``sqlite3.Row``.  Dates are stored as ISO-8601 text; the column helpers
below are the single place that conversion happens.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Any, Optional, Sequence, Union

logger = logging.getLogger(__name__)

Params = Union[Sequence[Any], dict[str, Any]]


def iso_or_none(value: Optional[date]) -> Optional[str]:
    """Date column value: ISO text, or NULL for ``None``."""
    return value.isoformat() if value is not None else None


def date_or_none(value: Optional[str]) -> Optional[date]:
    """Inverse of ``iso_or_none`` for a TEXT date column."""
    return date.fromisoformat(value) if value else None


class BaseRepository:
    """Statement helpers shared by holdings, market data, recommendations and audit."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        logger.debug("SQL: %s | params: %s", " ".join(sql.split()), params)
        return self.conn.execute(sql, params)

    def executemany(self, sql: str, rows: list[Params]) -> sqlite3.Cursor:
        logger.debug("SQL x%d: %s", len(rows), " ".join(sql.split()))
        return self.conn.executemany(sql, rows)

    def insert_returning_id(self, sql: str, params: Params) -> int:
        """Run an INSERT and return the new rowid."""
        return int(self.execute(sql, params).lastrowid)

    def fetchone(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()
