"""
Repository for user-owned holdings.

Every read and write is scoped by ``owner``: one user can never see or
change another user's positions.  The pipeline only reads.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from dividend_advisor.db.repositories.base import BaseRepository, date_or_none, iso_or_none
from dividend_advisor.models.portfolio import Holding

logger = logging.getLogger(__name__)


class HoldingRepository(BaseRepository):
    """Read/write access to the ``holdings`` table."""

    def insert(self, holding: Holding) -> int:
        """Insert a holding and return its ``holding_id``."""
        return self.insert_returning_id(
            """
            INSERT INTO holdings (owner, ticker, shares, cost_basis, purchase_date)
            VALUES (?, ?, ?, ?, ?);
            """,
            (
                holding.owner,
                holding.ticker,
                holding.shares,
                holding.cost_basis,
                iso_or_none(holding.purchase_date),
            ),
        )

    def update(self, holding: Holding) -> bool:
        """Update shares, cost basis, and purchase date of an owned holding.

        Returns:
            ``True`` if a row owned by ``holding.owner`` was updated.
        """
        if holding.holding_id is None:
            raise ValueError("Cannot update a holding without holding_id.")
        cursor = self.execute(
            """
            UPDATE holdings
            SET shares = ?, cost_basis = ?, purchase_date = ?,
                updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
            WHERE holding_id = ? AND owner = ?;
            """,
            (
                holding.shares,
                holding.cost_basis,
                iso_or_none(holding.purchase_date),
                holding.holding_id,
                holding.owner,
            ),
        )
        return cursor.rowcount == 1

    def delete(self, owner: str, holding_id: int) -> bool:
        """Delete one holding; returns ``False`` if it is missing or not owned."""
        cursor = self.execute(
            "DELETE FROM holdings WHERE holding_id = ? AND owner = ?;",
            (holding_id, owner),
        )
        return cursor.rowcount == 1

    def get(self, owner: str, holding_id: int) -> Optional[Holding]:
        row = self.fetchone(
            "SELECT * FROM holdings WHERE holding_id = ? AND owner = ?;",
            (holding_id, owner),
        )
        return _row_to_holding(row) if row else None

    def list_for_owner(self, owner: str) -> list[Holding]:
        """All holdings of ``owner``, ordered by ticker then id."""
        rows = self.fetchall(
            "SELECT * FROM holdings WHERE owner = ? ORDER BY ticker, holding_id;",
            (owner,),
        )
        return [_row_to_holding(r) for r in rows]

    def distinct_tickers(self) -> list[str]:
        """Every ticker held by any owner, sorted; the default refresh set."""
        rows = self.fetchall("SELECT DISTINCT ticker FROM holdings ORDER BY ticker;")
        return [r["ticker"] for r in rows]


def _row_to_holding(row: sqlite3.Row) -> Holding:
    return Holding(
        holding_id=row["holding_id"],
        owner=row["owner"],
        ticker=row["ticker"],
        shares=row["shares"],
        cost_basis=row["cost_basis"],
        purchase_date=date_or_none(row["purchase_date"]),
    )
