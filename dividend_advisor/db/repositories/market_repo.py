"""
Repository for shared market data: fundamentals, daily prices, dividends.

All writes are idempotent upserts keyed on the natural key, so a ticker
refresh job delivered more than once leaves the same rows behind.
Fundamentals for a newer ``as_of_date`` are inserted alongside older rows;
the latest-by-date row is the active one.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Optional

from dividend_advisor.db.repositories.base import BaseRepository, date_or_none, iso_or_none
from dividend_advisor.models.market import DividendEvent, FundamentalRecord, PricePoint

logger = logging.getLogger(__name__)


class MarketDataRepository(BaseRepository):
    """Read/write access to ``market_fundamentals``, ``market_prices`` and
    ``market_dividends``."""

    # ── Fundamentals ──────────────────────────────────────────────────────────

    def upsert_fundamental(self, record: FundamentalRecord) -> None:
        """Insert or refresh the fundamentals row for ``(ticker, as_of_date)``."""
        self.execute(
            """
            INSERT INTO market_fundamentals (
                ticker, as_of_date, payout_ratio, debt_to_equity,
                dividend_yield, beta, dividend_cut_flag, raw_payload
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(ticker, as_of_date) DO UPDATE SET
                payout_ratio      = excluded.payout_ratio,
                debt_to_equity    = excluded.debt_to_equity,
                dividend_yield    = excluded.dividend_yield,
                beta              = excluded.beta,
                dividend_cut_flag = excluded.dividend_cut_flag,
                raw_payload       = excluded.raw_payload;
            """,
            (
                record.ticker,
                record.as_of_date.isoformat(),
                record.payout_ratio,
                record.debt_to_equity,
                record.dividend_yield,
                record.beta,
                int(record.dividend_cut_flag),
                record.raw_payload,
            ),
        )

    def latest_fundamental(self, ticker: str) -> Optional[FundamentalRecord]:
        """Active (latest ``as_of_date``) fundamentals for ``ticker``, or ``None``."""
        row = self.fetchone(
            """
            SELECT * FROM market_fundamentals
            WHERE ticker = ?
            ORDER BY as_of_date DESC
            LIMIT 1;
            """,
            (ticker,),
        )
        return _row_to_fundamental(row) if row else None

    def count_fundamentals(self, ticker: str) -> int:
        row = self.fetchone(
            "SELECT COUNT(*) AS n FROM market_fundamentals WHERE ticker = ?;", (ticker,)
        )
        return int(row["n"]) if row else 0

    # ── Prices ────────────────────────────────────────────────────────────────

    def upsert_prices(self, points: list[PricePoint]) -> int:
        """Insert or refresh daily closes; returns the number of rows written."""
        if not points:
            return 0
        self.executemany(
            """
            INSERT INTO market_prices (ticker, price_date, close, adjusted_close, volume)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(ticker, price_date) DO UPDATE SET
                close          = excluded.close,
                adjusted_close = excluded.adjusted_close,
                volume         = excluded.volume;
            """,
            [
                (p.ticker, p.price_date.isoformat(), p.close, p.adjusted_close, p.volume)
                for p in points
            ],
        )
        return len(points)

    def latest_price(self, ticker: str) -> Optional[float]:
        """Most recent close for ``ticker``, or ``None`` if no prices are stored."""
        row = self.fetchone(
            """
            SELECT close FROM market_prices
            WHERE ticker = ?
            ORDER BY price_date DESC
            LIMIT 1;
            """,
            (ticker,),
        )
        return float(row["close"]) if row else None

    def count_prices(self, ticker: str) -> int:
        row = self.fetchone(
            "SELECT COUNT(*) AS n FROM market_prices WHERE ticker = ?;", (ticker,)
        )
        return int(row["n"]) if row else 0

    # ── Dividends ─────────────────────────────────────────────────────────────

    def upsert_dividends(self, events: list[DividendEvent]) -> int:
        """Insert or refresh dividend events keyed by ex-date."""
        if not events:
            return 0
        self.executemany(
            """
            INSERT INTO market_dividends (ticker, ex_date, amount, payment_date)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(ticker, ex_date) DO UPDATE SET
                amount       = excluded.amount,
                payment_date = excluded.payment_date;
            """,
            [
                (
                    e.ticker,
                    e.ex_date.isoformat(),
                    e.amount,
                    iso_or_none(e.payment_date),
                )
                for e in events
            ],
        )
        return len(events)

    def get_dividends(self, ticker: str) -> list[DividendEvent]:
        """Dividend history for ``ticker`` ordered by ex-date, oldest first."""
        rows = self.fetchall(
            "SELECT * FROM market_dividends WHERE ticker = ? ORDER BY ex_date;",
            (ticker,),
        )
        return [
            DividendEvent(
                ticker=r["ticker"],
                ex_date=date.fromisoformat(r["ex_date"]),
                amount=r["amount"],
                payment_date=date_or_none(r["payment_date"]),
            )
            for r in rows
        ]


def _row_to_fundamental(row: sqlite3.Row) -> FundamentalRecord:
    return FundamentalRecord(
        ticker=row["ticker"],
        as_of_date=date.fromisoformat(row["as_of_date"]),
        payout_ratio=row["payout_ratio"],
        debt_to_equity=row["debt_to_equity"],
        dividend_yield=row["dividend_yield"],
        beta=row["beta"],
        dividend_cut_flag=bool(row["dividend_cut_flag"]),
        raw_payload=row["raw_payload"],
    )
