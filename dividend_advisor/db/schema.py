"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (CLI start-up, tests).

Tables
------
  1. holdings             — user-owned positions (manual entry)
  2. market_fundamentals  — one row per (ticker, as_of_date); newer dates
                            supersede older ones, rows are never overwritten
  3. market_prices        — daily closes, unique per (ticker, price_date)
  4. market_dividends     — dividend events, unique per (ticker, ex_date)
  5. recommendations      — one row per correlation id, PENDING until the run
                            finishes; packet/explanation/fallback stored as
                            camelCase JSON
  6. audit_log            — one row per pipeline invocation
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_HOLDINGS = """
CREATE TABLE IF NOT EXISTS holdings (
    holding_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    owner           TEXT    NOT NULL,
    ticker          TEXT    NOT NULL,
    shares          REAL    NOT NULL CHECK (shares > 0),
    cost_basis      REAL    NOT NULL DEFAULT 0 CHECK (cost_basis >= 0),
    purchase_date   TEXT,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_holdings_owner
    ON holdings(owner, ticker);
"""

_DDL_MARKET_FUNDAMENTALS = """
CREATE TABLE IF NOT EXISTS market_fundamentals (
    fundamental_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    ticker            TEXT    NOT NULL,
    as_of_date        TEXT    NOT NULL,
    payout_ratio      REAL,
    debt_to_equity    REAL,
    dividend_yield    REAL,
    beta              REAL,
    dividend_cut_flag INTEGER NOT NULL DEFAULT 0,
    raw_payload       TEXT,
    ingested_at       TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    UNIQUE(ticker, as_of_date)
);
CREATE INDEX IF NOT EXISTS idx_fundamentals_ticker_date
    ON market_fundamentals(ticker, as_of_date DESC);
"""

_DDL_MARKET_PRICES = """
CREATE TABLE IF NOT EXISTS market_prices (
    price_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    ticker          TEXT    NOT NULL,
    price_date      TEXT    NOT NULL,
    close           REAL    NOT NULL,
    adjusted_close  REAL,
    volume          REAL,
    ingested_at     TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    UNIQUE(ticker, price_date)
);
CREATE INDEX IF NOT EXISTS idx_prices_ticker_date
    ON market_prices(ticker, price_date DESC);
"""

_DDL_MARKET_DIVIDENDS = """
CREATE TABLE IF NOT EXISTS market_dividends (
    dividend_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    ticker          TEXT    NOT NULL,
    ex_date         TEXT    NOT NULL,
    amount          REAL    NOT NULL,
    payment_date    TEXT,
    ingested_at     TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    UNIQUE(ticker, ex_date)
);
"""

_DDL_RECOMMENDATIONS = """
CREATE TABLE IF NOT EXISTS recommendations (
    rec_id            INTEGER PRIMARY KEY AUTOINCREMENT,
    owner             TEXT    NOT NULL,
    status            TEXT    NOT NULL CHECK (status IN ('PENDING', 'COMPLETED', 'FAILED')),
    packet_json       TEXT,
    explanation_json  TEXT,
    fallback_json     TEXT,
    error_kind        TEXT,
    error_detail      TEXT,
    correlation_id    TEXT    NOT NULL,
    created_at        TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at        TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_recommendations_owner
    ON recommendations(owner, created_at DESC);
CREATE UNIQUE INDEX IF NOT EXISTS uq_recommendations_correlation
    ON recommendations(correlation_id);
"""

_DDL_AUDIT_LOG = """
CREATE TABLE IF NOT EXISTS audit_log (
    audit_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    action          TEXT    NOT NULL,
    correlation_id  TEXT    NOT NULL,
    details_json    TEXT    NOT NULL DEFAULT '{}',
    occurred_at     TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_audit_correlation
    ON audit_log(correlation_id);
"""

_ALL_DDL: list[str] = [
    _DDL_HOLDINGS,
    _DDL_MARKET_FUNDAMENTALS,
    _DDL_MARKET_PRICES,
    _DDL_MARKET_DIVIDENDS,
    _DDL_RECOMMENDATIONS,
    _DDL_AUDIT_LOG,
]

ALL_TABLE_NAMES: list[str] = [
    "holdings",
    "market_fundamentals",
    "market_prices",
    "market_dividends",
    "recommendations",
    "audit_log",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes if they do not already exist.

    Idempotent — safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection``.
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return table names present in the database, sorted alphabetically."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
