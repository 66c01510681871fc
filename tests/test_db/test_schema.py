"""
Tests for the SQLite schema.

What we test
------------
1. apply_schema creates every table.
2. apply_schema is idempotent.
3. Column constraints: positive shares, status vocabulary, unique natural
   keys on market data.
"""

from __future__ import annotations

import sqlite3

import pytest

from dividend_advisor.db.schema import ALL_TABLE_NAMES, apply_schema, get_existing_tables


class TestApplySchema:
    def test_all_tables_created(self, in_memory_db):
        existing = set(get_existing_tables(in_memory_db))
        assert set(ALL_TABLE_NAMES) <= existing

    def test_idempotent(self, in_memory_db):
        apply_schema(in_memory_db)
        apply_schema(in_memory_db)
        assert set(ALL_TABLE_NAMES) <= set(get_existing_tables(in_memory_db))


class TestConstraints:
    def test_shares_must_be_positive(self, in_memory_db):
        with pytest.raises(sqlite3.IntegrityError):
            in_memory_db.execute(
                "INSERT INTO holdings (owner, ticker, shares) VALUES ('alice', 'KO', 0);"
            )

    def test_unknown_status_rejected(self, in_memory_db):
        with pytest.raises(sqlite3.IntegrityError):
            in_memory_db.execute(
                "INSERT INTO recommendations (owner, status, correlation_id) "
                "VALUES ('alice', 'DONE', 'c1');"
            )

    def test_price_natural_key_unique(self, in_memory_db):
        sql = "INSERT INTO market_prices (ticker, price_date, close) VALUES ('KO', '2024-05-31', 60.0);"
        in_memory_db.execute(sql)
        with pytest.raises(sqlite3.IntegrityError):
            in_memory_db.execute(sql)
