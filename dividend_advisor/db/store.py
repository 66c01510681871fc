"""
``SqliteStore`` — fills the pipeline's collaborator roles over SQLite.

One object implements ``HoldingsSource``, ``MarketDataSource``,
``RecommendationSink`` and ``AuditSink``.  Every call opens a short-lived
connection from the injected factory, so the store is safe to use from the
snapshot builder's worker threads.

Usage::

    store = SqliteStore.from_config(config.database)
    holdings = store.fetch_holdings("alice")
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from contextlib import AbstractContextManager
from functools import partial
from typing import TYPE_CHECKING, Optional

from dividend_advisor.db.connection import get_connection
from dividend_advisor.db.repositories.audit_repo import AuditRepository
from dividend_advisor.db.repositories.holding_repo import HoldingRepository
from dividend_advisor.db.repositories.market_repo import MarketDataRepository
from dividend_advisor.db.repositories.recommendation_repo import RecommendationRepository
from dividend_advisor.models.market import FundamentalRecord
from dividend_advisor.models.portfolio import Holding
from dividend_advisor.models.recommendation import AuditEvent, Recommendation

if TYPE_CHECKING:
    from dividend_advisor.config import DatabaseConfig

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], AbstractContextManager[sqlite3.Connection]]


class SqliteStore:
    """SQLite-backed holdings, market data, recommendation, and audit store."""

    def __init__(self, connect: ConnectionFactory) -> None:
        self._connect = connect

    @classmethod
    def from_config(cls, config: "DatabaseConfig", db_path: Optional[str] = None) -> "SqliteStore":
        return cls(
            partial(
                get_connection,
                db_path or config.db_path,
                wal_mode=config.wal_mode,
                busy_timeout_ms=config.busy_timeout_ms,
            )
        )

    # ── HoldingsSource ────────────────────────────────────────────────────────

    def fetch_holdings(self, owner: str) -> list[Holding]:
        with self._connect() as conn:
            return HoldingRepository(conn).list_for_owner(owner)

    # ── MarketDataSource ──────────────────────────────────────────────────────

    def latest_fundamental(self, ticker: str) -> Optional[FundamentalRecord]:
        with self._connect() as conn:
            return MarketDataRepository(conn).latest_fundamental(ticker)

    def latest_price(self, ticker: str) -> Optional[float]:
        with self._connect() as conn:
            return MarketDataRepository(conn).latest_price(ticker)

    # ── RecommendationSink ────────────────────────────────────────────────────

    def persist(self, recommendation: Recommendation) -> str:
        """Store ``recommendation`` and return its id.

        Without an id the record is inserted (or matched to the existing row
        for its correlation id).  A terminal record then finishes that row,
        so a PENDING row opened earlier in the run becomes COMPLETED or
        FAILED.  Safe to retry after a failure at any point.

        Raises:
            TerminalRecommendationError: The row already holds a different
                terminal outcome.
        """
        with self._connect() as conn:
            repo = RecommendationRepository(conn)
            if recommendation.id is None:
                rec_id = repo.insert(recommendation)
            else:
                rec_id = int(recommendation.id)
            if recommendation.is_terminal:
                repo.update_status(rec_id, recommendation)
        logger.info(
            "Persisted recommendation %d | status=%s | correlation_id=%s",
            rec_id, recommendation.status.value, recommendation.correlation_id,
        )
        return str(rec_id)

    # ── AuditSink ─────────────────────────────────────────────────────────────

    def emit_audit(self, event: AuditEvent) -> None:
        with self._connect() as conn:
            AuditRepository(conn).insert(event)
