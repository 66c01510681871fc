"""
Shared pytest fixtures for the Dividend Advisor test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``sqlite_store``: A ``SqliteStore`` sharing that connection.
  - Sample domain objects (holdings, fundamentals, constraints).
  - In-process fake collaborators for pipeline tests.  Fakes record their
    calls and can be told to fail; tests adjust their attributes directly.
"""

from __future__ import annotations

import json
import sqlite3
import time
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Generator, Optional

import pytest

from dividend_advisor.db.schema import apply_schema
from dividend_advisor.db.store import SqliteStore
from dividend_advisor.models.market import FundamentalRecord
from dividend_advisor.models.portfolio import Constraints, Holding
from dividend_advisor.models.recommendation import AuditEvent, Recommendation
from dividend_advisor.pipeline.collaborators import Collaborators
from dividend_advisor.pipeline.runner import PipelineSettings
from dividend_advisor.taxonomy.pipeline_taxonomy import RecommendationStatus
from dividend_advisor.utils.retry import NO_RETRY, RetryPolicy

AS_OF = date(2024, 6, 3)


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    ``check_same_thread=False`` because the snapshot builder calls the
    store from worker threads.
    """
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def shared_connect(in_memory_db):
    """Connection factory yielding the shared in-memory connection."""

    @contextmanager
    def connect():
        try:
            yield in_memory_db
            in_memory_db.commit()
        except Exception:
            in_memory_db.rollback()
            raise

    return connect


@pytest.fixture
def sqlite_store(shared_connect) -> SqliteStore:
    return SqliteStore(shared_connect)


# ── Sample domain objects ─────────────────────────────────────────────────────

@pytest.fixture
def as_of() -> date:
    return AS_OF


@pytest.fixture
def msft_holding() -> Holding:
    return Holding(
        holding_id=1,
        owner="alice",
        ticker="MSFT",
        shares=10,
        cost_basis=300.0,
        purchase_date=date(2023, 1, 15),
    )


@pytest.fixture
def msft_fundamental() -> FundamentalRecord:
    """Healthy fundamentals: no penalties, quality score 100."""
    return FundamentalRecord(
        ticker="MSFT",
        as_of_date=date(2024, 3, 31),
        payout_ratio=0.25,
        debt_to_equity=0.5,
        dividend_yield=0.008,
        beta=0.9,
    )


@pytest.fixture
def risky_fundamental() -> FundamentalRecord:
    """High payout and leverage with a recent cut: quality score 30."""
    return FundamentalRecord(
        ticker="T",
        as_of_date=date(2024, 3, 31),
        payout_ratio=0.95,
        debt_to_equity=2.5,
        dividend_yield=0.065,
        beta=0.7,
        dividend_cut_flag=True,
    )


@pytest.fixture
def constraints() -> Constraints:
    return Constraints(
        max_holdings=5,
        payout_ceiling=0.8,
        leverage_ceiling=2.0,
        benchmark_ticker="VIG",
    )


@pytest.fixture
def msft_response() -> str:
    """A valid model answer for a MSFT-only universe."""
    return json.dumps(
        {
            "targetPortfolio": [
                {"ticker": "MSFT", "weight": 1.0, "rationale": "Durable dividend growth"}
            ],
            "explanation": {
                "summary": "Keep Microsoft as the single core position.",
                "bullets": ["Low payout ratio leaves room for dividend growth"],
                "risksToWatch": ["Valuation compression"],
                "whatWouldChangeThis": ["A dividend cut"],
            },
        }
    )


# ── Fake collaborators ────────────────────────────────────────────────────────

class FakeHoldings:
    def __init__(self, holdings: list[Holding], error: Optional[Exception] = None) -> None:
        self.holdings = holdings
        self.error = error
        self.calls: list[str] = []

    def fetch_holdings(self, owner: str) -> list[Holding]:
        self.calls.append(owner)
        if self.error is not None:
            raise self.error
        return [h for h in self.holdings if h.owner == owner]


class FakeMarketData:
    def __init__(
        self,
        fundamentals: dict[str, FundamentalRecord],
        prices: dict[str, float],
    ) -> None:
        self.fundamentals = fundamentals
        self.prices = prices
        self.error: Optional[Exception] = None
        self.fail_times = 0
        self.delay = 0.0
        self.calls: list[tuple[str, str]] = []

    def _maybe_fail(self) -> None:
        if self.delay:
            time.sleep(self.delay)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("transient lookup failure")
        if self.error is not None:
            raise self.error

    def latest_fundamental(self, ticker: str) -> Optional[FundamentalRecord]:
        self.calls.append(("fundamental", ticker))
        self._maybe_fail()
        return self.fundamentals.get(ticker)

    def latest_price(self, ticker: str) -> Optional[float]:
        self.calls.append(("price", ticker))
        self._maybe_fail()
        return self.prices.get(ticker)


class FakeModel:
    def __init__(self, response: str) -> None:
        self.response = response
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.on_invoke = None
        self.calls: list[tuple[str, int]] = []

    def invoke(self, prompt_text: str, max_tokens: int) -> str:
        self.calls.append((prompt_text, max_tokens))
        if self.on_invoke is not None:
            self.on_invoke()
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


class FakeStore:
    """Keeps one entry per id; a record with an id replaces that entry.

    ``fail_times`` counts failing writes; with ``fail_status`` set only
    writes of that status fail.
    """

    def __init__(self) -> None:
        self.saved: list[Recommendation] = []
        self.fail_times = 0
        self.fail_status: Optional[RecommendationStatus] = None
        self.attempts = 0

    def persist(self, recommendation: Recommendation) -> str:
        self.attempts += 1
        if self.fail_times > 0 and self.fail_status in (None, recommendation.status):
            self.fail_times -= 1
            raise sqlite3.OperationalError("database is locked")
        if recommendation.id is not None:
            self.saved[int(recommendation.id) - 1] = recommendation
            return recommendation.id
        self.saved.append(recommendation)
        return str(len(self.saved))


class FakeAudit:
    def __init__(self) -> None:
        self.events: list[AuditEvent] = []
        self.error: Optional[Exception] = None

    def emit_audit(self, event: AuditEvent) -> None:
        if self.error is not None:
            raise self.error
        self.events.append(event)


@pytest.fixture
def fake_holdings(msft_holding) -> FakeHoldings:
    return FakeHoldings([msft_holding])


@pytest.fixture
def fake_market(msft_fundamental) -> FakeMarketData:
    return FakeMarketData({"MSFT": msft_fundamental}, {"MSFT": 420.0})


@pytest.fixture
def fake_model(msft_response) -> FakeModel:
    return FakeModel(msft_response)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_audit() -> FakeAudit:
    return FakeAudit()


@pytest.fixture
def collaborators(fake_holdings, fake_market, fake_model, fake_store, fake_audit) -> Collaborators:
    return Collaborators(
        holdings=fake_holdings,
        market_data=fake_market,
        model=fake_model,
        store=fake_store,
        audit=fake_audit,
    )


@pytest.fixture
def fast_settings() -> PipelineSettings:
    """Sequential lookups, no lookup retry, zero-delay persistence retry."""
    return PipelineSettings(
        lookup_timeout_seconds=2.0,
        lookup_retry=NO_RETRY,
        max_workers=1,
        model_timeout_seconds=2.0,
        persist_retry=RetryPolicy(max_attempts=3, base_delay_seconds=0.0),
    )


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2024, 6, 3, 14, 30, tzinfo=timezone.utc)
