"""
Ticker refresh jobs: pull one ticker's data from the provider into SQLite.

Two job kinds:

  PRICE        TIME_SERIES_DAILY_ADJUSTED → ``market_prices`` + ``market_dividends``
  FUNDAMENTAL  OVERVIEW → ``market_fundamentals``, with ``dividend_cut_flag``
               derived from the dividend history already stored

Jobs may be delivered more than once; every write is an upsert on the
natural key, so a repeated job leaves the same rows behind.  Rate-limit
notices and transport errors are retried with backoff; provider error
payloads are not.

Usage::

    job = TickerRefreshJob.from_message('{"ticker": "KO", "type": "PRICE"}')
    with get_connection(db_path) as conn:
        result = process_refresh_job(job, client, conn)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import httpx

from dividend_advisor.db.repositories.market_repo import MarketDataRepository
from dividend_advisor.db.store import ConnectionFactory
from dividend_advisor.ingestion.alpha_vantage_client import (
    AlphaVantageClient,
    AlphaVantageError,
    ProviderThrottledError,
)
from dividend_advisor.ingestion.dividends import DEFAULT_CUT_THRESHOLD, detect_dividend_cut
from dividend_advisor.models.market import normalize_ticker
from dividend_advisor.taxonomy.pipeline_taxonomy import RefreshKind
from dividend_advisor.utils.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

_RETRYABLE = (ProviderThrottledError, httpx.TransportError)


@dataclass(frozen=True)
class TickerRefreshJob:
    """One unit of refresh work."""

    ticker: str
    kind: RefreshKind

    @classmethod
    def from_message(cls, message: Union[str, Mapping[str, Any]]) -> "TickerRefreshJob":
        """Parse a queue message ``{"ticker": ..., "type": "PRICE"|"FUNDAMENTAL"}``.

        Raises:
            ValueError: Malformed JSON, missing keys, bad ticker, or unknown type.
        """
        if isinstance(message, str):
            try:
                message = json.loads(message)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Refresh message is not JSON: {exc.msg}") from exc
        if not isinstance(message, Mapping):
            raise ValueError("Refresh message must be a JSON object.")
        try:
            ticker = normalize_ticker(message["ticker"])
            kind = RefreshKind(str(message["type"]).upper())
        except KeyError as exc:
            raise ValueError(f"Refresh message missing key {exc.args[0]!r}.") from exc
        return cls(ticker=ticker, kind=kind)


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of one processed job."""

    ticker: str
    kind: RefreshKind
    rows_written: int
    dividend_cut_flag: Optional[bool] = None


@dataclass
class RefreshSummary:
    """Batch outcome: processed jobs plus ``(job, error)`` pairs for failures."""

    results: list[RefreshResult] = field(default_factory=list)
    failures: list[tuple[TickerRefreshJob, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.failures)


def process_refresh_job(
    job: TickerRefreshJob,
    client: AlphaVantageClient,
    conn: sqlite3.Connection,
    *,
    retry_policy: RetryPolicy = RetryPolicy(),
    cut_threshold: float = DEFAULT_CUT_THRESHOLD,
    sleep: Callable[[float], None] = time.sleep,
) -> RefreshResult:
    """Fetch and store data for ``job``.

    The caller owns the connection and its commit.

    Raises:
        AlphaVantageError: Provider error payload, or throttling that
            outlasted the retry policy.
        httpx.HTTPError: Transport / HTTP failure after retries.
    """
    repo = MarketDataRepository(conn)
    label = f"{job.kind.value} refresh {job.ticker}"

    if job.kind == RefreshKind.PRICE:
        series = call_with_retry(
            lambda: client.fetch_daily_adjusted(job.ticker),
            retry_policy, retry_on=_RETRYABLE, sleep=sleep, label=label,
        )
        rows = repo.upsert_prices(series.prices) + repo.upsert_dividends(series.dividends)
        logger.info(
            "Refreshed prices for %s | bars=%d dividends=%d",
            job.ticker, len(series.prices), len(series.dividends),
        )
        return RefreshResult(job.ticker, job.kind, rows)

    record = call_with_retry(
        lambda: client.fetch_overview(job.ticker),
        retry_policy, retry_on=_RETRYABLE, sleep=sleep, label=label,
    )
    cut = detect_dividend_cut(repo.get_dividends(job.ticker), cut_threshold)
    if cut:
        logger.warning("Dividend cut detected for %s", job.ticker)
    repo.upsert_fundamental(record.model_copy(update={"dividend_cut_flag": cut}))
    logger.info("Refreshed fundamentals for %s as of %s", job.ticker, record.as_of_date)
    return RefreshResult(job.ticker, job.kind, 1, dividend_cut_flag=cut)


def refresh_tickers(
    tickers: Iterable[str],
    client: AlphaVantageClient,
    connect: ConnectionFactory,
    *,
    kinds: tuple[RefreshKind, ...] = (RefreshKind.PRICE, RefreshKind.FUNDAMENTAL),
    retry_policy: RetryPolicy = RetryPolicy(),
    cut_threshold: float = DEFAULT_CUT_THRESHOLD,
    sleep: Callable[[float], None] = time.sleep,
) -> RefreshSummary:
    """Run every ``kind`` for every ticker, one committed connection per job.

    PRICE jobs run before FUNDAMENTAL so the cut flag sees fresh dividends.
    A failing job is logged and counted; the batch continues.
    """
    order = {RefreshKind.PRICE: 0, RefreshKind.FUNDAMENTAL: 1}
    jobs = [
        TickerRefreshJob(ticker, kind)
        for ticker in dict.fromkeys(normalize_ticker(t) for t in tickers)
        for kind in sorted(kinds, key=order.__getitem__)
    ]

    summary = RefreshSummary()
    for job in jobs:
        try:
            with connect() as conn:
                summary.results.append(
                    process_refresh_job(
                        job, client, conn,
                        retry_policy=retry_policy,
                        cut_threshold=cut_threshold,
                        sleep=sleep,
                    )
                )
        except (AlphaVantageError, httpx.HTTPError, sqlite3.Error) as exc:
            logger.error("%s refresh failed for %s: %s", job.kind.value, job.ticker, exc)
            summary.failures.append((job, str(exc)))

    logger.info(
        "Refresh batch complete | succeeded=%d failed=%d",
        summary.succeeded, summary.failed,
    )
    return summary
