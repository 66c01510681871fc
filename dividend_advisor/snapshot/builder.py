"""
Market Snapshot Builder — per-ticker price + quality context for one run.

Flow
----
  1. De-duplicate and sort the ticker set (holdings + watchlist), so the
     snapshot order never depends on input or completion order.
  2. For each ticker, look up the latest fundamentals and latest price.
     Each lookup is bounded by ``lookup_timeout`` and retried per the
     ``RetryPolicy`` on ordinary failures (never on timeout).
  3. Score fundamentals with the Quality Scorer.  Tickers with no
     fundamentals stay in the snapshot with ``quality=None`` so the
     reasoning step is told about the gap.

Lookups are read-only and idempotent, so tickers may be fetched in parallel
(``max_workers > 1``).  A timeout raises ``ErrorKind.Timeout``; a lookup that
keeps failing raises ``ErrorKind.UpstreamUnavailable``.  An empty ticker set
returns an empty snapshot; whether that is fatal is the caller's decision.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import date
from functools import partial
from typing import Optional, TypeVar

from dividend_advisor.errors import LookupTimeoutError, PipelineError
from dividend_advisor.models.market import MarketSnapshot, SnapshotEntry
from dividend_advisor.pipeline.collaborators import MarketDataSource
from dividend_advisor.scoring.quality import (
    DEFAULT_QUALITY_POLICY,
    QualityPolicy,
    compute_quality_metrics,
)
from dividend_advisor.taxonomy.pipeline_taxonomy import ErrorKind
from dividend_advisor.utils.retry import NO_RETRY, RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_market_snapshot(
    tickers: Iterable[str],
    market_data: MarketDataSource,
    as_of_date: date,
    *,
    lookup_timeout: float = 3.0,
    retry_policy: RetryPolicy = NO_RETRY,
    max_workers: int = 1,
    policy: QualityPolicy = DEFAULT_QUALITY_POLICY,
    sleep: Callable[[float], None] = time.sleep,
) -> MarketSnapshot:
    """Build the ordered market snapshot for a set of tickers.

    Args:
        tickers:        Canonical tickers; duplicates are collapsed.
        market_data:    Source of ``latest_fundamental`` / ``latest_price``.
        as_of_date:     Caller-supplied date stamped on the snapshot.
        lookup_timeout: Seconds allowed for each individual lookup.
        retry_policy:   Retry policy for failed (not timed-out) lookups.
        max_workers:    Tickers fetched concurrently; 1 means sequential.
        policy:         Quality scoring thresholds.
        sleep:          Injected for tests.

    Returns:
        ``MarketSnapshot`` with one entry per distinct ticker, sorted.

    Raises:
        LookupTimeoutError: A lookup exceeded ``lookup_timeout``.
        PipelineError:      A lookup kept failing (``UpstreamUnavailable``).
    """
    ordered = sorted(set(tickers))
    if not ordered:
        logger.info("Empty ticker set; returning empty snapshot for %s", as_of_date)
        return MarketSnapshot(as_of_date=as_of_date)

    call_pool = ThreadPoolExecutor(
        max_workers=max(2, max_workers * 2), thread_name_prefix="market-lookup"
    )
    fetch = partial(
        _fetch_entry,
        market_data=market_data,
        pool=call_pool,
        lookup_timeout=lookup_timeout,
        retry_policy=retry_policy,
        policy=policy,
        sleep=sleep,
    )
    try:
        if max_workers <= 1:
            entries = [fetch(ticker) for ticker in ordered]
        else:
            with ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="snapshot"
            ) as ticker_pool:
                entries = list(ticker_pool.map(fetch, ordered))
    finally:
        # Timed-out lookups may still be running; do not wait for them
        call_pool.shutdown(wait=False, cancel_futures=True)

    missing = [e.ticker for e in entries if e.quality is None]
    logger.info(
        "Snapshot built: %d ticker(s), %d without fundamentals%s",
        len(entries), len(missing), f" ({', '.join(missing)})" if missing else "",
    )
    return MarketSnapshot(as_of_date=as_of_date, entries=tuple(entries))


def _fetch_entry(
    ticker: str,
    *,
    market_data: MarketDataSource,
    pool: ThreadPoolExecutor,
    lookup_timeout: float,
    retry_policy: RetryPolicy,
    policy: QualityPolicy,
    sleep: Callable[[float], None],
) -> SnapshotEntry:
    """Look up and score a single ticker."""
    lookup = partial(
        _timed_lookup,
        pool=pool,
        ticker=ticker,
        timeout=lookup_timeout,
        retry_policy=retry_policy,
        sleep=sleep,
    )
    record = lookup(market_data.latest_fundamental, label="latest_fundamental")
    price = _clean_price(ticker, lookup(market_data.latest_price, label="latest_price"))

    if record is None:
        return SnapshotEntry(ticker=ticker, price=price)

    return SnapshotEntry(
        ticker=ticker,
        price=price,
        quality=compute_quality_metrics(record, policy),
        dividend_yield=record.dividend_yield,
        beta=record.beta,
        payout_ratio=record.payout_ratio,
        debt_to_equity=record.debt_to_equity,
        fundamentals_as_of=record.as_of_date,
    )


def _timed_lookup(
    fn: Callable[[str], T],
    *,
    pool: ThreadPoolExecutor,
    ticker: str,
    timeout: float,
    retry_policy: RetryPolicy,
    sleep: Callable[[float], None],
    label: str,
) -> T:
    """Run ``fn(ticker)`` under a timeout, retrying ordinary failures."""

    def attempt() -> T:
        future = pool.submit(fn, ticker)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            future.cancel()
            raise LookupTimeoutError(ticker, timeout) from None

    try:
        return call_with_retry(
            attempt,
            retry_policy,
            give_up_on=(LookupTimeoutError,),
            sleep=sleep,
            label=f"{label}({ticker})",
        )
    except PipelineError:
        raise
    except Exception as exc:
        raise PipelineError(
            ErrorKind.UPSTREAM_UNAVAILABLE,
            "market data unavailable",
            detail=f"{label}({ticker}) raised {type(exc).__name__}",
        ) from exc


def _clean_price(ticker: str, price: Optional[float]) -> Optional[float]:
    if price is None:
        return None
    if not math.isfinite(price) or price < 0:
        logger.warning("Discarding invalid price for %s: %r", ticker, price)
        return None
    return float(price)
