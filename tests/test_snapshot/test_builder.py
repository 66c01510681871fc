"""
Tests for the market snapshot builder.

What we test
------------
1. Tickers are de-duplicated and sorted regardless of input order.
2. Tickers without fundamentals stay in the snapshot with quality=None.
3. Quality metrics come from the scorer; invalid prices are dropped.
4. Empty ticker set -> empty snapshot, no lookups.
5. Transient lookup failures are retried per policy.
6. Persistent failures -> UpstreamUnavailable; slow lookups -> Timeout.
7. Parallel fetching yields the same snapshot as sequential.
"""

from __future__ import annotations

import math

import pytest

from dividend_advisor.errors import LookupTimeoutError, PipelineError
from dividend_advisor.snapshot.builder import build_market_snapshot
from dividend_advisor.taxonomy.pipeline_taxonomy import ErrorKind
from dividend_advisor.utils.retry import RetryPolicy


def _no_sleep(_seconds: float) -> None:
    return None


class TestOrdering:
    def test_sorted_and_deduplicated(self, fake_market, as_of):
        snap = build_market_snapshot(["MSFT", "KO", "MSFT", "AAPL"], fake_market, as_of)
        assert snap.tickers == ("AAPL", "KO", "MSFT")
        assert snap.as_of_date == as_of

    def test_parallel_matches_sequential(self, fake_market, msft_fundamental, as_of):
        fake_market.fundamentals["KO"] = msft_fundamental.model_copy(update={"ticker": "KO"})
        tickers = ["PEP", "MSFT", "KO", "JNJ", "T"]
        seq = build_market_snapshot(tickers, fake_market, as_of, max_workers=1)
        par = build_market_snapshot(tickers, fake_market, as_of, max_workers=4)
        assert seq == par


class TestEntries:
    def test_scored_entry(self, fake_market, as_of):
        snap = build_market_snapshot(["MSFT"], fake_market, as_of)
        entry = snap.get("MSFT")
        assert entry.price == 420.0
        assert entry.quality.quality_score == 100
        assert entry.dividend_yield == 0.008
        assert entry.beta == 0.9
        assert entry.fundamentals_as_of.isoformat() == "2024-03-31"

    def test_missing_fundamentals_kept(self, fake_market, as_of):
        snap = build_market_snapshot(["ZZZ"], fake_market, as_of)
        entry = snap.get("ZZZ")
        assert entry is not None
        assert entry.quality is None
        assert entry.price is None

    @pytest.mark.parametrize("bad_price", [math.nan, math.inf, -5.0])
    def test_invalid_price_dropped(self, fake_market, as_of, bad_price):
        fake_market.prices["MSFT"] = bad_price
        snap = build_market_snapshot(["MSFT"], fake_market, as_of)
        assert snap.get("MSFT").price is None

    def test_empty_ticker_set(self, fake_market, as_of):
        snap = build_market_snapshot([], fake_market, as_of)
        assert snap.is_empty
        assert fake_market.calls == []


class TestFailures:
    def test_transient_failure_retried(self, fake_market, as_of):
        fake_market.fail_times = 1
        snap = build_market_snapshot(
            ["MSFT"],
            fake_market,
            as_of,
            retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=0.0),
            sleep=_no_sleep,
        )
        assert snap.get("MSFT").quality is not None
        assert fake_market.calls.count(("fundamental", "MSFT")) == 2

    def test_persistent_failure_is_upstream_unavailable(self, fake_market, as_of):
        fake_market.error = ConnectionError("down")
        with pytest.raises(PipelineError) as exc_info:
            build_market_snapshot(
                ["MSFT"],
                fake_market,
                as_of,
                retry_policy=RetryPolicy(max_attempts=2, base_delay_seconds=0.0),
                sleep=_no_sleep,
            )
        assert exc_info.value.kind == ErrorKind.UPSTREAM_UNAVAILABLE
        assert "ConnectionError" in exc_info.value.detail
        assert fake_market.calls.count(("fundamental", "MSFT")) == 2

    def test_slow_lookup_times_out_without_retry(self, fake_market, as_of):
        fake_market.delay = 0.5
        with pytest.raises(LookupTimeoutError) as exc_info:
            build_market_snapshot(
                ["MSFT"],
                fake_market,
                as_of,
                lookup_timeout=0.05,
                retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=0.0),
                sleep=_no_sleep,
            )
        assert exc_info.value.kind == ErrorKind.TIMEOUT
        assert fake_market.calls.count(("fundamental", "MSFT")) == 1
