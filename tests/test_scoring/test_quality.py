"""
Tests for the quality scorer and compliance checks.

What we test
------------
1. Score formula: 100, -40 for payout > 0.8, -30 for debt/equity > 2.0.
2. Threshold values themselves are not penalized (strict >).
3. Missing fields count as 0; the score is always within [0, 100].
4. Scoring is idempotent and passes dividend_cut_flag through untouched.
5. A custom policy changes thresholds and penalties.
6. Compliance issues follow the caller's ceilings, in a fixed order.
"""

from __future__ import annotations

from datetime import date

import pytest

from dividend_advisor.models.market import FundamentalRecord, SnapshotEntry
from dividend_advisor.scoring.quality import (
    QualityPolicy,
    check_compliance,
    compute_quality_metrics,
    quality_score,
)
from dividend_advisor.taxonomy.pipeline_taxonomy import ComplianceIssueType


def _record(**kwargs) -> FundamentalRecord:
    return FundamentalRecord(ticker="KO", as_of_date=date(2024, 3, 31), **kwargs)


def _entry(record: FundamentalRecord) -> SnapshotEntry:
    return SnapshotEntry(
        ticker=record.ticker,
        price=60.0,
        quality=compute_quality_metrics(record),
        payout_ratio=record.payout_ratio,
        debt_to_equity=record.debt_to_equity,
    )


class TestQualityScore:
    @pytest.mark.parametrize(
        "payout, leverage, expected",
        [
            (0.5, 1.0, 100),
            (0.9, 1.0, 60),
            (0.5, 2.5, 70),
            (0.9, 2.5, 30),
            (0.8, 2.0, 100),
            (None, None, 100),
        ],
    )
    def test_formula(self, payout, leverage, expected):
        assert quality_score(payout, leverage) == expected

    def test_never_below_zero(self):
        harsh = QualityPolicy(payout_penalty=80, leverage_penalty=80)
        assert quality_score(5.0, 50.0, harsh) == 0

    @pytest.mark.parametrize("payout", [0.0, 0.3, 0.81, 3.0, 100.0])
    @pytest.mark.parametrize("leverage", [0.0, 1.9, 2.01, 40.0])
    def test_bounds(self, payout, leverage):
        assert 0 <= quality_score(payout, leverage) <= 100


class TestQualityMetrics:
    def test_flags(self):
        metrics = compute_quality_metrics(_record(payout_ratio=0.95, debt_to_equity=2.5))
        assert metrics.quality_score == 30
        assert metrics.yield_trap_flag
        assert metrics.leverage_flag
        assert not metrics.dividend_cut_flag

    def test_cut_flag_passed_through(self):
        metrics = compute_quality_metrics(_record(payout_ratio=0.2, dividend_cut_flag=True))
        assert metrics.dividend_cut_flag
        assert metrics.quality_score == 100

    def test_idempotent(self):
        record = _record(payout_ratio=0.85, debt_to_equity=1.0)
        assert compute_quality_metrics(record) == compute_quality_metrics(record)

    def test_custom_policy(self):
        strict = QualityPolicy(payout_threshold=0.5, payout_penalty=50)
        metrics = compute_quality_metrics(_record(payout_ratio=0.6), strict)
        assert metrics.quality_score == 50
        assert metrics.yield_trap_flag


class TestCompliance:
    def test_clean_entry_has_no_issues(self, constraints):
        entry = _entry(_record(payout_ratio=0.4, debt_to_equity=0.8))
        assert check_compliance(entry, constraints) == []

    def test_missing_fundamentals(self, constraints):
        issues = check_compliance(SnapshotEntry(ticker="KO", price=60.0), constraints)
        assert [i.type for i in issues] == [ComplianceIssueType.MISSING_DATA]

    def test_issue_order(self, constraints):
        entry = _entry(_record(payout_ratio=0.95, debt_to_equity=2.5, dividend_cut_flag=True))
        types = [i.type for i in check_compliance(entry, constraints)]
        assert types == [
            ComplianceIssueType.LEVERAGE,
            ComplianceIssueType.YIELD_TRAP,
            ComplianceIssueType.DIVIDEND_CUT,
        ]

    def test_caller_ceiling_stricter_than_policy(self, constraints):
        tight = constraints.model_copy(update={"payout_ceiling": 0.5})
        entry = _entry(_record(payout_ratio=0.6))
        assert entry.quality.quality_score == 100
        types = [i.type for i in check_compliance(entry, tight)]
        assert types == [ComplianceIssueType.YIELD_TRAP]
