"""
Quality scoring: converts a FundamentalRecord into safety/quality metrics.

Score formula (integer, range 0–100)
------------------------------------
    score = max(0, 100
                 - 40 * [payout_ratio   > 0.8]    # yield-trap penalty
                 - 30 * [debt_to_equity > 2.0])   # leverage penalty

Flags
-----
leverage_flag:     debt_to_equity > 2.0
yield_trap_flag:   payout_ratio   > 0.8
dividend_cut_flag: passed through from ingestion; never inferred here.

Missing numeric fields are treated as 0 before scoring, so the function is
total: every record yields metrics, nothing null-propagates into arithmetic.

Compliance
----------
``check_compliance()`` compares a snapshot entry against the *caller's*
payout and leverage ceilings (which may be stricter than the scoring policy)
and returns the issues to attach to a recommendation packet.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from dividend_advisor.models.market import FundamentalRecord, QualityMetrics, SnapshotEntry
from dividend_advisor.models.portfolio import Constraints
from dividend_advisor.models.recommendation import ComplianceIssue
from dividend_advisor.taxonomy.pipeline_taxonomy import ComplianceIssueType


@dataclass(frozen=True)
class QualityPolicy:
    """Thresholds and penalties for the quality score.

    Attributes:
        payout_threshold:   Payout ratio above which the yield-trap penalty applies.
        payout_penalty:     Points deducted for a high payout ratio.
        leverage_threshold: Debt-to-equity above which the leverage penalty applies.
        leverage_penalty:   Points deducted for high leverage.
        max_score:          Score of a record with no penalties.
    """

    payout_threshold:   float = 0.8
    payout_penalty:     int = 40
    leverage_threshold: float = 2.0
    leverage_penalty:   int = 30
    max_score:          int = 100


DEFAULT_QUALITY_POLICY = QualityPolicy()


def quality_score(
    payout_ratio: Optional[float],
    debt_to_equity: Optional[float],
    policy: QualityPolicy = DEFAULT_QUALITY_POLICY,
) -> int:
    """Return the 0–100 quality score for a payout ratio and leverage pair."""
    payout = payout_ratio or 0.0
    leverage = debt_to_equity or 0.0

    score = policy.max_score
    if payout > policy.payout_threshold:
        score -= policy.payout_penalty
    if leverage > policy.leverage_threshold:
        score -= policy.leverage_penalty
    return max(0, min(policy.max_score, score))


def compute_quality_metrics(
    record: FundamentalRecord,
    policy: QualityPolicy = DEFAULT_QUALITY_POLICY,
) -> QualityMetrics:
    """Derive ``QualityMetrics`` from the latest fundamentals of one ticker.

    Args:
        record: Latest ``FundamentalRecord`` for the ticker.
        policy: Scoring thresholds; defaults to the standard policy.

    Returns:
        Fresh ``QualityMetrics``; identical input always yields identical output.
    """
    payout = record.payout_ratio or 0.0
    leverage = record.debt_to_equity or 0.0

    return QualityMetrics(
        ticker=record.ticker,
        quality_score=quality_score(payout, leverage, policy),
        leverage_flag=leverage > policy.leverage_threshold,
        yield_trap_flag=payout > policy.payout_threshold,
        dividend_cut_flag=record.dividend_cut_flag,
    )


def check_compliance(entry: SnapshotEntry, constraints: Constraints) -> list[ComplianceIssue]:
    """Return compliance issues for one snapshot entry under the caller's ceilings.

    Order is fixed: MISSING_DATA alone when there are no fundamentals,
    otherwise LEVERAGE, YIELD_TRAP, DIVIDEND_CUT as applicable.
    """
    if entry.quality is None:
        return [
            ComplianceIssue(
                ticker=entry.ticker,
                type=ComplianceIssueType.MISSING_DATA,
                message="No fundamentals on record",
            )
        ]

    issues: list[ComplianceIssue] = []
    leverage = entry.debt_to_equity or 0.0
    payout = entry.payout_ratio or 0.0

    if leverage > constraints.leverage_ceiling:
        issues.append(
            ComplianceIssue(
                ticker=entry.ticker,
                type=ComplianceIssueType.LEVERAGE,
                message=f"High leverage: debt/equity {leverage:.2f} > {constraints.leverage_ceiling:.2f}",
            )
        )
    if payout > constraints.payout_ceiling:
        issues.append(
            ComplianceIssue(
                ticker=entry.ticker,
                type=ComplianceIssueType.YIELD_TRAP,
                message=f"High payout ratio: {payout:.0%} > {constraints.payout_ceiling:.0%}",
            )
        )
    if entry.quality.dividend_cut_flag:
        issues.append(
            ComplianceIssue(
                ticker=entry.ticker,
                type=ComplianceIssueType.DIVIDEND_CUT,
                message="Recent dividend cut detected",
            )
        )
    return issues
