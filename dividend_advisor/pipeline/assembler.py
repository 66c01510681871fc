"""
Recommendation Assembler — turns a validated output or a classified failure
into a terminal ``Recommendation``, and builds the run's audit event.

Success: status COMPLETED, packet stamped with the caller's ``as_of_date``
and benchmark, metrics from the snapshot, compliance issues per position.

Failure: status FAILED, ``error_detail`` is the user-safe
``PipelineError.user_message``; packet and explanation stay empty.  A
rule-based ``FallbackAdvice`` (top-N by quality score, dividend-cut tickers
excluded) is attached only when the caller selected
``FallbackMode.TOP_QUALITY`` — it is never substituted into
``explanation``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional

from dividend_advisor.errors import PipelineError
from dividend_advisor.models.market import MarketSnapshot
from dividend_advisor.models.portfolio import Constraints
from dividend_advisor.models.recommendation import (
    STANDARD_DISCLAIMERS,
    AuditEvent,
    ComplianceIssue,
    Explanation,
    FallbackAdvice,
    RankedTicker,
    Recommendation,
    RecommendationPacket,
)
from dividend_advisor.reasoning.validator import ValidatedOutput
from dividend_advisor.scoring.portfolio import compute_packet_metrics
from dividend_advisor.scoring.quality import check_compliance
from dividend_advisor.taxonomy.pipeline_taxonomy import (
    AuditAction,
    FallbackMode,
    RecommendationStatus,
)

logger = logging.getLogger(__name__)


def assemble_success(
    output: ValidatedOutput,
    *,
    owner: str,
    correlation_id: str,
    as_of_date: date,
    constraints: Constraints,
    snapshot: MarketSnapshot,
) -> Recommendation:
    """Build the COMPLETED recommendation for an accepted model output."""
    compliance: list[ComplianceIssue] = []
    for position in output.positions:
        entry = snapshot.get(position.ticker)
        if entry is not None:
            compliance.extend(check_compliance(entry, constraints))

    packet = RecommendationPacket(
        as_of_date=as_of_date,
        benchmark_ticker=constraints.benchmark_ticker,
        target_portfolio=output.positions,
        metrics=compute_packet_metrics(output.positions, snapshot),
        compliance=tuple(compliance),
    )
    return Recommendation(
        owner=owner,
        status=RecommendationStatus.COMPLETED,
        packet=packet,
        explanation=output.explanation,
        correlation_id=correlation_id,
    )


def assemble_failure(
    error: PipelineError,
    *,
    owner: str,
    correlation_id: str,
    fallback_mode: FallbackMode = FallbackMode.NONE,
    snapshot: Optional[MarketSnapshot] = None,
    top_n: int = 10,
) -> Recommendation:
    """Build the FAILED recommendation for a classified pipeline failure.

    Args:
        error:          The stage failure.
        owner:          Requesting user.
        correlation_id: Caller-supplied run id.
        fallback_mode:  ``TOP_QUALITY`` attaches rule-based advice.
        snapshot:       Snapshot to rank from; no fallback without one.
        top_n:          Maximum number of ranked tickers in the fallback.
    """
    fallback: Optional[FallbackAdvice] = None
    if fallback_mode == FallbackMode.TOP_QUALITY and snapshot is not None:
        fallback = build_fallback_advice(snapshot, top_n)
        if fallback is None:
            logger.info("Fallback requested but no scored tickers are eligible")

    return Recommendation(
        owner=owner,
        status=RecommendationStatus.FAILED,
        error_kind=error.kind,
        error_detail=error.user_message,
        correlation_id=correlation_id,
        fallback=fallback,
    )


def build_fallback_advice(snapshot: MarketSnapshot, top_n: int) -> Optional[FallbackAdvice]:
    """Rank scored tickers by quality (ties by ticker), skipping dividend cuts.

    Returns ``None`` when no ticker qualifies.
    """
    eligible = [
        e for e in snapshot.entries
        if e.quality is not None and not e.quality.dividend_cut_flag
    ]
    eligible.sort(key=lambda e: (-e.quality.quality_score, e.ticker))
    ranked = tuple(
        RankedTicker(ticker=e.ticker, quality_score=e.quality.quality_score)
        for e in eligible[:top_n]
    )
    if not ranked:
        return None

    listing = ", ".join(f"{r.ticker} ({r.quality_score})" for r in ranked)
    explanation = Explanation(
        summary=(
            "AI optimization was unavailable. Showing tickers ranked by computed "
            "quality score only; this is not a rebalancing proposal."
        ),
        bullets=(f"Highest quality scores: {listing}",),
        risks_to_watch=("Ranking ignores valuation, diversification, and current weights",),
        disclaimers=STANDARD_DISCLAIMERS,
    )
    return FallbackAdvice(explanation=explanation, ranked=ranked)


def build_audit_event(
    recommendation: Optional[Recommendation],
    *,
    action: AuditAction,
    correlation_id: str,
    owner: str,
    occurred_at: datetime,
    error: Optional[PipelineError] = None,
    warnings: tuple[str, ...] = (),
    persisted: bool = True,
    stage: Optional[str] = None,
) -> AuditEvent:
    """Build the single audit event for one pipeline invocation."""
    details: dict[str, Any] = {"owner": owner, "persisted": persisted}
    if stage is not None:
        details["stage"] = stage
    if recommendation is not None:
        details["status"] = recommendation.status.value
        if recommendation.id is not None:
            details["recommendationId"] = recommendation.id
        if recommendation.packet is not None:
            details["tickers"] = list(recommendation.packet.tickers)
        if recommendation.fallback is not None:
            details["fallback"] = True
    if error is not None:
        details["errorKind"] = error.kind.value
        if error.reason is not None:
            details["reason"] = error.reason.value
        if error.detail:
            details["detail"] = error.detail
    if warnings:
        details["warnings"] = list(warnings)

    return AuditEvent(
        action=action,
        correlation_id=correlation_id,
        details=details,
        occurred_at=occurred_at,
    )
