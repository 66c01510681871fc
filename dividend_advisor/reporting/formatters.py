"""
Plain-text formatters for CLI commands.

All formatters take domain models and return multi-line strings suitable
for ``typer.echo()``.  No third-party dependencies.
"""

from __future__ import annotations

from collections.abc import Sequence

from dividend_advisor.ingestion.alpha_vantage_client import ProviderHealth
from dividend_advisor.models.portfolio import Holding, HoldingsSummary
from dividend_advisor.models.recommendation import Explanation, Recommendation
from dividend_advisor.taxonomy.pipeline_taxonomy import RecommendationStatus


# ── Recommendation ────────────────────────────────────────────────────────────


def format_recommendation(rec: Recommendation) -> str:
    """Render a terminal recommendation: packet + explanation, or the failure.

    Example (COMPLETED)::

        === Recommendation 12 [COMPLETED] ===
          Owner:          alice
          As of:          2024-06-03   Benchmark: VIG
          Ticker    Weight  Rationale
          -----------------------------------------
          MSFT      100.0%  Durable dividend growth
          Yield: 0.80%   Beta: 0.90
    """
    lines: list[str] = []
    rec_id = rec.id if rec.id is not None else "(unsaved)"
    lines.append("")
    lines.append(f"=== Recommendation {rec_id} [{rec.status.value}] ===")
    lines.append(f"  Owner:          {rec.owner}")
    lines.append(f"  Correlation id: {rec.correlation_id}")

    if rec.status == RecommendationStatus.COMPLETED and rec.packet is not None:
        packet = rec.packet
        lines.append(
            f"  As of:          {packet.as_of_date.isoformat()}   "
            f"Benchmark: {packet.benchmark_ticker}"
        )
        lines.append("")
        lines.append(f"  {'Ticker':<8}  {'Weight':>6}  Rationale")
        lines.append("  " + "-" * 60)
        for pos in packet.target_portfolio:
            lines.append(f"  {pos.ticker:<8}  {pos.weight:>6.1%}  {pos.rationale}")
        lines.append("")
        lines.append(
            f"  Yield: {packet.metrics.portfolio_yield:.2%}   "
            f"Beta: {packet.metrics.beta:.2f}"
        )
        if packet.compliance:
            lines.append("")
            lines.append("  Compliance:")
            for issue in packet.compliance:
                lines.append(f"    [{issue.type.value}] {issue.ticker}: {issue.message}")
        if rec.explanation is not None:
            lines.extend(_format_explanation(rec.explanation))
        return "\n".join(lines)

    kind = rec.error_kind.value if rec.error_kind is not None else "unknown"
    lines.append(f"  Error kind:     {kind}")
    lines.append(f"  Detail:         {rec.error_detail or '-'}")
    if rec.fallback is not None:
        lines.append("")
        lines.append("  Fallback (quality ranking, not an AI proposal):")
        for i, ranked in enumerate(rec.fallback.ranked, start=1):
            lines.append(f"    {i:>3}. {ranked.ticker:<6} score={ranked.quality_score}")
        lines.extend(_format_explanation(rec.fallback.explanation))
    return "\n".join(lines)


def _format_explanation(explanation: Explanation) -> list[str]:
    lines = ["", f"  {explanation.summary}"]
    for bullet in explanation.bullets:
        lines.append(f"    - {bullet}")
    if explanation.risks_to_watch:
        lines.append("  Risks to watch:")
        lines.extend(f"    - {r}" for r in explanation.risks_to_watch)
    if explanation.what_would_change_this:
        lines.append("  What would change this:")
        lines.extend(f"    - {w}" for w in explanation.what_would_change_this)
    if explanation.disclaimers:
        lines.append("")
        lines.extend(f"  * {d}" for d in explanation.disclaimers)
    return lines


def format_recommendation_list(recs: Sequence[Recommendation]) -> str:
    """One line per recommendation, newest first as given."""
    if not recs:
        return "  (no recommendations yet — run 'recommend' first)"
    lines = [f"  {'Id':>6}  {'Status':<10}  {'Tickers / error':<40}  Correlation id"]
    lines.append("  " + "-" * 80)
    for rec in recs:
        if rec.packet is not None:
            what = ", ".join(rec.packet.tickers)
        else:
            what = rec.error_kind.value if rec.error_kind is not None else "-"
        lines.append(
            f"  {rec.id or '-':>6}  {rec.status.value:<10}  {what[:40]:<40}  {rec.correlation_id}"
        )
    return "\n".join(lines)


# ── Holdings ──────────────────────────────────────────────────────────────────


def format_holdings_table(holdings: Sequence[Holding]) -> str:
    if not holdings:
        return "  (no holdings — add one with 'add-holding')"
    lines = [
        f"  {'Id':>5}  {'Ticker':<6}  {'Shares':>12}  {'Cost/share':>11}  Purchased"
    ]
    lines.append("  " + "-" * 54)
    for h in holdings:
        purchased = h.purchase_date.isoformat() if h.purchase_date else "-"
        lines.append(
            f"  {h.holding_id or 0:>5}  {h.ticker:<6}  {h.shares:>12.4f}  "
            f"{h.cost_basis:>11.2f}  {purchased}"
        )
    return "\n".join(lines)


def format_holdings_summary(owner: str, summary: HoldingsSummary) -> str:
    return "\n".join(
        [
            "",
            f"=== Portfolio summary: {owner} ===",
            f"  Tickers:         {', '.join(summary.tickers) or '-'}",
            f"  Total invested:  {summary.total_invested:,.2f}",
            f"  Market value:    {summary.market_value:,.2f}",
            f"  Annual income:   {summary.annual_income:,.2f}",
            f"  ROI:             {summary.roi_pct:+.2f}%",
        ]
    )


# ── Provider ──────────────────────────────────────────────────────────────────


def format_provider_health(health: ProviderHealth) -> str:
    line = f"  [{health.status.value}] Alpha Vantage ({health.latency_ms} ms): {health.message}"
    if health.data:
        detail = "  ".join(f"{k}={v}" for k, v in sorted(health.data.items()))
        line += f"\n    {detail}"
    return line
