"""
Prompt Builder — serializes holdings, market snapshot, and constraints into a
single bounded reasoning request.

Determinism contract
--------------------
Identical inputs produce a byte-identical prompt:
  - fixed template text, no clock reads (``as_of_date`` is a parameter);
  - holdings sorted by (ticker, purchase date, shares, cost basis);
  - snapshot entries in snapshot order (already sorted by ticker);
  - every data block rendered with ``json.dumps(sort_keys=True)``.

The request also carries the **universe** — the set of snapshot tickers —
which the Output Validator later uses as the Hallucination Guard allowlist.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from dividend_advisor.models.market import MarketSnapshot, SnapshotEntry
from dividend_advisor.models.portfolio import Constraints, Holding, HoldingsSummary

OUTPUT_SCHEMA = """\
{
  "targetPortfolio": [
    {
      "ticker": "<string: one ticker from UNIVERSE, exactly as written>",
      "weight": <number between 0 and 1>,
      "rationale": "<string: why this position>"
    }
  ],
  "explanation": {
    "summary": "<string: non-empty>",
    "bullets": ["<string>", "... at least one entry"],
    "risksToWatch": ["<string>"],
    "whatWouldChangeThis": ["<string>"]
  }
}"""

_TEMPLATE = """\
You are a conservative dividend-portfolio assistant. Propose a rebalanced
target portfolio for the investor described below.

AS-OF DATE: {as_of_date}
BENCHMARK: {benchmark}

CONSTRAINTS:
{constraints}

CURRENT HOLDINGS:
{holdings}
{summary_block}
MARKET SNAPSHOT (qualityScore 0-100; null means no fundamentals on record):
{snapshot}

UNIVERSE (the only tickers you may use):
{universe}

RULES:
1. Use ONLY tickers listed in UNIVERSE, spelled exactly as listed.
2. Include between 1 and {max_holdings} positions, each ticker at most once.
3. Weights are fractions between 0 and 1 and MUST sum to 1.0.
4. Prefer tickers whose payout ratio is at or below {payout_ceiling} and whose
   debt-to-equity is at or below {leverage_ceiling}.
5. Treat tickers without fundamentals as higher risk and say so.
6. Respond with a single JSON object and nothing else: no prose, no markdown.

OUTPUT SCHEMA:
{schema}
"""


@dataclass(frozen=True)
class ReasoningRequest:
    """A serialized reasoning request plus the universe it offers.

    Attributes:
        prompt:     Full prompt text sent to the reasoning model.
        universe:   Every ticker present in the snapshot.
        as_of_date: Date embedded in the prompt.
    """

    prompt: str
    universe: frozenset[str]
    as_of_date: date

    @property
    def size(self) -> int:
        return len(self.prompt)


def build_reasoning_request(
    holdings: Sequence[Holding],
    snapshot: MarketSnapshot,
    constraints: Constraints,
    as_of_date: date,
    summary: Optional[HoldingsSummary] = None,
) -> ReasoningRequest:
    """Render the reasoning prompt for one pipeline run.

    Args:
        holdings:    The owner's current holdings (any order).
        snapshot:    Market snapshot; its tickers become the universe.
        constraints: Validated caller constraints.
        as_of_date:  Caller-supplied date; never read from the clock here.
        summary:     Optional holdings summary to include for context.

    Returns:
        ``ReasoningRequest`` with the prompt text and universe.
    """
    prompt = _TEMPLATE.format(
        as_of_date=as_of_date.isoformat(),
        benchmark=constraints.benchmark_ticker,
        constraints=_dumps(_constraints_block(constraints)),
        holdings=_dumps(_holdings_block(holdings)),
        summary_block=_summary_block(summary),
        snapshot=_dumps([_entry_block(e) for e in snapshot.entries]),
        universe=", ".join(snapshot.tickers) if not snapshot.is_empty else "(none)",
        max_holdings=constraints.max_holdings,
        payout_ceiling=constraints.payout_ceiling,
        leverage_ceiling=constraints.leverage_ceiling,
        schema=OUTPUT_SCHEMA,
    )
    return ReasoningRequest(prompt=prompt, universe=snapshot.universe, as_of_date=as_of_date)


# ── Block renderers ───────────────────────────────────────────────────────────


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, indent=2)


def _constraints_block(constraints: Constraints) -> dict[str, Any]:
    block: dict[str, Any] = {
        "maxHoldings": constraints.max_holdings,
        "payoutCeiling": constraints.payout_ceiling,
        "leverageCeiling": constraints.leverage_ceiling,
        "benchmarkTicker": constraints.benchmark_ticker,
    }
    if constraints.target_yield is not None:
        block["targetYield"] = constraints.target_yield
    return block


def _holdings_block(holdings: Sequence[Holding]) -> list[dict[str, Any]]:
    ordered = sorted(
        holdings,
        key=lambda h: (
            h.ticker,
            h.purchase_date.isoformat() if h.purchase_date else "",
            h.shares,
            h.cost_basis,
        ),
    )
    return [
        {
            "ticker": h.ticker,
            "shares": h.shares,
            "costBasis": h.cost_basis,
            "purchaseDate": h.purchase_date.isoformat() if h.purchase_date else None,
        }
        for h in ordered
    ]


def _summary_block(summary: Optional[HoldingsSummary]) -> str:
    if summary is None:
        return ""
    payload = {
        "totalInvested": summary.total_invested,
        "marketValue": summary.market_value,
        "annualIncome": summary.annual_income,
        "roiPct": summary.roi_pct,
    }
    return f"\nHOLDINGS SUMMARY:\n{_dumps(payload)}\n"


def _entry_block(entry: SnapshotEntry) -> dict[str, Any]:
    quality = entry.quality
    return {
        "ticker": entry.ticker,
        "price": entry.price,
        "dividendYield": entry.dividend_yield,
        "payoutRatio": entry.payout_ratio,
        "debtToEquity": entry.debt_to_equity,
        "beta": entry.beta,
        "qualityScore": quality.quality_score if quality else None,
        "leverageFlag": quality.leverage_flag if quality else None,
        "yieldTrapFlag": quality.yield_trap_flag if quality else None,
        "dividendCutFlag": quality.dividend_cut_flag if quality else None,
        "fundamentalsAsOf": (
            entry.fundamentals_as_of.isoformat() if entry.fundamentals_as_of else None
        ),
    }
