"""
Portfolio-level arithmetic over holdings and the market snapshot.

``summarize_holdings()``      — invested capital, market value, income, ROI.
``compute_packet_metrics()``  — weight-averaged yield and beta of a target
                                 portfolio, stored in ``RecommendationPacket.metrics``.

Unknown inputs degrade rather than fail:
  - no price        → market value falls back to cost basis;
  - no yield        → contributes 0 income / 0 yield;
  - no beta         → treated as market beta 1.0.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from dividend_advisor.models.market import MarketSnapshot
from dividend_advisor.models.portfolio import Holding, HoldingsSummary
from dividend_advisor.models.recommendation import PacketMetrics, PortfolioPosition

MARKET_BETA = 1.0


def summarize_holdings(holdings: Iterable[Holding], snapshot: MarketSnapshot) -> HoldingsSummary:
    """Aggregate cost, value, and dividend income across holdings."""
    invested = 0.0
    value = 0.0
    income = 0.0
    tickers: set[str] = set()

    for holding in holdings:
        tickers.add(holding.ticker)
        cost = holding.shares * holding.cost_basis
        invested += cost

        entry = snapshot.get(holding.ticker)
        price = entry.price if entry is not None and entry.price is not None else holding.cost_basis
        position_value = holding.shares * price
        value += position_value

        if entry is not None and entry.dividend_yield:
            income += position_value * entry.dividend_yield

    roi_pct = (value - invested) / invested * 100 if invested > 0 else 0.0
    return HoldingsSummary(
        total_invested=round(invested, 2),
        market_value=round(value, 2),
        annual_income=round(income, 2),
        roi_pct=round(roi_pct, 2),
        tickers=tuple(sorted(tickers)),
    )


def compute_packet_metrics(
    positions: Sequence[PortfolioPosition],
    snapshot: MarketSnapshot,
) -> PacketMetrics:
    """Weight-average dividend yield and beta over the target portfolio."""
    portfolio_yield = 0.0
    beta = 0.0
    for position in positions:
        entry = snapshot.get(position.ticker)
        position_yield = entry.dividend_yield if entry is not None and entry.dividend_yield else 0.0
        position_beta = (
            entry.beta if entry is not None and entry.beta is not None else MARKET_BETA
        )
        portfolio_yield += position.weight * position_yield
        beta += position.weight * position_beta

    return PacketMetrics(portfolio_yield=round(portfolio_yield, 6), beta=round(beta, 4))
