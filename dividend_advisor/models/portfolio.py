"""
User-owned portfolio models: holdings, advisory constraints, and the
holdings summary shown alongside a recommendation.

``Holding`` is created, edited, and deleted only by its owner; the pipeline
reads holdings but never mutates them.

``Constraints`` is the caller input validated at the pipeline boundary —
any ``ValidationError`` raised here maps to ``ErrorKind.InvalidConstraints``.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from dividend_advisor.models.market import normalize_ticker

MAX_HOLDINGS_CEILING = 100


class Holding(BaseModel):
    """A position entered manually by its owner.

    Attributes:
        holding_id: Auto-assigned DB PK; ``None`` before insertion.
        owner: Owning user identifier.
        ticker: Canonical ticker (input is stripped and upper-cased).
        shares: Share count; fractional shares allowed.
        cost_basis: Cost per share.
        purchase_date: Optional purchase date.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    holding_id: Optional[int] = None
    owner: str
    ticker: str
    shares: float
    cost_basis: float = 0.0
    purchase_date: Optional[date] = None

    @field_validator("owner")
    @classmethod
    def validate_owner(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("owner must be non-empty.")
        return v

    @field_validator("ticker", mode="before")
    @classmethod
    def validate_ticker(cls, v: str) -> str:
        return normalize_ticker(v)

    @field_validator("shares")
    @classmethod
    def validate_shares(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("shares must be > 0.")
        return v

    @field_validator("cost_basis")
    @classmethod
    def validate_cost_basis(cls, v: float) -> float:
        if v < 0:
            raise ValueError("cost_basis must be >= 0.")
        return v


class Constraints(BaseModel):
    """Numeric advisory constraints supplied by the caller.

    ``max_holdings`` must be a genuine integer (no coercion from floats or
    strings) between 1 and ``MAX_HOLDINGS_CEILING``.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    max_holdings: int = Field(strict=True)
    payout_ceiling: float
    leverage_ceiling: float
    benchmark_ticker: str
    target_yield: Optional[float] = None
    watchlist: tuple[str, ...] = ()

    @field_validator("max_holdings")
    @classmethod
    def validate_max_holdings(cls, v: int) -> int:
        if not 1 <= v <= MAX_HOLDINGS_CEILING:
            raise ValueError(
                f"maxHoldings must be a positive integer <= {MAX_HOLDINGS_CEILING}, got {v}."
            )
        return v

    @field_validator("payout_ceiling")
    @classmethod
    def validate_payout_ceiling(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError(f"payoutCeiling must be in (0, 1], got {v}.")
        return v

    @field_validator("leverage_ceiling")
    @classmethod
    def validate_leverage_ceiling(cls, v: float) -> float:
        if not v > 0.0:
            raise ValueError(f"leverageCeiling must be > 0, got {v}.")
        return v

    @field_validator("target_yield")
    @classmethod
    def validate_target_yield(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not 0.0 < v < 1.0:
            raise ValueError(f"targetYield must be in (0, 1), got {v}.")
        return v

    @field_validator("benchmark_ticker", mode="before")
    @classmethod
    def validate_benchmark(cls, v: str) -> str:
        return normalize_ticker(v)

    @field_validator("watchlist", mode="before")
    @classmethod
    def validate_watchlist(cls, v) -> tuple[str, ...]:
        if isinstance(v, str):
            raise ValueError("watchlist must be a list of tickers.")
        return tuple(normalize_ticker(t) for t in v)


class HoldingsSummary(BaseModel):
    """Aggregate value and income of a user's current holdings.

    Attributes:
        total_invested: Sum of shares × cost basis.
        market_value: Sum of shares × latest price (cost basis when no price).
        annual_income: Sum of market value × dividend yield.
        roi_pct: (market_value − total_invested) / total_invested × 100.
        tickers: Distinct tickers held, sorted.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    total_invested: float
    market_value: float
    annual_income: float
    roi_pct: float
    tickers: tuple[str, ...] = ()
