"""
Market data models — fundamentals, derived quality metrics, and the snapshot
handed to the reasoning step.

  1. ``FundamentalRecord`` — as produced by ingestion; immutable, superseded
                             (never overwritten) by a newer ``as_of_date``.
  2. ``QualityMetrics``    — derived fresh from the latest record; not
                             persisted on its own.
  3. ``SnapshotEntry`` / ``MarketSnapshot`` — per-ticker context for one
                             pipeline run.

All models are frozen.  JSON field names are camelCase (``asOfDate``,
``qualityScore`` ...) via the alias generator; construct with either form.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TICKER_PATTERN = re.compile(r"^[A-Z]{1,5}$")


def normalize_ticker(value: str) -> str:
    """Strip and upper-case a user-entered ticker, then validate its shape.

    Raises:
        ValueError: If the result is not 1–5 uppercase letters.
    """
    if not isinstance(value, str):
        raise ValueError(f"Ticker must be a string, got {type(value).__name__}.")
    ticker = value.strip().upper()
    if not TICKER_PATTERN.match(ticker):
        raise ValueError(f"Invalid ticker '{value}': expected 1-5 letters A-Z.")
    return ticker


class _CamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class FundamentalRecord(_CamelModel):
    """Fundamentals for one ticker as of one date.

    Numeric fields are ``None`` when the provider omitted them; the quality
    scorer treats ``None`` as 0.

    Attributes:
        ticker: Canonical ticker.
        as_of_date: Date the fundamentals describe (latest quarter).
        payout_ratio: Dividends / earnings as a fraction (0.45 == 45%).
        debt_to_equity: Total debt / shareholder equity.
        dividend_yield: Forward dividend yield as a fraction.
        beta: Market beta; may be negative, ``None`` if unknown.
        dividend_cut_flag: Set by the ingestion-side cut detector.
        raw_payload: Opaque provider payload kept for re-processing.
    """

    ticker: str
    as_of_date: date
    payout_ratio: Optional[float] = None
    debt_to_equity: Optional[float] = None
    dividend_yield: Optional[float] = None
    beta: Optional[float] = None
    dividend_cut_flag: bool = False
    raw_payload: Optional[str] = None

    @field_validator("ticker", mode="before")
    @classmethod
    def validate_ticker(cls, v: str) -> str:
        return normalize_ticker(v)

    @field_validator("payout_ratio", "debt_to_equity", "dividend_yield")
    @classmethod
    def validate_non_negative(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("Fundamental ratios must be non-negative.")
        return v


class QualityMetrics(_CamelModel):
    """Safety/quality signals derived from a ``FundamentalRecord``."""

    ticker: str
    quality_score: int = Field(ge=0, le=100)
    leverage_flag: bool
    yield_trap_flag: bool
    dividend_cut_flag: bool


class SnapshotEntry(_CamelModel):
    """One ticker's row in the market snapshot.

    ``quality`` is ``None`` when no fundamentals exist; the entry is still
    present so the reasoning step sees the data gap.
    """

    ticker: str
    price: Optional[float] = None
    quality: Optional[QualityMetrics] = None
    dividend_yield: Optional[float] = None
    beta: Optional[float] = None
    payout_ratio: Optional[float] = None
    debt_to_equity: Optional[float] = None
    fundamentals_as_of: Optional[date] = None

    @property
    def has_fundamentals(self) -> bool:
        return self.quality is not None


class MarketSnapshot(_CamelModel):
    """Ordered per-ticker market context for a single pipeline run."""

    as_of_date: date
    entries: tuple[SnapshotEntry, ...] = ()

    @property
    def tickers(self) -> tuple[str, ...]:
        return tuple(e.ticker for e in self.entries)

    @property
    def universe(self) -> frozenset[str]:
        """Every ticker offered to the reasoning step."""
        return frozenset(self.tickers)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def get(self, ticker: str) -> Optional[SnapshotEntry]:
        for entry in self.entries:
            if entry.ticker == ticker:
                return entry
        return None


class PricePoint(_CamelModel):
    """Closing price for one ticker on one trading day."""

    ticker: str
    price_date: date
    close: float
    adjusted_close: Optional[float] = None
    volume: Optional[float] = None

    @field_validator("ticker", mode="before")
    @classmethod
    def validate_ticker(cls, v: str) -> str:
        return normalize_ticker(v)

    @field_validator("close")
    @classmethod
    def validate_close(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Close price must be non-negative.")
        return v


class DividendEvent(_CamelModel):
    """A single dividend payment keyed by ex-dividend date."""

    ticker: str
    ex_date: date
    amount: float
    payment_date: Optional[date] = None

    @field_validator("ticker", mode="before")
    @classmethod
    def validate_ticker(cls, v: str) -> str:
        return normalize_ticker(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Dividend amount must be non-negative.")
        return v
