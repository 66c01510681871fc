"""
Recommendation artifact models.

``RecommendationPacket`` + ``Explanation`` are the validated content of a
successful run.  ``Recommendation`` is the persisted entity wrapping them (or
an error) with ownership, status, and the correlation id.

All models are frozen — once the Output Validator accepts a packet it is
never mutated downstream, and terminal recommendations are never updated.
JSON names (``targetPortfolio``, ``risksToWatch``, ``errorDetail`` ...) are
the interoperability contract for persisted data.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from dividend_advisor.taxonomy.pipeline_taxonomy import (
    AuditAction,
    ComplianceIssueType,
    ErrorKind,
    RecommendationStatus,
)

STANDARD_DISCLAIMERS: tuple[str, ...] = (
    "Not financial advice",
    "No guarantee of outperformance",
    "Human approval required",
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class PortfolioPosition(_CamelModel):
    """One line of the target portfolio."""

    ticker: str
    weight: float = Field(ge=0.0, le=1.0)
    rationale: str


class PacketMetrics(_CamelModel):
    """Weight-averaged characteristics of the target portfolio."""

    portfolio_yield: float = Field(alias="yield")
    beta: float


class ComplianceIssue(_CamelModel):
    """A safety flag raised against one position."""

    ticker: str
    type: ComplianceIssueType
    message: str


class RecommendationPacket(_CamelModel):
    """The structured allocation proposal.

    Invariants (enforced by the Output Validator before construction):
      - weights sum to 1.0 within tolerance;
      - every ticker was part of the universe offered to the model.
    """

    as_of_date: date
    benchmark_ticker: str
    target_portfolio: tuple[PortfolioPosition, ...]
    metrics: PacketMetrics
    compliance: tuple[ComplianceIssue, ...] = ()

    @property
    def tickers(self) -> tuple[str, ...]:
        return tuple(p.ticker for p in self.target_portfolio)


class Explanation(_CamelModel):
    """Human-readable reasoning that always accompanies a packet."""

    summary: str
    bullets: tuple[str, ...]
    risks_to_watch: tuple[str, ...] = ()
    what_would_change_this: tuple[str, ...] = ()
    disclaimers: tuple[str, ...] = ()

    @field_validator("summary")
    @classmethod
    def validate_summary(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("summary must be non-empty.")
        return v

    @field_validator("bullets")
    @classmethod
    def validate_bullets(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(v) < 1:
            raise ValueError("bullets must contain at least one entry.")
        return v

    def text_blocks(self) -> list[str]:
        """Every free-form string in the explanation, in field order."""
        return [
            self.summary,
            *self.bullets,
            *self.risks_to_watch,
            *self.what_would_change_this,
            *self.disclaimers,
        ]


class RankedTicker(_CamelModel):
    """A ticker ranked by its computed quality score."""

    ticker: str
    quality_score: int


class FallbackAdvice(_CamelModel):
    """Rule-based advice attached to a FAILED recommendation on request.

    Kept separate from ``Recommendation.explanation`` so a reader can always
    tell model reasoning from the mechanical fallback.
    """

    explanation: Explanation
    ranked: tuple[RankedTicker, ...] = ()


class Recommendation(_CamelModel):
    """Persisted outcome of one pipeline run.

    Attributes:
        id: Storage-assigned identifier; ``None`` until persisted.
        owner: Requesting user.
        status: PENDING, COMPLETED, or FAILED.
        packet: Validated packet (COMPLETED only).
        explanation: Validated explanation (COMPLETED only).
        error_kind: Failure kind (FAILED only).
        error_detail: User-safe failure message (FAILED only).
        correlation_id: Caller-supplied id threading audit and storage.
        fallback: Optional rule-based advice (FAILED only, caller opt-in).
    """

    id: Optional[str] = None
    owner: str
    status: RecommendationStatus
    packet: Optional[RecommendationPacket] = None
    explanation: Optional[Explanation] = None
    error_kind: Optional[ErrorKind] = None
    error_detail: Optional[str] = None
    correlation_id: str
    fallback: Optional[FallbackAdvice] = None

    @model_validator(mode="after")
    def validate_status_consistency(self) -> "Recommendation":
        if self.status == RecommendationStatus.COMPLETED:
            if self.packet is None or self.explanation is None:
                raise ValueError("COMPLETED recommendations require packet and explanation.")
            if self.error_detail is not None or self.fallback is not None:
                raise ValueError("COMPLETED recommendations carry no error or fallback.")
        elif self.status == RecommendationStatus.FAILED:
            if self.packet is not None or self.explanation is not None:
                raise ValueError("FAILED recommendations must not carry packet or explanation.")
            if not self.error_detail:
                raise ValueError("FAILED recommendations require error_detail.")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status != RecommendationStatus.PENDING


class AuditEvent(_CamelModel):
    """One audit log entry; exactly one is emitted per pipeline invocation."""

    action: AuditAction
    correlation_id: str
    details: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime
