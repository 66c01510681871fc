"""
Output Validator — treats extracted model JSON as untrusted input.

State machine
-------------
    Extracted → SchemaChecked → UniverseChecked → NumericChecked → Accepted
        └──────────────┴──────────────┴──────────────┴──→ Rejected(reason)

Each gate is fail-closed: the first failure returns ``Rejected`` with a
specific ``RejectionReason`` and nothing is repaired.

  1. Schema    — strict pydantic wire models; no type coercion, non-finite
                 numbers and duplicate tickers rejected, 1 ≤ positions ≤
                 ``max_holdings``.                      → ``SchemaViolation``
  2. Universe  — every position ticker is in the universe, compared
                 verbatim.                              → ``UnknownTicker``
                 Prose tokens outside universe ∪ allowlist become warnings
                 (rejected only when ``strict_prose`` is set).
  3. Numeric   — 0 ≤ weight ≤ 1 and |Σw − 1| ≤ tolerance.  Weights are never
                 rescaled.                              → ``WeightsUnnormalized``

``Accepted`` wraps an immutable ``ValidatedOutput``; ``Rejected.to_error()``
maps to ``ErrorKind.InvalidModelOutput(reason)``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from dividend_advisor.errors import PipelineError
from dividend_advisor.models.recommendation import Explanation, PortfolioPosition
from dividend_advisor.reasoning.hallucination import (
    DEFAULT_KNOWN_ACRONYMS,
    find_unknown_ticker_mentions,
)
from dividend_advisor.taxonomy.pipeline_taxonomy import (
    ErrorKind,
    RejectionReason,
    ValidationState,
)

logger = logging.getLogger(__name__)

_REJECTION_MESSAGES: dict[RejectionReason, str] = {
    RejectionReason.SCHEMA_VIOLATION: "model output did not match the required schema",
    RejectionReason.UNKNOWN_TICKER: "model proposed a ticker outside the supplied universe",
    RejectionReason.WEIGHTS_UNNORMALIZED: "portfolio weights do not sum to 1",
}


# ── Wire models (strict, never exposed outside this module) ───────────────────


class _WireModel(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True, extra="ignore")


class _WirePosition(_WireModel):
    ticker: str
    weight: float
    rationale: str = Field(validation_alias=AliasChoices("rationale", "reason"))

    @field_validator("weight")
    @classmethod
    def validate_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("weight must be a finite number")
        return v


class _WireExplanation(_WireModel):
    summary: str
    bullets: list[str] = Field(min_length=1)
    risks_to_watch: list[str] = Field(validation_alias="risksToWatch")
    what_would_change_this: list[str] = Field(
        default_factory=list, validation_alias="whatWouldChangeThis"
    )
    disclaimers: list[str] = Field(default_factory=list)


class _WireOutput(_WireModel):
    target_portfolio: list[_WirePosition] = Field(
        validation_alias="targetPortfolio", min_length=1
    )
    explanation: _WireExplanation


# ── Results ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ValidatedOutput:
    """Model output that passed every gate; never mutated downstream."""

    positions: tuple[PortfolioPosition, ...]
    explanation: Explanation
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class Accepted:
    output: ValidatedOutput
    state: ValidationState = ValidationState.ACCEPTED

    @property
    def is_accepted(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    """Terminal rejection.

    Attributes:
        reason: Which gate failed.
        detail: Internal diagnostics (field paths, offending tickers).
        state:  Last state reached before rejection.
    """

    reason: RejectionReason
    detail: str
    state: ValidationState

    @property
    def is_accepted(self) -> bool:
        return False

    def to_error(self) -> PipelineError:
        return PipelineError(
            ErrorKind.INVALID_MODEL_OUTPUT,
            _REJECTION_MESSAGES[self.reason],
            reason=self.reason,
            detail=self.detail,
        )


ValidationResult = Union[Accepted, Rejected]


# ── Validator ─────────────────────────────────────────────────────────────────


class OutputValidator:
    """Validates one extracted model payload against a fixed universe.

    Args:
        universe:          Tickers offered to the model.
        max_holdings:      Upper bound on ``targetPortfolio`` length.
        weight_tolerance:  ε for the weight-sum check.
        summary_min_chars: Minimum stripped length of ``explanation.summary``.
        prose_allowlist:   Acronyms the prose guard ignores.
        strict_prose:      Reject (``UnknownTicker``) on prose hits.
    """

    def __init__(
        self,
        universe: Iterable[str],
        max_holdings: int,
        *,
        weight_tolerance: float = 1e-3,
        summary_min_chars: int = 1,
        prose_allowlist: Iterable[str] = DEFAULT_KNOWN_ACRONYMS,
        strict_prose: bool = False,
    ) -> None:
        self.universe = frozenset(universe)
        self.max_holdings = max_holdings
        self.weight_tolerance = weight_tolerance
        self.summary_min_chars = summary_min_chars
        self.prose_allowlist = frozenset(prose_allowlist)
        self.strict_prose = strict_prose

    def validate(self, data: Any) -> ValidationResult:
        """Run every gate in order; return ``Accepted`` or the first ``Rejected``."""
        state = ValidationState.EXTRACTED

        # 1. Schema
        try:
            wire = _WireOutput.model_validate(data)
        except ValidationError as exc:
            return self._reject(RejectionReason.SCHEMA_VIOLATION, _summarize_errors(exc), state)

        if len(wire.target_portfolio) > self.max_holdings:
            return self._reject(
                RejectionReason.SCHEMA_VIOLATION,
                f"targetPortfolio has {len(wire.target_portfolio)} entries "
                f"> maxHoldings {self.max_holdings}",
                state,
            )
        tickers = [p.ticker for p in wire.target_portfolio]
        duplicates = sorted({t for t in tickers if tickers.count(t) > 1})
        if duplicates:
            return self._reject(
                RejectionReason.SCHEMA_VIOLATION,
                f"duplicate tickers: {', '.join(duplicates)}",
                state,
            )
        if len(wire.explanation.summary.strip()) < max(1, self.summary_min_chars):
            return self._reject(
                RejectionReason.SCHEMA_VIOLATION,
                f"explanation.summary shorter than {self.summary_min_chars} char(s)",
                state,
            )
        state = ValidationState.SCHEMA_CHECKED

        # 2. Universe (Hallucination Guard)
        unknown = [t for t in tickers if t not in self.universe]
        if unknown:
            return self._reject(
                RejectionReason.UNKNOWN_TICKER,
                f"tickers outside universe: {', '.join(unknown)}",
                state,
            )

        explanation = Explanation(
            summary=wire.explanation.summary,
            bullets=tuple(wire.explanation.bullets),
            risks_to_watch=tuple(wire.explanation.risks_to_watch),
            what_would_change_this=tuple(wire.explanation.what_would_change_this),
            disclaimers=tuple(wire.explanation.disclaimers),
        )
        prose_texts = [*explanation.text_blocks(), *(p.rationale for p in wire.target_portfolio)]
        mentions = find_unknown_ticker_mentions(prose_texts, self.universe, self.prose_allowlist)
        warnings: tuple[str, ...] = ()
        if mentions:
            logger.warning("Explanation mentions ticker-like tokens outside universe: %s", mentions)
            if self.strict_prose:
                return self._reject(
                    RejectionReason.UNKNOWN_TICKER,
                    f"explanation mentions tokens outside universe: {', '.join(mentions)}",
                    state,
                )
            warnings = tuple(f"unknown ticker-like token in explanation: {m}" for m in mentions)
        state = ValidationState.UNIVERSE_CHECKED

        # 3. Numeric
        out_of_range = [
            f"{p.ticker}={p.weight}" for p in wire.target_portfolio if not 0.0 <= p.weight <= 1.0
        ]
        if out_of_range:
            return self._reject(
                RejectionReason.WEIGHTS_UNNORMALIZED,
                f"weights outside [0, 1]: {', '.join(out_of_range)}",
                state,
            )
        total = math.fsum(p.weight for p in wire.target_portfolio)
        if abs(total - 1.0) > self.weight_tolerance:
            return self._reject(
                RejectionReason.WEIGHTS_UNNORMALIZED,
                f"weights sum to {total:.6f}, tolerance {self.weight_tolerance}",
                state,
            )
        state = ValidationState.NUMERIC_CHECKED

        positions = tuple(
            PortfolioPosition(ticker=p.ticker, weight=p.weight, rationale=p.rationale)
            for p in wire.target_portfolio
        )
        logger.info(
            "Model output accepted: %d position(s), %d warning(s)", len(positions), len(warnings)
        )
        return Accepted(
            output=ValidatedOutput(positions=positions, explanation=explanation, warnings=warnings)
        )

    def _reject(
        self, reason: RejectionReason, detail: str, state: ValidationState
    ) -> Rejected:
        logger.warning("Model output rejected at %s: %s (%s)", state.value, reason.value, detail)
        return Rejected(reason=reason, detail=detail, state=state)


def _summarize_errors(exc: ValidationError, limit: int = 5) -> str:
    """Field paths and messages only; input values are left out."""
    parts = []
    for err in exc.errors()[:limit]:
        loc = ".".join(str(p) for p in err["loc"]) or "<root>"
        parts.append(f"{loc}: {err['msg']}")
    extra = exc.error_count() - limit
    if extra > 0:
        parts.append(f"... and {extra} more")
    return "; ".join(parts)
