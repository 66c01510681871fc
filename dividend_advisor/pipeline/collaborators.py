"""
External collaborator contracts consumed by the pipeline core.

The core never constructs clients itself: a ``Collaborators`` bundle is
built by the caller (``pipeline.orchestrator`` for the CLI, fakes in tests)
and passed to ``RecommendationPipeline``.  Nothing here depends on a
particular storage engine or model provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from dividend_advisor.models.market import FundamentalRecord
from dividend_advisor.models.portfolio import Holding
from dividend_advisor.models.recommendation import AuditEvent, Recommendation


@runtime_checkable
class HoldingsSource(Protocol):
    def fetch_holdings(self, owner: str) -> list[Holding]: ...


@runtime_checkable
class MarketDataSource(Protocol):
    def latest_fundamental(self, ticker: str) -> Optional[FundamentalRecord]: ...

    def latest_price(self, ticker: str) -> Optional[float]: ...


@runtime_checkable
class ReasoningModel(Protocol):
    """Invokes the generative model once and returns its raw text.

    Implementations raise on provider failure; the gateway maps any
    exception to ``ErrorKind.UpstreamUnavailable``.
    """

    def invoke(self, prompt_text: str, max_tokens: int) -> str: ...


@runtime_checkable
class RecommendationSink(Protocol):
    def persist(self, recommendation: Recommendation) -> str: ...


@runtime_checkable
class AuditSink(Protocol):
    def emit_audit(self, event: AuditEvent) -> None: ...


@dataclass(frozen=True)
class Collaborators:
    """Everything the pipeline needs from the outside world.

    A single object may fill several roles (``SqliteStore`` implements
    holdings, market data, persistence, and audit).
    """

    holdings: HoldingsSource
    market_data: MarketDataSource
    model: ReasoningModel
    store: RecommendationSink
    audit: AuditSink
