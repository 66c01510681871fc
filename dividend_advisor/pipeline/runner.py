"""
Recommendation pipeline runner.

Stages (each entered only if the run has not been cancelled)::

    open → holdings → snapshot → prompt → reasoning → validation → assembly
                                                                     ↓
                                        finish PENDING row (bounded retry) → audit

Contract
--------
  - Constraints are validated first.  Invalid input returns
    ``Err(InvalidConstraints)`` with no external call, no record, no audit.
  - ``open`` persists a PENDING ``Recommendation``; the terminal record
    carries its id, so the sink moves that row to COMPLETED or FAILED.
  - Every stage failure becomes a FAILED ``Recommendation``.  Exceptions
    that are not ``PipelineError`` are classified as ``UpstreamUnavailable``
    with the exception class in ``detail``; nothing escapes ``run()``.
  - Persistence is retried per ``PipelineSettings.persist_retry``; if it
    still fails the result is ``Err(PersistenceFailure)`` carrying the
    unpersisted record, and the stored row stays PENDING.
  - Exactly one audit event is emitted per run (success, failure, or
    cancellation).  An audit-write failure is logged and swallowed; it never
    changes the result.
  - Cancellation is observed between stages.  An in-flight model call
    completes and its result is discarded; the run returns ``Err(Cancelled)``.
    Cancelled before ``open``, nothing is persisted; afterwards the PENDING
    row is closed as FAILED with kind ``Cancelled``.

``RecommendationPipeline.run()`` returns a tagged ``PipelineResult``;
``run_recommendation_pipeline()`` is the plain entry point that returns the
persisted ``Recommendation`` and raises ``PipelineError`` for the outcomes
that have none.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Optional, Union

from pydantic import ValidationError

from dividend_advisor.errors import InvalidConstraintsError, PipelineError
from dividend_advisor.models.market import MarketSnapshot
from dividend_advisor.models.portfolio import Constraints, Holding
from dividend_advisor.models.recommendation import AuditEvent, Recommendation
from dividend_advisor.models.result import Err, Ok, PipelineResult
from dividend_advisor.pipeline.assembler import (
    assemble_failure,
    assemble_success,
    build_audit_event,
)
from dividend_advisor.pipeline.collaborators import Collaborators
from dividend_advisor.reasoning.gateway import ReasoningGateway
from dividend_advisor.reasoning.hallucination import DEFAULT_KNOWN_ACRONYMS
from dividend_advisor.reasoning.prompt import build_reasoning_request
from dividend_advisor.reasoning.validator import OutputValidator, Rejected
from dividend_advisor.scoring.portfolio import summarize_holdings
from dividend_advisor.scoring.quality import DEFAULT_QUALITY_POLICY, QualityPolicy
from dividend_advisor.snapshot.builder import build_market_snapshot
from dividend_advisor.taxonomy.pipeline_taxonomy import (
    AuditAction,
    ErrorKind,
    FallbackMode,
    RecommendationStatus,
)
from dividend_advisor.utils.retry import RetryPolicy, call_with_retry
from dividend_advisor.utils.time_utils import utcnow

if TYPE_CHECKING:
    from dividend_advisor.config import AppConfig

logger = logging.getLogger(__name__)


# ── Cancellation ──────────────────────────────────────────────────────────────


class CancellationToken:
    """Thread-safe cancel flag shared between a caller and a running pipeline."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class _RunCancelled(Exception):
    def __init__(self, stage: str) -> None:
        super().__init__(stage)
        self.stage = stage


# ── Settings ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PipelineSettings:
    """Every tunable the runner and its stages read.

    Build from config with ``PipelineSettings.from_config(app_config)``;
    the defaults match ``config/default.toml``.
    """

    lookup_timeout_seconds: float = 3.0
    lookup_retry: RetryPolicy = field(default_factory=RetryPolicy)
    max_workers: int = 4
    quality_policy: QualityPolicy = DEFAULT_QUALITY_POLICY
    max_prompt_chars: int = 24_000
    max_tokens: int = 1_500
    model_timeout_seconds: float = 45.0
    weight_tolerance: float = 1e-3
    summary_min_chars: int = 1
    strict_prose_guard: bool = False
    known_acronyms: frozenset[str] = DEFAULT_KNOWN_ACRONYMS
    persist_retry: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(max_attempts=3, base_delay_seconds=0.2)
    )
    fallback_mode: FallbackMode = FallbackMode.NONE
    fallback_top_n: int = 10
    log_snippet_chars: int = 500

    @classmethod
    def from_config(cls, config: "AppConfig") -> "PipelineSettings":
        md = config.market_data
        return cls(
            lookup_timeout_seconds=md.lookup_timeout_seconds,
            lookup_retry=md.retry.to_policy(),
            max_workers=md.max_workers,
            quality_policy=config.scoring.to_policy(),
            max_prompt_chars=config.reasoning.max_prompt_chars,
            max_tokens=config.reasoning.max_tokens,
            model_timeout_seconds=config.reasoning.timeout_seconds,
            weight_tolerance=config.validation.weight_tolerance,
            summary_min_chars=config.validation.summary_min_chars,
            strict_prose_guard=config.validation.strict_prose_guard,
            known_acronyms=frozenset(config.validation.known_acronyms),
            persist_retry=RetryPolicy(
                max_attempts=config.pipeline.persist_max_attempts,
                base_delay_seconds=md.retry.base_delay_seconds,
                backoff_factor=md.retry.backoff_factor,
                max_delay_seconds=md.retry.max_delay_seconds,
            ),
            fallback_mode=config.pipeline.fallback_mode,
            fallback_top_n=config.pipeline.fallback_top_n,
            log_snippet_chars=config.pipeline.log_snippet_chars,
        )


def coerce_constraints(raw: Union[Constraints, Mapping[str, Any]]) -> Constraints:
    """Validate caller constraints at the pipeline boundary.

    Accepts a ``Constraints`` instance or a mapping with camelCase or
    snake_case keys.

    Raises:
        InvalidConstraintsError: On any validation problem.
    """
    if isinstance(raw, Constraints):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidConstraintsError(
            "constraints must be an object", detail=f"got {type(raw).__name__}"
        )
    try:
        return Constraints.model_validate(dict(raw))
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(p) for p in first["loc"]) or "constraints"
        raise InvalidConstraintsError(
            f"{loc}: {first['msg']}", detail=f"{exc.error_count()} validation error(s)"
        ) from None


# ── Runner ────────────────────────────────────────────────────────────────────


@dataclass
class _RunContext:
    owner: str
    correlation_id: str
    as_of_date: date
    constraints: Constraints
    token: CancellationToken
    stage: str = "init"
    pending_id: Optional[str] = None
    snapshot: Optional[MarketSnapshot] = None
    warnings: tuple[str, ...] = ()

    def enter(self, stage: str) -> None:
        if self.token.cancelled:
            raise _RunCancelled(stage)
        self.stage = stage
        logger.debug(
            "Stage [%s] | correlation_id=%s", stage, self.correlation_id,
            extra={"correlation_id": self.correlation_id},
        )


class RecommendationPipeline:
    """Runs one recommendation per ``run()`` call over injected collaborators.

    Args:
        collaborators: External capabilities (holdings, market data, model,
                       recommendation store, audit sink).
        settings:      Bounds and policies; defaults when omitted.
        clock:         Audit timestamp source (injected for tests).
        sleep:         Retry back-off sleep (injected for tests).
    """

    def __init__(
        self,
        collaborators: Collaborators,
        settings: Optional[PipelineSettings] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.collaborators = collaborators
        self.settings = settings or PipelineSettings()
        self._clock = clock
        self._sleep = sleep

    def run(
        self,
        owner: str,
        constraints: Union[Constraints, Mapping[str, Any]],
        correlation_id: str,
        as_of_date: date,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PipelineResult:
        """Execute the full pipeline once for ``owner``.

        Returns:
            ``Ok`` with the persisted COMPLETED recommendation, or ``Err``.
        """
        log_extra = {"correlation_id": correlation_id}
        try:
            if not isinstance(owner, str) or not owner.strip():
                raise InvalidConstraintsError("owner must be a non-empty string")
            validated = coerce_constraints(constraints)
        except InvalidConstraintsError as exc:
            logger.warning(
                "Rejected pipeline input: %s | correlation_id=%s",
                exc.user_message, correlation_id, extra=log_extra,
            )
            return Err(kind=exc.kind, message=exc.message)

        ctx = _RunContext(
            owner=owner,
            correlation_id=correlation_id,
            as_of_date=as_of_date,
            constraints=validated,
            token=cancel_token or CancellationToken(),
        )
        logger.info(
            "Pipeline starting | owner=%s | as_of=%s | correlation_id=%s",
            owner, as_of_date, correlation_id, extra=log_extra,
        )

        error: Optional[PipelineError] = None
        try:
            recommendation = self._execute(ctx)
        except _RunCancelled as cancelled:
            return self._finish_cancelled(ctx, cancelled.stage)
        except Exception as exc:
            if ctx.token.cancelled:
                return self._finish_cancelled(ctx, ctx.stage)
            error = exc if isinstance(exc, PipelineError) else _unclassified(exc, ctx.stage)
            logger.error(
                "Stage [%s] FAILED: %s | detail=%s | correlation_id=%s",
                ctx.stage, error.user_message, error.detail, correlation_id,
                extra=log_extra, exc_info=error is not exc,
            )
            recommendation = assemble_failure(
                error,
                owner=owner,
                correlation_id=correlation_id,
                fallback_mode=self.settings.fallback_mode,
                snapshot=ctx.snapshot,
                top_n=min(self.settings.fallback_top_n, validated.max_holdings),
            )

        return self._finish(ctx, recommendation, error)

    # ── Stages ────────────────────────────────────────────────────────────────

    def _execute(self, ctx: _RunContext) -> Recommendation:
        s = self.settings

        ctx.enter("open")
        pending = Recommendation(
            owner=ctx.owner,
            status=RecommendationStatus.PENDING,
            correlation_id=ctx.correlation_id,
        )
        ctx.pending_id = self._persist(pending).id

        ctx.enter("holdings")
        holdings = self._fetch_holdings(ctx.owner)

        ctx.enter("snapshot")
        tickers = {h.ticker for h in holdings} | set(ctx.constraints.watchlist)
        snapshot = build_market_snapshot(
            tickers,
            self.collaborators.market_data,
            ctx.as_of_date,
            lookup_timeout=s.lookup_timeout_seconds,
            retry_policy=s.lookup_retry,
            max_workers=s.max_workers,
            policy=s.quality_policy,
            sleep=self._sleep,
        )
        ctx.snapshot = snapshot
        if snapshot.is_empty:
            raise PipelineError(
                ErrorKind.EMPTY_UNIVERSE,
                "no holdings or watchlist tickers to analyze",
                detail=f"owner={ctx.owner}",
            )

        ctx.enter("prompt")
        request = build_reasoning_request(
            holdings,
            snapshot,
            ctx.constraints,
            ctx.as_of_date,
            summary=summarize_holdings(holdings, snapshot) if holdings else None,
        )

        ctx.enter("reasoning")
        gateway = ReasoningGateway(
            self.collaborators.model,
            max_prompt_chars=s.max_prompt_chars,
            max_tokens=s.max_tokens,
            timeout_seconds=s.model_timeout_seconds,
            snippet_chars=s.log_snippet_chars,
        )
        payload = gateway.invoke(request)

        ctx.enter("validation")
        validator = OutputValidator(
            request.universe,
            ctx.constraints.max_holdings,
            weight_tolerance=s.weight_tolerance,
            summary_min_chars=s.summary_min_chars,
            prose_allowlist=s.known_acronyms | {ctx.constraints.benchmark_ticker},
            strict_prose=s.strict_prose_guard,
        )
        result = validator.validate(payload.data)
        if isinstance(result, Rejected):
            raise result.to_error()
        ctx.warnings = result.output.warnings

        ctx.enter("assembly")
        return assemble_success(
            result.output,
            owner=ctx.owner,
            correlation_id=ctx.correlation_id,
            as_of_date=ctx.as_of_date,
            constraints=ctx.constraints,
            snapshot=snapshot,
        )

    def _fetch_holdings(self, owner: str) -> list[Holding]:
        try:
            return list(self.collaborators.holdings.fetch_holdings(owner))
        except PipelineError:
            raise
        except Exception as exc:
            raise PipelineError(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                "holdings unavailable",
                detail=type(exc).__name__,
            ) from exc

    # ── Completion ────────────────────────────────────────────────────────────

    def _finish(
        self,
        ctx: _RunContext,
        recommendation: Recommendation,
        error: Optional[PipelineError],
    ) -> PipelineResult:
        recommendation = recommendation.model_copy(update={"id": ctx.pending_id})
        try:
            recommendation = self._persist(recommendation)
        except PipelineError as persist_error:
            logger.error(
                "Recommendation not persisted: %s | correlation_id=%s",
                persist_error.detail, ctx.correlation_id,
                extra={"correlation_id": ctx.correlation_id},
            )
            self._emit_audit(
                build_audit_event(
                    recommendation,
                    action=AuditAction.FAILURE,
                    correlation_id=ctx.correlation_id,
                    owner=ctx.owner,
                    occurred_at=self._clock(),
                    error=persist_error,
                    warnings=ctx.warnings,
                    persisted=False,
                    stage="persist",
                )
            )
            return Err(
                kind=persist_error.kind,
                message=persist_error.message,
                recommendation=recommendation,
            )

        completed = recommendation.status == RecommendationStatus.COMPLETED
        self._emit_audit(
            build_audit_event(
                recommendation,
                action=AuditAction.SUCCESS if completed else AuditAction.FAILURE,
                correlation_id=ctx.correlation_id,
                owner=ctx.owner,
                occurred_at=self._clock(),
                error=error,
                warnings=ctx.warnings,
                stage=None if completed else ctx.stage,
            )
        )
        logger.info(
            "Pipeline finished | status=%s | id=%s | correlation_id=%s",
            recommendation.status.value, recommendation.id, ctx.correlation_id,
            extra={"correlation_id": ctx.correlation_id},
        )

        if completed:
            return Ok(recommendation)
        assert error is not None
        return Err(
            kind=error.kind,
            message=error.message,
            reason=error.reason,
            recommendation=recommendation,
        )

    def _finish_cancelled(self, ctx: _RunContext, stage: str) -> PipelineResult:
        error = PipelineError(ErrorKind.CANCELLED, f"run cancelled before {stage}")
        logger.info(
            "Pipeline cancelled at stage [%s] | correlation_id=%s",
            stage, ctx.correlation_id, extra={"correlation_id": ctx.correlation_id},
        )

        # Close the PENDING row so a cancelled run never leaves one behind
        closed: Optional[Recommendation] = None
        persisted = False
        if ctx.pending_id is not None:
            closed = assemble_failure(
                error, owner=ctx.owner, correlation_id=ctx.correlation_id
            ).model_copy(update={"id": ctx.pending_id})
            try:
                closed = self._persist(closed)
                persisted = True
            except PipelineError as persist_error:
                logger.error(
                    "Cancelled run %s left PENDING: %s",
                    ctx.correlation_id, persist_error.detail,
                    extra={"correlation_id": ctx.correlation_id},
                )

        self._emit_audit(
            build_audit_event(
                closed,
                action=AuditAction.CANCELLED,
                correlation_id=ctx.correlation_id,
                owner=ctx.owner,
                occurred_at=self._clock(),
                error=error,
                persisted=persisted,
                stage=stage,
            )
        )
        return Err(kind=error.kind, message=error.message, recommendation=closed)

    def _persist(self, recommendation: Recommendation) -> Recommendation:
        store = self.collaborators.store
        try:
            rec_id = call_with_retry(
                lambda: store.persist(recommendation),
                self.settings.persist_retry,
                sleep=self._sleep,
                label="persist_recommendation",
            )
        except Exception as exc:
            raise PipelineError(
                ErrorKind.PERSISTENCE_FAILURE,
                "recommendation could not be saved",
                detail=type(exc).__name__,
            ) from exc
        return recommendation.model_copy(update={"id": str(rec_id)})

    def _emit_audit(self, event: AuditEvent) -> None:
        try:
            self.collaborators.audit.emit_audit(event)
        except Exception as exc:
            logger.error(
                "Audit write failed for correlation_id=%s: %s",
                event.correlation_id, exc,
            )


def run_recommendation_pipeline(
    owner: str,
    constraints: Union[Constraints, Mapping[str, Any]],
    correlation_id: str,
    as_of_date: date,
    collaborators: Collaborators,
    settings: Optional[PipelineSettings] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> Recommendation:
    """Run the pipeline and return the persisted terminal recommendation.

    Raises:
        PipelineError: ``InvalidConstraints`` or ``PersistenceFailure`` (no
            terminal record was stored), and ``Cancelled``.
    """
    result = RecommendationPipeline(collaborators, settings).run(
        owner, constraints, correlation_id, as_of_date, cancel_token
    )
    if isinstance(result, Ok):
        return result.recommendation
    if result.recommendation is not None and result.kind not in _RAISED_KINDS:
        return result.recommendation
    raise PipelineError(result.kind, result.message, reason=result.reason)


_RAISED_KINDS = frozenset({ErrorKind.CANCELLED, ErrorKind.PERSISTENCE_FAILURE})


def _unclassified(exc: Exception, stage: str) -> PipelineError:
    """Wrap an exception no stage classified (bad collaborator data, bugs)."""
    error = PipelineError(
        ErrorKind.UPSTREAM_UNAVAILABLE,
        f"unexpected failure during {stage}",
        detail=type(exc).__name__,
    )
    error.__cause__ = exc
    return error
