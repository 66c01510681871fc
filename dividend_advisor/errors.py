"""
Pipeline exception types.

Every stage of the recommendation pipeline signals failure by raising a
``PipelineError`` tagged with an ``ErrorKind``.  The runner catches it and
turns it into a FAILED ``Recommendation`` plus an audit event; nothing
escapes the runner except for the kinds that produce no persisted record.

``message`` is short and safe to show an end user.  ``detail`` holds internal
diagnostics (exception class names, offending values) and only ever reaches
logs and the audit trail.
"""

from __future__ import annotations

from typing import Optional

from dividend_advisor.taxonomy.pipeline_taxonomy import ErrorKind, RejectionReason


class PipelineError(RuntimeError):
    """A classified pipeline failure.

    Attributes:
        kind:    Pipeline-level error kind.
        message: Short user-safe description.
        reason:  Validator sub-reason; only set for ``InvalidModelOutput``.
        detail:  Internal diagnostics, never surfaced to end users.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        reason: Optional[RejectionReason] = None,
        detail: Optional[str] = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.reason = reason
        self.detail = detail
        super().__init__(self.user_message)

    @property
    def user_message(self) -> str:
        """Render ``"<Kind>: <message>"`` or ``"InvalidModelOutput(<Reason>): <message>"``."""
        if self.reason is not None:
            return f"{self.kind.value}({self.reason.value}): {self.message}"
        return f"{self.kind.value}: {self.message}"


class UpstreamUnavailableError(PipelineError):
    """Raised by adapters when their provider fails (timeout, throttling, quota)."""

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(ErrorKind.UPSTREAM_UNAVAILABLE, message, detail=detail)


class LookupTimeoutError(PipelineError):
    """Raised when a market-data lookup exceeds its time budget."""

    def __init__(self, ticker: str, timeout_seconds: float) -> None:
        self.ticker = ticker
        self.timeout_seconds = timeout_seconds
        super().__init__(
            ErrorKind.TIMEOUT,
            "market data lookup timed out",
            detail=f"ticker={ticker} timeout={timeout_seconds}s",
        )


class InvalidConstraintsError(PipelineError):
    """Raised when caller-supplied constraints fail boundary validation."""

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(ErrorKind.INVALID_CONSTRAINTS, message, detail=detail)
