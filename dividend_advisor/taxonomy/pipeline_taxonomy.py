"""
Closed vocabularies for the recommendation pipeline.

  - ``ErrorKind``            — pipeline-level failure kinds surfaced to callers.
  - ``RejectionReason``      — Output Validator sub-reasons for ``InvalidModelOutput``.
  - ``RecommendationStatus`` — lifecycle of a persisted ``Recommendation``.
  - ``ValidationState``      — Output Validator state machine positions.
  - ``AuditAction``          — one audit event per pipeline invocation.
  - ``ComplianceIssueType``  — safety flags attached to a recommendation packet.
  - ``FallbackMode``         — caller-selectable rule-based fallback.
  - ``RefreshKind``          — ticker-refresh job types.
  - ``ProviderHealthStatus`` — market-data provider health check outcomes.

Member values are the canonical wire strings written to the database and the
transport envelope; do not rename them.

This module has NO imports from any other ``dividend_advisor`` package.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Why a pipeline run did not produce a COMPLETED recommendation."""

    INVALID_CONSTRAINTS = "InvalidConstraints"
    """Caller input malformed; surfaced immediately, never retried automatically."""

    UPSTREAM_UNAVAILABLE = "UpstreamUnavailable"
    """Model provider or market-data source failed (timeout, throttling, quota)."""

    TIMEOUT = "Timeout"
    """A market-data lookup exceeded its time budget."""

    REQUEST_TOO_LARGE = "RequestTooLarge"
    """Serialized reasoning request exceeds the configured size bound."""

    NO_STRUCTURED_OUTPUT = "NoStructuredOutput"
    """Model response contained no parseable JSON object."""

    INVALID_MODEL_OUTPUT = "InvalidModelOutput"
    """Model JSON failed the Output Validator; see ``RejectionReason``."""

    PERSISTENCE_FAILURE = "PersistenceFailure"
    """Writing the recommendation failed after bounded local retries."""

    EMPTY_UNIVERSE = "EmptyUniverse"
    """No holdings or watchlist tickers to reason about."""

    CANCELLED = "Cancelled"
    """Caller cancelled the run; any in-flight result was discarded."""


class RejectionReason(StrEnum):
    """Output Validator rejection sub-reasons."""

    SCHEMA_VIOLATION = "SchemaViolation"
    UNKNOWN_TICKER = "UnknownTicker"
    WEIGHTS_UNNORMALIZED = "WeightsUnnormalized"


class RecommendationStatus(StrEnum):
    """Persisted recommendation lifecycle. COMPLETED and FAILED are terminal."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({RecommendationStatus.COMPLETED, RecommendationStatus.FAILED})


class ValidationState(StrEnum):
    """Output Validator gates, in the order they are passed."""

    EXTRACTED = "Extracted"
    SCHEMA_CHECKED = "SchemaChecked"
    UNIVERSE_CHECKED = "UniverseChecked"
    NUMERIC_CHECKED = "NumericChecked"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


class AuditAction(StrEnum):
    """Audit log actions emitted by the pipeline runner."""

    SUCCESS = "AI_OPTIM_SUCCESS"
    FAILURE = "AI_OPTIM_FAILED"
    CANCELLED = "AI_OPTIM_CANCELLED"


class ComplianceIssueType(StrEnum):
    """Safety flags raised against positions in a recommendation packet."""

    LEVERAGE = "LEVERAGE"
    """Debt-to-equity above the caller's leverage ceiling."""

    YIELD_TRAP = "YIELD_TRAP"
    """Payout ratio above the caller's payout ceiling."""

    DIVIDEND_CUT = "DIVIDEND_CUT"
    """Ingestion detected a recent dividend cut."""

    MISSING_DATA = "MISSING_DATA"
    """No fundamentals on record for the ticker."""


class FallbackMode(StrEnum):
    """Whether a failed run may attach mechanically-ranked advice."""

    NONE = "none"
    TOP_QUALITY = "top_quality"


class RefreshKind(StrEnum):
    """What a ticker-refresh job fetches from the market-data provider."""

    PRICE = "PRICE"
    FUNDAMENTAL = "FUNDAMENTAL"


class ProviderHealthStatus(StrEnum):
    """Outcome of a market-data provider health check."""

    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    """Provider answered with a rate-limit or informational notice."""

    ERROR = "ERROR"
    """Provider rejected the request (bad key, bad symbol) or key missing."""

    UNKNOWN = "UNKNOWN"
    """Provider answered with an unexpected payload shape."""

    FAILED = "FAILED"
    """Transport failure; the provider could not be reached."""
