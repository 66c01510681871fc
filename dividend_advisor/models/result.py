"""
Tagged result returned by ``RecommendationPipeline.run()``.

``Ok`` wraps a persisted COMPLETED recommendation.  ``Err`` carries the error
kind and a short user-safe message, plus the FAILED recommendation when one
was produced — it is ``None`` for the kinds that never reach storage
(``InvalidConstraints``, ``Cancelled``) and unpersisted for
``PersistenceFailure``.

Only the outermost transport adapter (``reporting.envelope``) turns these
into JSON.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from dividend_advisor.models.recommendation import Recommendation
from dividend_advisor.taxonomy.pipeline_taxonomy import ErrorKind, RejectionReason


@dataclass(frozen=True)
class Ok:
    recommendation: Recommendation

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    reason: Optional[RejectionReason] = None
    recommendation: Optional[Recommendation] = None

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def user_message(self) -> str:
        """Same rendering as ``PipelineError.user_message``."""
        if self.reason is not None:
            return f"{self.kind.value}({self.reason.value}): {self.message}"
        return f"{self.kind.value}: {self.message}"


PipelineResult = Union[Ok, Err]
