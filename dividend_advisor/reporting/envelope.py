"""
Transport envelope for pipeline results.

This is the only place a ``PipelineResult`` becomes JSON-ready data::

    {"status": "SUCCESS", "recommendation": {...camelCase...}}
    {"status": "FAILED", "error": "UpstreamUnavailable: ...", "errorKind": "...",
     "recommendationId": "12"}

The ``error`` string is the user-safe message; exception text and raw
model output never reach it.
"""

from __future__ import annotations

from typing import Any

from dividend_advisor.models.result import Ok, PipelineResult


def to_envelope(result: PipelineResult) -> dict[str, Any]:
    """Render ``result`` as the external ``{status, recommendation | error}`` shape."""
    if isinstance(result, Ok):
        return {
            "status": "SUCCESS",
            "recommendation": result.recommendation.model_dump(mode="json", by_alias=True),
        }

    envelope: dict[str, Any] = {
        "status": "FAILED",
        "error": result.user_message,
        "errorKind": result.kind.value,
    }
    rec = result.recommendation
    if rec is not None and rec.id is not None:
        envelope["recommendationId"] = rec.id
    if rec is not None and rec.fallback is not None:
        envelope["fallback"] = rec.fallback.model_dump(mode="json", by_alias=True)
    return envelope
