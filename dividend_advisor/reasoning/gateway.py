"""
Reasoning Gateway — the single, bounded call to the generative model.

Behaviour
---------
  - Rejects prompts longer than ``max_prompt_chars`` with
    ``ErrorKind.RequestTooLarge`` *before* invoking the model.  Prompts are
    never truncated: a cut-off universe block would silently change what
    the model is allowed to recommend.
  - Invokes the model exactly once, under ``timeout_seconds``.  No retry;
    a retry is a new pipeline run with a new correlation id.
  - Any invocation failure (exception or timeout) becomes
    ``ErrorKind.UpstreamUnavailable``.  The original exception type goes
    into ``detail`` only.
  - Extracts the top-level JSON object from the raw text (first ``{`` to
    last ``}``); anything unparseable is ``ErrorKind.NoStructuredOutput``
    and only a bounded snippet of the raw text is logged.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any

from dividend_advisor.errors import PipelineError
from dividend_advisor.pipeline.collaborators import ReasoningModel
from dividend_advisor.reasoning.prompt import ReasoningRequest
from dividend_advisor.taxonomy.pipeline_taxonomy import ErrorKind
from dividend_advisor.utils.logging import truncate_for_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractedPayload:
    """The JSON object pulled out of a model response."""

    data: dict[str, Any]
    raw_length: int


def extract_json_object(text: object, snippet_chars: int = 500) -> dict[str, Any]:
    """Return the JSON object spanning the first ``{`` to the last ``}`` of ``text``.

    Raises:
        PipelineError: ``NoStructuredOutput`` if no object can be parsed.
    """
    if not isinstance(text, str):
        raise PipelineError(
            ErrorKind.NO_STRUCTURED_OUTPUT,
            "model response was not text",
            detail=f"response type {type(text).__name__}",
        )

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        logger.warning(
            "No JSON object in model response (%d chars): %s",
            len(text), truncate_for_log(text, snippet_chars),
        )
        raise PipelineError(
            ErrorKind.NO_STRUCTURED_OUTPUT,
            "model response contained no JSON object",
            detail=f"response length {len(text)}",
        )

    candidate = text[start : end + 1]
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.warning(
            "Unparseable JSON in model response (%s at char %d): %s",
            exc.msg, exc.pos, truncate_for_log(candidate, snippet_chars),
        )
        raise PipelineError(
            ErrorKind.NO_STRUCTURED_OUTPUT,
            "model response JSON could not be parsed",
            detail=f"JSONDecodeError: {exc.msg} at char {exc.pos}",
        ) from None

    if not isinstance(data, dict):
        raise PipelineError(
            ErrorKind.NO_STRUCTURED_OUTPUT,
            "model response was not a JSON object",
            detail=f"top-level type {type(data).__name__}",
        )
    return data


class ReasoningGateway:
    """Size- and time-bounded wrapper around a ``ReasoningModel``.

    Args:
        model:            Injected model capability.
        max_prompt_chars: Largest prompt accepted.
        max_tokens:       Completion token budget passed to the model.
        timeout_seconds:  Wall-clock bound on the single invocation.
        snippet_chars:    Cap on raw model text written to logs.
    """

    def __init__(
        self,
        model: ReasoningModel,
        max_prompt_chars: int = 24_000,
        max_tokens: int = 1_500,
        timeout_seconds: float = 45.0,
        snippet_chars: int = 500,
    ) -> None:
        self.model = model
        self.max_prompt_chars = max_prompt_chars
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.snippet_chars = snippet_chars

    def invoke(self, request: ReasoningRequest) -> ExtractedPayload:
        """Invoke the model once and extract its JSON object.

        Raises:
            PipelineError: ``RequestTooLarge``, ``UpstreamUnavailable`` or
                ``NoStructuredOutput``.
        """
        if request.size > self.max_prompt_chars:
            raise PipelineError(
                ErrorKind.REQUEST_TOO_LARGE,
                "reasoning request exceeds the size limit",
                detail=f"prompt {request.size} chars > limit {self.max_prompt_chars}",
            )

        raw = self._invoke_once(request.prompt)
        data = extract_json_object(raw, self.snippet_chars)
        logger.debug("Extracted JSON object with %d top-level key(s)", len(data))
        return ExtractedPayload(data=data, raw_length=len(raw))

    def _invoke_once(self, prompt: str) -> str:
        logger.info(
            "Invoking reasoning model | prompt=%d chars | max_tokens=%d | timeout=%.0fs",
            len(prompt), self.max_tokens, self.timeout_seconds,
        )
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="reasoning")
        future = executor.submit(self.model.invoke, prompt, self.max_tokens)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FuturesTimeoutError:
            logger.warning("Reasoning model timed out after %.1fs", self.timeout_seconds)
            raise PipelineError(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                "reasoning model unavailable",
                detail=f"timed out after {self.timeout_seconds}s",
            ) from None
        except Exception as exc:
            detail = type(exc).__name__
            if isinstance(exc, PipelineError) and exc.detail:
                detail = f"{detail}: {exc.detail}"
            logger.warning("Reasoning model invocation failed: %s", detail)
            raise PipelineError(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                "reasoning model unavailable",
                detail=detail,
            ) from exc
        finally:
            executor.shutdown(wait=False)
