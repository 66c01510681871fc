"""
OpenAI adapter implementing the ``ReasoningModel`` capability.

Constructed explicitly (by ``pipeline.orchestrator`` or a test) and injected
into the pipeline; there is no module-level client.

Credential setup (.env, gitignored)::

    OPENAI_API_KEY=sk-...

Requests use chat completions with ``temperature=0`` and the JSON object
response format.  SDK retries are disabled: the pipeline invokes the model
at most once per run.  Every SDK error surfaces as
``UpstreamUnavailableError``; the provider's own error message is logged
but never forwarded to the caller.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import openai
from openai import OpenAI

from dividend_advisor.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a careful financial analysis assistant. "
    "You answer with a single JSON object that follows the requested schema exactly."
)

# Models that take max_completion_tokens instead of max_tokens
_COMPLETION_TOKEN_MODELS = ("o1", "o3", "o4", "gpt-5")


class OpenAIReasoningModel:
    """``ReasoningModel`` backed by the OpenAI chat completions API.

    Args:
        model:           Model name, e.g. ``"gpt-4o-mini"``.
        api_key:         Defaults to ``OPENAI_API_KEY`` from the environment.
        base_url:        Optional API base URL (proxies, compatible servers).
        timeout_seconds: HTTP timeout handed to the SDK.
        client:          Pre-built ``OpenAI`` client (tests).
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: float = 45.0,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.model = model
        if client is None:
            key = api_key or os.environ.get("OPENAI_API_KEY")
            if not key:
                raise RuntimeError("OPENAI_API_KEY must be set in .env to run recommendations.")
            client = OpenAI(
                api_key=key,
                base_url=base_url,
                timeout=timeout_seconds,
                max_retries=0,
            )
        self._client = client

    def invoke(self, prompt_text: str, max_tokens: int) -> str:
        """Send ``prompt_text`` once and return the raw completion text.

        Raises:
            UpstreamUnavailableError: On any SDK/provider failure or an
                empty completion.
        """
        params = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt_text},
            ],
            "temperature": 0,
            "response_format": {"type": "json_object"},
        }
        if self.model.lower().startswith(_COMPLETION_TOKEN_MODELS):
            params["max_completion_tokens"] = max_tokens
            del params["temperature"]
        else:
            params["max_tokens"] = max_tokens

        try:
            response = self._client.chat.completions.create(**params)
        except openai.OpenAIError as exc:
            logger.warning("OpenAI request failed: %s: %s", type(exc).__name__, exc)
            raise UpstreamUnavailableError(
                "reasoning model unavailable", detail=type(exc).__name__
            ) from exc

        if not response.choices:
            raise UpstreamUnavailableError(
                "reasoning model returned no choices", detail="empty choices"
            )
        choice = response.choices[0]
        content = choice.message.content
        if content is None:
            raise UpstreamUnavailableError(
                "reasoning model returned no content",
                detail=f"finish_reason={choice.finish_reason}",
            )

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.info(
                "OpenAI completion | model=%s | prompt_tokens=%s | completion_tokens=%s",
                self.model, usage.prompt_tokens, usage.completion_tokens,
            )
        return content
