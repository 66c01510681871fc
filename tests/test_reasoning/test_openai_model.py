"""
Tests for the OpenAI reasoning adapter, using a stub client object.

What we test
------------
1. Request parameters: system + user messages, temperature 0, JSON format,
   token budget key per model family.
2. SDK errors -> UpstreamUnavailableError without the provider message.
3. Empty choices / null content -> UpstreamUnavailableError.
4. Missing API key without an injected client -> RuntimeError.
"""

from __future__ import annotations

from types import SimpleNamespace

import httpx
import openai
import pytest

from dividend_advisor.errors import UpstreamUnavailableError
from dividend_advisor.reasoning.openai_model import SYSTEM_PROMPT, OpenAIReasoningModel
from dividend_advisor.taxonomy.pipeline_taxonomy import ErrorKind


class _StubCompletions:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    def create(self, **params):
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        return self.response


def _client(completions: _StubCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def _response(content, finish_reason="stop", choices=True):
    usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5)
    if not choices:
        return SimpleNamespace(choices=[], usage=usage)
    choice = SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)
    return SimpleNamespace(choices=[choice], usage=usage)


class TestRequest:
    def test_chat_model_params(self):
        completions = _StubCompletions(_response('{"ok": true}'))
        model = OpenAIReasoningModel(model="gpt-4o-mini", client=_client(completions))

        assert model.invoke("PROMPT", 321) == '{"ok": true}'

        params = completions.calls[0]
        assert params["model"] == "gpt-4o-mini"
        assert params["messages"] == [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "PROMPT"},
        ]
        assert params["temperature"] == 0
        assert params["max_tokens"] == 321
        assert params["response_format"] == {"type": "json_object"}

    def test_reasoning_model_params(self):
        completions = _StubCompletions(_response("{}"))
        model = OpenAIReasoningModel(model="o3-mini", client=_client(completions))
        model.invoke("PROMPT", 100)

        params = completions.calls[0]
        assert params["max_completion_tokens"] == 100
        assert "max_tokens" not in params
        assert "temperature" not in params


class TestFailures:
    def test_sdk_error_mapped(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        completions = _StubCompletions(error=openai.APIConnectionError(request=request))
        model = OpenAIReasoningModel(client=_client(completions))

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            model.invoke("PROMPT", 100)
        assert exc_info.value.kind == ErrorKind.UPSTREAM_UNAVAILABLE
        assert exc_info.value.detail == "APIConnectionError"

    def test_empty_choices(self):
        model = OpenAIReasoningModel(client=_client(_StubCompletions(_response(None, choices=False))))
        with pytest.raises(UpstreamUnavailableError):
            model.invoke("PROMPT", 100)

    def test_null_content(self):
        model = OpenAIReasoningModel(
            client=_client(_StubCompletions(_response(None, finish_reason="length")))
        )
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            model.invoke("PROMPT", 100)
        assert "length" in exc_info.value.detail

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(RuntimeError):
            OpenAIReasoningModel()
