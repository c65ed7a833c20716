"""Tests for flowdesk.agents.llm (Anthropic client mocked)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import anthropic
import httpx
import pytest

from flowdesk.agents.llm import MAX_RETRIES, LLMClient
from flowdesk.errors import LLMError


def _rate_limit() -> anthropic.RateLimitError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return anthropic.RateLimitError(
        "rate limited", response=httpx.Response(429, request=request), body=None
    )


def _response(*texts: str) -> MagicMock:
    return MagicMock(content=[MagicMock(type="text", text=t) for t in texts])


class TestLLMClient:
    def test_joins_text_blocks(self):
        api = MagicMock()
        api.messages.create.return_value = _response('{"a": ', "1}")
        client = LLMClient("sk", model="claude-test", client=api)
        assert client.complete("hi", max_tokens=100) == '{"a": 1}'
        kwargs = api.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 100
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    def test_empty_content(self):
        api = MagicMock()
        api.messages.create.return_value = MagicMock(content=[])
        assert LLMClient("sk", client=api).complete("hi") == ""

    @patch("flowdesk.agents.llm.time.sleep")
    def test_retries_rate_limits(self, sleep):
        api = MagicMock()
        api.messages.create.side_effect = [_rate_limit(), _response("ok")]
        assert LLMClient("sk", client=api).complete("hi") == "ok"
        sleep.assert_called_once_with(2.0)

    @patch("flowdesk.agents.llm.time.sleep")
    def test_gives_up_after_retries(self, sleep):
        api = MagicMock()
        api.messages.create.side_effect = [_rate_limit() for _ in range(MAX_RETRIES)]
        with pytest.raises(LLMError):
            LLMClient("sk", client=api).complete("hi")
        assert api.messages.create.call_count == MAX_RETRIES

    def test_api_error(self):
        api = MagicMock()
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        api.messages.create.side_effect = anthropic.APIConnectionError(request=request)
        with pytest.raises(LLMError):
            LLMClient("sk", client=api).complete("hi")
