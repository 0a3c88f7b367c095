"""Tests for the Anthropic client wrapper."""

from __future__ import annotations

from types import SimpleNamespace

import anthropic
import httpx
import pytest

from buddy_bot.ai.client import AnthropicClient, translate_error
from buddy_bot.ai.errors import (
    PermanentModelError,
    RateLimitedError,
    TransientModelError,
    UnexpectedResponseError,
)
from buddy_bot.config import AIConfig, AnthropicConfig

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(status: int, message: str = "error", headers: dict | None = None) -> anthropic.APIStatusError:
    response = httpx.Response(status, request=_REQUEST, headers=headers or {})
    return anthropic.APIStatusError(message, response=response, body=None)


@pytest.mark.parametrize("status", [500, 502, 503, 529])
def test_server_errors_are_transient(status):
    assert isinstance(translate_error(_status_error(status)), TransientModelError)


def test_overloaded_message_and_retry_header_are_transient():
    assert isinstance(translate_error(_status_error(400, "Overloaded")), TransientModelError)
    assert isinstance(
        translate_error(_status_error(409, headers={"x-should-retry": "true"})), TransientModelError
    )


def test_rate_limit_and_permanent_errors():
    assert isinstance(translate_error(_status_error(429)), RateLimitedError)
    error = translate_error(_status_error(400))
    assert isinstance(error, PermanentModelError)
    assert error.status == 400


def test_connection_errors_are_transient():
    assert isinstance(translate_error(anthropic.APIConnectionError(request=_REQUEST)), TransientModelError)


def _message(*blocks, stop_reason="end_turn"):
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=12, output_tokens=7),
        stop_reason=stop_reason,
    )


class _Messages:
    def __init__(self, outcome) -> None:
        self.outcome = outcome
        self.kwargs: dict | None = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def _client(outcome) -> tuple[AnthropicClient, _Messages]:
    messages = _Messages(outcome)
    sdk = SimpleNamespace(messages=messages)
    client = AnthropicClient(AnthropicConfig(api_key="k"), AIConfig(max_tokens=321), sdk_client=sdk)
    return client, messages


@pytest.mark.asyncio
async def test_complete_parses_text_and_tool_calls():
    client, sdk = _client(
        _message(
            SimpleNamespace(type="text", text="Let me check."),
            SimpleNamespace(type="tool_use", id="tu_1", name="web_search", input={"query": "x"}),
            stop_reason="tool_use",
        )
    )
    response = await client.complete([{"role": "user", "content": "hi"}], "sys", tools=[{"name": "web_search"}])
    assert response.text == "Let me check."
    assert response.needs_tools
    assert response.tool_calls[0].input == {"query": "x"}
    assert response.content[1] == {"type": "tool_use", "id": "tu_1", "name": "web_search", "input": {"query": "x"}}
    assert sdk.kwargs["max_tokens"] == 321
    assert sdk.kwargs["tools"] == [{"name": "web_search"}]


@pytest.mark.asyncio
async def test_tools_omitted_when_disabled():
    client, sdk = _client(_message(SimpleNamespace(type="text", text="hello")))
    response = await client.complete([{"role": "user", "content": "hi"}], "sys")
    assert response.text == "hello"
    assert not response.needs_tools
    assert "tools" not in sdk.kwargs


@pytest.mark.asyncio
async def test_empty_response_is_unexpected():
    client, _ = _client(_message())
    with pytest.raises(UnexpectedResponseError):
        await client.complete([{"role": "user", "content": "hi"}], "sys")


@pytest.mark.asyncio
async def test_sdk_errors_are_translated():
    client, _ = _client(_status_error(529, "Overloaded"))
    with pytest.raises(TransientModelError) as info:
        await client.complete([{"role": "user", "content": "hi"}], "sys")
    assert info.value.status == 529


@pytest.mark.asyncio
async def test_tool_choice_is_sent_with_tool_definitions():
    client, sdk = _client(_message(SimpleNamespace(type="text", text="final")))
    await client.complete(
        [{"role": "user", "content": "hi"}],
        "sys",
        tools=[{"name": "web_search"}],
        tool_choice={"type": "none"},
    )
    assert sdk.kwargs["tools"] == [{"name": "web_search"}]
    assert sdk.kwargs["tool_choice"] == {"type": "none"}

    await client.complete([{"role": "user", "content": "hi"}], "sys", tool_choice={"type": "none"})
    assert "tool_choice" not in sdk.kwargs
