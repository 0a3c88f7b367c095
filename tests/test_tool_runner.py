"""Tests for the bounded tool-use loop."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel

from buddy_bot.ai.errors import RateLimitedError, TransientModelError, UnexpectedResponseError
from buddy_bot.ai.retry import RetryPolicy
from buddy_bot.ai.tool_runner import FALLBACK_TEXT, ToolOrchestrator, TurnState
from buddy_bot.ai.tools.base import Tool, ToolCall, ToolContext
from buddy_bot.ai.tools.registry import ToolRegistry

from conftest import BOT_ID, FakeMessenger, ScriptedClient, text_response, tool_response


class _EchoInput(BaseModel):
    value: str
    delay: float = 0.0


class _EchoTool(Tool):
    input_model = _EchoInput

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo a value back."

    async def execute(self, params: _EchoInput, context: ToolContext) -> str:
        await asyncio.sleep(params.delay)
        if params.value == "boom":
            raise RuntimeError("tool exploded")
        return f"echo:{params.value}"


async def _no_sleep(delay: float) -> None:
    return None


def _orchestrator(client: ScriptedClient, max_rounds: int = 5) -> ToolOrchestrator:
    registry = ToolRegistry()
    tool = _EchoTool()
    registry.register(tool)
    return ToolOrchestrator(
        client=client,
        registry=registry,
        tools=[tool],
        policy=RetryPolicy(max_retries=3),
        max_rounds=max_rounds,
        model="claude-3-5-sonnet-20241022",
        sleep=_no_sleep,
    )


def _context() -> ToolContext:
    return ToolContext(channel_id="chan", bot_id=BOT_ID, messenger=FakeMessenger())


USER = [{"role": "user", "content": "hi"}]


@pytest.mark.asyncio
async def test_plain_answer_single_call():
    client = ScriptedClient([text_response("hello!")])
    result = await _orchestrator(client).run(USER, "sys", _context())
    assert result.text == "hello!"
    assert result.state is TurnState.DONE
    assert result.model_calls == 1
    assert result.rounds == 0
    assert client.calls[0]["tools"][0]["name"] == "echo"


@pytest.mark.asyncio
async def test_tool_results_keep_call_order_and_isolate_failures():
    calls = [
        ToolCall("t1", "echo", {"value": "slow", "delay": 0.05}),
        ToolCall("t2", "echo", {"value": "boom"}),
        ToolCall("t3", "echo", {"value": "fast"}),
    ]
    client = ScriptedClient([tool_response(*calls), text_response("done")])
    result = await _orchestrator(client).run(USER, "sys", _context())

    assert result.text == "done"
    assert result.model_calls == 2
    assert result.rounds == 1

    second = client.calls[1]["messages"]
    assert second[0] == USER[0]
    assert second[1]["role"] == "assistant"
    assert [b["id"] for b in second[1]["content"]] == ["t1", "t2", "t3"]
    results = second[2]["content"]
    assert second[2]["role"] == "user"
    assert [r["tool_use_id"] for r in results] == ["t1", "t2", "t3"]
    assert results[0]["content"] == "echo:slow"
    assert results[1]["is_error"] is True
    assert "tool exploded" in results[1]["content"]
    assert results[2]["content"] == "echo:fast"


@pytest.mark.asyncio
async def test_unknown_tool_and_invalid_input_become_error_results():
    calls = [ToolCall("a", "nope", {}), ToolCall("b", "echo", {"wrong": 1})]
    client = ScriptedClient([tool_response(*calls), text_response("ok")])
    await _orchestrator(client).run(USER, "sys", _context())
    results = client.calls[1]["messages"][2]["content"]
    assert results[0]["content"] == "Error: unknown tool 'nope'"
    assert results[1]["is_error"] is True
    assert "invalid input for echo" in results[1]["content"]


@pytest.mark.asyncio
async def test_round_cap_forces_final_call_without_tools():
    cap = 2
    looping = [tool_response(ToolCall(f"t{i}", "echo", {"value": str(i)})) for i in range(cap)]
    client = ScriptedClient([*looping, text_response("final answer")])
    result = await _orchestrator(client, max_rounds=cap).run(USER, "sys", _context())

    assert result.state is TurnState.FORCED_FINAL
    assert result.text == "final answer"
    assert result.rounds == cap
    assert len(client.calls) == cap + 1
    assert all(call["tools"] and call["tool_choice"] is None for call in client.calls[:-1])
    final = client.calls[-1]
    assert final["tools"] == client.calls[0]["tools"]
    assert final["tool_choice"] == {"type": "none"}
    assert any(b.get("type") == "tool_result" for b in final["messages"][-1]["content"])
    assert result.model_calls == cap + 1
    assert client.calls[-1]["messages"][-1]["content"][0]["content"] == f"echo:{cap - 1}"


@pytest.mark.asyncio
async def test_forced_final_without_text_uses_fallback():
    client = ScriptedClient(
        [tool_response(ToolCall("t0", "echo", {"value": "x"})), UnexpectedResponseError("empty")]
    )
    result = await _orchestrator(client, max_rounds=1).run(USER, "sys", _context())
    assert result.text == FALLBACK_TEXT
    assert result.state is TurnState.FORCED_FINAL


@pytest.mark.asyncio
async def test_transient_errors_are_retried_inside_a_call():
    client = ScriptedClient([TransientModelError("busy", 529), text_response("recovered")])
    result = await _orchestrator(client).run(USER, "sys", _context())
    assert result.text == "recovered"
    assert result.error is None
    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_rate_limit_surfaces_as_apology():
    client = ScriptedClient([RateLimitedError("429", 429)])
    result = await _orchestrator(client).run(USER, "sys", _context())
    assert isinstance(result.error, RateLimitedError)
    assert "rate limits" in result.text
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_exhausted_retries_surface_busy_message():
    client = ScriptedClient([TransientModelError("busy", 503) for _ in range(4)])
    result = await _orchestrator(client).run(USER, "sys", _context())
    assert isinstance(result.error, TransientModelError)
    assert "busy" in result.text
    assert len(client.calls) == 4


@pytest.mark.asyncio
async def test_unexpected_response_surfaces_its_message():
    client = ScriptedClient([UnexpectedResponseError("empty")])
    result = await _orchestrator(client).run(USER, "sys", _context())
    assert "unexpected response" in result.text
    assert result.state is TurnState.AWAITING_MODEL


@pytest.mark.asyncio
async def test_usage_is_accumulated():
    client = ScriptedClient([tool_response(ToolCall("t", "echo", {"value": "a"})), text_response("b")])
    result = await _orchestrator(client).run(USER, "sys", _context())
    assert result.usage.input_tokens == 20
    assert result.usage.output_tokens == 10


@pytest.mark.asyncio
async def test_callers_message_list_is_not_mutated():
    messages = list(USER)
    client = ScriptedClient([tool_response(ToolCall("t", "echo", {"value": "a"})), text_response("b")])
    await _orchestrator(client).run(messages, "sys", _context())
    assert messages == USER


@pytest.mark.asyncio
async def test_retry_hook_fires_before_each_retried_call():
    retries: list[int] = []
    client = ScriptedClient([TransientModelError("busy", 529), text_response("ok")])
    result = await _orchestrator(client).run(
        USER, "sys", _context(), on_retry=lambda: retries.append(len(client.calls))
    )
    assert result.text == "ok"
    assert retries == [1]
