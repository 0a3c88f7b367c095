"""Bounded tool-use loop between the model and the registered tools."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Awaitable, Callable, Optional

from buddy_bot.ai.budget import estimate_cost
from buddy_bot.ai.client import AIClient, ModelResponse, TokenCallback
from buddy_bot.ai.errors import ModelError, UnexpectedResponseError, user_message_for
from buddy_bot.ai.retry import RetryPolicy, call_with_retry
from buddy_bot.ai.tools.base import Tool, ToolCall, ToolContext, ToolResult
from buddy_bot.ai.tools.registry import ToolRegistry
from buddy_bot.log import get_logger

logger = get_logger(__name__)

MAX_TOOL_ROUNDS = 5
FALLBACK_TEXT = "I couldn't generate a response."
NO_TOOL_CALLS = {"type": "none"}


class TurnState(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FORCED_FINAL = "forced_final"


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, response: ModelResponse) -> None:
        self.input_tokens += response.input_tokens
        self.output_tokens += response.output_tokens


@dataclass
class TurnResult:
    text: str
    rounds: int = 0
    model_calls: int = 0
    state: TurnState = TurnState.DONE
    error: Optional[ModelError] = None
    usage: Usage = field(default_factory=Usage)


class ToolOrchestrator:
    """Runs one turn: model call, tool round, model call... until a text answer.

    After ``max_rounds`` tool rounds a last call is made with tool use
    disabled (``tool_choice`` none), so a turn makes at most
    ``max_rounds + 1`` model calls (retries of a single call do not count).
    Model errors end the turn with the apology text of their class instead
    of raising.
    """

    def __init__(
        self,
        client: AIClient,
        registry: ToolRegistry,
        tools: list[Tool],
        policy: RetryPolicy | None = None,
        max_rounds: int = MAX_TOOL_ROUNDS,
        model: str = "",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._registry = registry
        self._tool_defs = [t.to_api_dict() for t in tools]
        self._policy = policy or RetryPolicy()
        self._max_rounds = max_rounds
        self._model = model
        self._sleep = sleep

    async def _call_model(
        self,
        messages: list[dict[str, Any]],
        system: str,
        tools: list[dict[str, Any]] | None,
        on_token: TokenCallback | None,
        on_retry: Callable[[], None] | None,
        tool_choice: dict[str, Any] | None = None,
    ) -> ModelResponse:
        return await call_with_retry(
            lambda: self._client.complete(
                messages, system, tools=tools, on_token=on_token, tool_choice=tool_choice
            ),
            self._policy,
            sleep=self._sleep,
            on_retry=on_retry,
        )

    async def _execute_one(self, call: ToolCall, context: ToolContext) -> ToolResult:
        try:
            return await self._registry.dispatch(call, context)
        except Exception as e:
            logger.error("tool_execution_error", tool=call.name, error=str(e))
            return ToolResult(call.id, f"Error executing {call.name}: {e}", is_error=True)

    async def run(
        self,
        messages: list[dict[str, Any]],
        system: str,
        tool_context: ToolContext,
        on_token: TokenCallback | None = None,
        on_retry: Callable[[], None] | None = None,
    ) -> TurnResult:
        """Run one turn.

        ``on_token`` receives text deltas of every model call; ``on_retry`` is
        called before a failed call is retried, so streamed text from the
        failed attempt can be discarded.
        """
        conversation = list(messages)
        usage = Usage()
        rounds = 0
        calls = 0
        state = TurnState.AWAITING_MODEL
        tools = self._tool_defs or None

        try:
            while rounds < self._max_rounds:
                response = await self._call_model(conversation, system, tools, on_token, on_retry)
                calls += 1
                usage.add(response)

                if not response.needs_tools:
                    state = TurnState.DONE
                    return self._finish(response.text, rounds, calls, state, usage)

                state = TurnState.EXECUTING_TOOLS
                logger.info(
                    "tool_round",
                    round=rounds + 1,
                    tools=[c.name for c in response.tool_calls],
                )
                results = await asyncio.gather(
                    *(self._execute_one(c, tool_context) for c in response.tool_calls)
                )
                conversation.append({"role": "assistant", "content": response.content})
                conversation.append({"role": "user", "content": [r.to_api_dict() for r in results]})
                rounds += 1
                state = TurnState.AWAITING_MODEL

            state = TurnState.FORCED_FINAL
            logger.warning("tool_round_limit_reached", rounds=rounds, max_rounds=self._max_rounds)
            try:
                # The API rejects tool blocks in a request that defines no tools.
                response = await self._call_model(
                    conversation,
                    system,
                    tools,
                    on_token,
                    on_retry,
                    tool_choice=NO_TOOL_CALLS if tools else None,
                )
            except UnexpectedResponseError:
                calls += 1
                return self._finish(FALLBACK_TEXT, rounds, calls, state, usage)
            calls += 1
            usage.add(response)
            return self._finish(response.text or FALLBACK_TEXT, rounds, calls, state, usage)

        except ModelError as e:
            logger.error(
                "turn_failed",
                kind=type(e).__name__,
                status=e.status,
                rounds=rounds,
                model_calls=calls,
                state=str(state),
            )
            return TurnResult(
                text=user_message_for(e),
                rounds=rounds,
                model_calls=calls,
                state=state,
                error=e,
                usage=usage,
            )

    def _finish(self, text: str, rounds: int, calls: int, state: TurnState, usage: Usage) -> TurnResult:
        logger.info(
            "turn_complete",
            state=str(state),
            rounds=rounds,
            model_calls=calls,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cost_usd=round(estimate_cost(usage.input_tokens, usage.output_tokens, self._model), 6),
        )
        return TurnResult(text=text, rounds=rounds, model_calls=calls, state=state, usage=usage)
