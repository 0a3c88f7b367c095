"""AI client abstraction with the Anthropic API backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import anthropic

from buddy_bot.ai.errors import (
    ModelError,
    PermanentModelError,
    RateLimitedError,
    TransientModelError,
    UnexpectedResponseError,
)
from buddy_bot.ai.tools.base import ToolCall
from buddy_bot.config import AIConfig, AnthropicConfig
from buddy_bot.log import get_logger

logger = get_logger(__name__)

TokenCallback = Callable[[str], None]

_RETRYABLE_STATUSES = frozenset({500, 502, 503, 529})


@dataclass
class ModelResponse:
    """One model reply, normalised away from the SDK types."""

    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: Optional[str] = None
    content: list[dict[str, Any]] = field(default_factory=list)  # assistant blocks, API shape

    @property
    def needs_tools(self) -> bool:
        return bool(self.tool_calls)


class AIClient(ABC):
    """Abstract base class for AI backends."""

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, Any]],
        system: str,
        tools: list[dict[str, Any]] | None = None,
        on_token: TokenCallback | None = None,
        tool_choice: dict[str, Any] | None = None,
    ) -> ModelResponse:
        """Send a conversation to the model.

        Raises a :class:`~buddy_bot.ai.errors.ModelError` subclass on failure.
        When ``on_token`` is given, text deltas are forwarded as they arrive.
        ``tool_choice`` only applies when ``tools`` is given; ``{"type": "none"}``
        keeps the definitions (required once the conversation holds tool
        blocks) while forbidding new calls.
        """
        ...


def translate_error(error: Exception) -> ModelError:
    """Map an SDK exception onto the retry taxonomy."""
    if isinstance(error, anthropic.APIStatusError):
        status = error.status_code
        should_retry = error.response.headers.get("x-should-retry", "").lower() == "true"
        if status == 429:
            return RateLimitedError(str(error), status=status)
        if status in _RETRYABLE_STATUSES or "Overloaded" in str(error) or should_retry:
            return TransientModelError(str(error), status=status)
        return PermanentModelError(str(error), status=status)
    if isinstance(error, anthropic.APIConnectionError):
        return TransientModelError(str(error) or "connection error")
    return PermanentModelError(str(error))


def parse_content(blocks: list[Any]) -> tuple[str, list[ToolCall], list[dict[str, Any]]]:
    """Split SDK content blocks into text, tool calls and their API-shaped dicts."""
    texts: list[str] = []
    calls: list[ToolCall] = []
    content: list[dict[str, Any]] = []
    for block in blocks:
        if block.type == "text":
            texts.append(block.text)
            content.append({"type": "text", "text": block.text})
        elif block.type == "tool_use":
            calls.append(ToolCall(id=block.id, name=block.name, input=dict(block.input or {})))
            content.append({"type": "tool_use", "id": block.id, "name": block.name, "input": block.input})
    return "".join(texts), calls, content


class AnthropicClient(AIClient):
    """Anthropic API backend using the official SDK."""

    def __init__(self, config: AnthropicConfig, ai_config: AIConfig, sdk_client: Any = None):
        self._client = sdk_client or anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )
        self._ai = ai_config

    @property
    def model(self) -> str:
        return self._ai.model

    async def complete(
        self,
        messages: list[dict[str, Any]],
        system: str,
        tools: list[dict[str, Any]] | None = None,
        on_token: TokenCallback | None = None,
        tool_choice: dict[str, Any] | None = None,
    ) -> ModelResponse:
        kwargs: dict[str, Any] = {
            "model": self._ai.model,
            "max_tokens": self._ai.max_tokens,
            "system": system,
            "messages": messages,
            "temperature": self._ai.temperature,
        }
        if tools:
            kwargs["tools"] = tools
            if tool_choice:
                kwargs["tool_choice"] = tool_choice

        logger.debug(
            "api_request",
            model=self._ai.model,
            message_count=len(messages),
            tools=len(tools or []),
            streaming=on_token is not None,
        )
        try:
            if on_token is not None:
                async with self._client.messages.stream(**kwargs) as stream:
                    async for text in stream.text_stream:
                        on_token(text)
                    message = await stream.get_final_message()
            else:
                message = await self._client.messages.create(**kwargs)
        except anthropic.AnthropicError as e:
            error = translate_error(e)
            logger.warning("api_error", kind=type(error).__name__, status=error.status, error=str(e))
            raise error from e

        text, calls, content = parse_content(message.content)
        logger.debug(
            "api_response",
            model=self._ai.model,
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
            stop_reason=message.stop_reason,
            tool_calls=len(calls),
        )
        if not text and not calls:
            raise UnexpectedResponseError(f"empty response (stop_reason={message.stop_reason})")

        return ModelResponse(
            text=text,
            tool_calls=calls,
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
            stop_reason=message.stop_reason,
            content=content,
        )
