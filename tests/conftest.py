"""Shared fakes for buddy-bot tests."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import pytest

from buddy_bot.ai.client import AIClient, ModelResponse
from buddy_bot.ai.tools.base import ToolCall
from buddy_bot.messenger.base import MessengerAdapter
from buddy_bot.messenger.models import Attachment, ChatMessage

BOT_ID = "999"


def make_message(
    content: str,
    *,
    id: str = "1",
    channel_id: str = "chan",
    author_id: str = "100",
    author_name: str = "alice",
    mentions_bot: bool = False,
    attachments: list[Attachment] | None = None,
) -> ChatMessage:
    return ChatMessage(
        id=id,
        channel_id=channel_id,
        author_id=author_id,
        author_name=author_name,
        content=content,
        created_at=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
        mentions_bot=mentions_bot,
        attachments=attachments or [],
    )


class FakeMessenger(MessengerAdapter):
    """In-memory channel: records everything the bot sends."""

    def __init__(self, history: list[ChatMessage] | None = None, fail_fetch: bool = False) -> None:
        super().__init__()
        self.history = list(history or [])
        self.fail_fetch = fail_fetch
        self.replies: list[tuple[str, str]] = []
        self.sent: list[str] = []
        self.edits: list[tuple[str, str]] = []
        self.typing: list[str] = []
        self.fetch_calls: list[tuple[str, int, str | None]] = []
        self._next_id = 1000

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    @property
    def bot_user_id(self) -> str:
        return BOT_ID

    async def fetch_recent_messages(
        self, channel_id: str, limit: int, before_id: str | None = None
    ) -> list[ChatMessage]:
        self.fetch_calls.append((channel_id, limit, before_id))
        if self.fail_fetch:
            raise RuntimeError("history unavailable")
        return self.history[-limit:]

    async def send_typing(self, channel_id: str) -> None:
        self.typing.append(channel_id)

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    async def reply(self, channel_id: str, message_id: str, text: str) -> str:
        self.replies.append((message_id, text))
        return self._new_id()

    async def send(self, channel_id: str, text: str) -> str:
        self.sent.append(text)
        return self._new_id()

    async def edit_message(self, channel_id: str, message_id: str, text: str) -> None:
        self.edits.append((message_id, text))


Step = ModelResponse | Exception | Callable[[], Awaitable[ModelResponse]]


class ScriptedClient(AIClient):
    """Replays a list of responses (or exceptions) and records every call."""

    def __init__(self, steps: list[Step]) -> None:
        self.steps = list(steps)
        self.calls: list[dict[str, Any]] = []

    async def complete(self, messages, system, tools=None, on_token=None, tool_choice=None) -> ModelResponse:
        self.calls.append(
            {
                "messages": copy.deepcopy(messages),
                "system": system,
                "tools": tools,
                "tool_choice": tool_choice,
            }
        )
        if not self.steps:
            raise AssertionError("ScriptedClient ran out of responses")
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return await step()
        if on_token is not None and step.text:
            on_token(step.text)
        return step


def text_response(text: str) -> ModelResponse:
    return ModelResponse(
        text=text,
        input_tokens=10,
        output_tokens=5,
        stop_reason="end_turn",
        content=[{"type": "text", "text": text}],
    )


def tool_response(*calls: ToolCall) -> ModelResponse:
    return ModelResponse(
        text="",
        tool_calls=list(calls),
        input_tokens=10,
        output_tokens=5,
        stop_reason="tool_use",
        content=[{"type": "tool_use", "id": c.id, "name": c.name, "input": c.input} for c in calls],
    )


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()
