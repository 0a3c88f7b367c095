"""Abstract tool interface for Claude tool use."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from buddy_bot.messenger.base import MessengerAdapter


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    tool_use_id: str
    content: str
    is_error: bool = False

    def to_api_dict(self) -> dict[str, Any]:
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            block["is_error"] = True
        return block


@dataclass
class ToolContext:
    """Per-turn state a tool may need: the channel being answered and how to reach it."""

    channel_id: str
    bot_id: str
    messenger: MessengerAdapter


class Tool(ABC):
    """Base class for all Claude-callable tools.

    Subclasses declare a pydantic ``input_model``; the registry validates the
    raw model input into it before calling :meth:`execute`.
    """

    input_model: type[BaseModel]

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name sent to the Anthropic API."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description for Claude."""
        ...

    @property
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema derived from ``input_model``."""
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        return schema

    @abstractmethod
    async def execute(self, params: Any, context: ToolContext) -> str:
        """Run the tool with validated ``params`` and return a text result for Claude."""
        ...

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the Anthropic API tool definition format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }
