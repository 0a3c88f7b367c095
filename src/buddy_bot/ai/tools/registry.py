"""Tool registry for discovering, validating and dispatching tool calls."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import ValidationError

from buddy_bot.ai.tools.base import Tool, ToolCall, ToolContext, ToolResult
from buddy_bot.log import get_logger

if TYPE_CHECKING:
    from buddy_bot.services.service_manager import ServiceManager

logger = get_logger(__name__)


class ToolRegistry:
    """Registry of all available tools."""

    def __init__(self, service_manager: ServiceManager | None = None):
        self._tools: dict[str, Tool] = {}
        self._service_manager = service_manager

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool
        logger.info("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_tools_by_names(self, names: list[str]) -> list[Tool]:
        """Get a subset of tools by name list."""
        return [self._tools[n] for n in names if n in self._tools]

    def all_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def discover_and_register(self) -> None:
        """Import and register all built-in tools."""
        from buddy_bot.ai.tools.fetch_url import FetchUrlTool
        from buddy_bot.ai.tools.read_history import ReadHistoryTool
        from buddy_bot.ai.tools.read_source import ReadSourceTool
        from buddy_bot.ai.tools.web_search import WebSearchTool

        if self._service_manager is None:
            raise RuntimeError("discover_and_register needs a ServiceManager")

        self.register(WebSearchTool(self._service_manager.get_web_search()))
        self.register(FetchUrlTool(self._service_manager.get_url_fetcher()))
        self.register(ReadSourceTool(self._service_manager.get_source_reader()))
        self.register(ReadHistoryTool())

    async def dispatch(self, call: ToolCall, context: ToolContext) -> ToolResult:
        """Validate ``call.input`` against the tool's model and run it.

        Unknown tools and invalid input come back as error results. Exceptions
        raised by the tool itself propagate to the caller.
        """
        tool = self.get(call.name)
        if tool is None:
            logger.warning("tool_unknown", tool=call.name)
            return ToolResult(call.id, f"Error: unknown tool '{call.name}'", is_error=True)

        try:
            params = tool.input_model.model_validate(call.input)
        except ValidationError as e:
            logger.warning("tool_input_invalid", tool=call.name, errors=e.error_count())
            return ToolResult(call.id, f"Error: invalid input for {call.name}: {e}", is_error=True)

        logger.info("tool_execute", tool=call.name, channel_id=context.channel_id)
        content = await tool.execute(params, context)
        return ToolResult(call.id, content)
