"""Web search tool."""

from __future__ import annotations

from pydantic import BaseModel, Field

from buddy_bot.ai.tools.base import Tool, ToolContext
from buddy_bot.services.web_search import WebSearchService, format_results


class WebSearchInput(BaseModel):
    query: str = Field(min_length=1, description="The search query")
    limit: int = Field(default=5, ge=1, le=10, description="Maximum number of results")


class WebSearchTool(Tool):
    input_model = WebSearchInput

    def __init__(self, service: WebSearchService):
        self._service = service

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return (
            "Search the web for current information. Use this when users ask about recent "
            "events, news, or any information that might need to be up-to-date."
        )

    async def execute(self, params: WebSearchInput, context: ToolContext) -> str:
        results = await self._service.search(params.query, params.limit)
        return format_results(params.query, results)
