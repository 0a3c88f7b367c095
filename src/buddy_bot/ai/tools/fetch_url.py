"""Fetch a web page and return its main text."""

from __future__ import annotations

from pydantic import BaseModel, Field

from buddy_bot.ai.tools.base import Tool, ToolContext
from buddy_bot.services.url_fetcher import UrlFetcher


class FetchUrlInput(BaseModel):
    url: str = Field(pattern=r"^https?://", description="Absolute http(s) URL to fetch")


class FetchUrlTool(Tool):
    input_model = FetchUrlInput

    def __init__(self, fetcher: UrlFetcher):
        self._fetcher = fetcher

    @property
    def name(self) -> str:
        return "fetch_url"

    @property
    def description(self) -> str:
        return (
            "Fetch a web page and return its main text content. Use this to read an article, "
            "documentation page or any link a user shares."
        )

    async def execute(self, params: FetchUrlInput, context: ToolContext) -> str:
        result = await self._fetcher.fetch(params.url)
        if result.is_image and result.ok:
            return f"The URL points to an image ({result.content}). Image content cannot be read through this tool."
        return result.content
