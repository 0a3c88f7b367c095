"""Read the bot's own source code."""

from __future__ import annotations

from typing import Optional

import httpx
from pydantic import BaseModel, Field

from buddy_bot.ai.tools.base import Tool, ToolContext
from buddy_bot.services.source_reader import SourceReader


class ReadSourceInput(BaseModel):
    path: Optional[str] = Field(
        default=None,
        description="File or directory path inside the repository. Omit to list the top level.",
    )
    is_directory: bool = Field(default=False, description="Set when 'path' is a directory")


class ReadSourceTool(Tool):
    input_model = ReadSourceInput

    def __init__(self, reader: SourceReader):
        self._reader = reader

    @property
    def name(self) -> str:
        return "read_source"

    @property
    def description(self) -> str:
        return (
            "Read your own source code. Without a path, lists the repository's top-level "
            "structure. With a file path, returns that file's content."
        )

    async def execute(self, params: ReadSourceInput, context: ToolContext) -> str:
        path = (params.path or "").strip("/")
        try:
            if not path or params.is_directory:
                return await self._reader.list_directory(path)
            return await self._reader.read_file(path)
        except (FileNotFoundError, ValueError) as e:
            return f"Error: {e}"
        except httpx.HTTPError as e:
            return f"Error reading source: {e}"
