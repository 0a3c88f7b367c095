"""Read older messages from the current channel."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from buddy_bot.ai.tools.base import Tool, ToolContext
from buddy_bot.messenger.formatting import build_message_representation


class ReadHistoryInput(BaseModel):
    limit: int = Field(default=50, ge=1, le=100, description="How many messages to read (max 100)")
    before_id: Optional[str] = Field(
        default=None, description="Only read messages older than this message id"
    )


class ReadHistoryTool(Tool):
    input_model = ReadHistoryInput

    @property
    def name(self) -> str:
        return "read_history"

    @property
    def description(self) -> str:
        return (
            "Read earlier messages from this channel, including authors, timestamps, "
            "attachments, embeds and reactions. Use before_id to page further back."
        )

    async def execute(self, params: ReadHistoryInput, context: ToolContext) -> str:
        messages = await context.messenger.fetch_recent_messages(
            context.channel_id, params.limit, before_id=params.before_id
        )
        if not messages:
            return "No messages found."
        rendered = [f"(id {m.id}) {build_message_representation(m, context.bot_id)}" for m in messages]
        return f"Last {len(messages)} messages (oldest first):\n\n" + "\n\n".join(rendered)
