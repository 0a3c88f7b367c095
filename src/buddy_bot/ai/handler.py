"""Message handler: decides whether to answer, runs the turn, delivers the reply."""

from __future__ import annotations

import asyncio
from typing import Any

from buddy_bot.ai.conversation import ContextAssembler
from buddy_bot.ai.prompts import build_follow_up_prompt, build_system_prompt, is_no_response
from buddy_bot.ai.tool_runner import ToolOrchestrator, TurnResult
from buddy_bot.ai.tools.base import ToolContext
from buddy_bot.config import AppConfig
from buddy_bot.core.tracker import ConversationTracker
from buddy_bot.log import bind_turn_context, get_logger
from buddy_bot.messenger.base import MessengerAdapter
from buddy_bot.messenger.chunking import chunk_text
from buddy_bot.messenger.models import ChatMessage

logger = get_logger(__name__)

APOLOGY_TEXT = "Sorry, I encountered an error processing your message."


class MessageHandler:
    """Handles the full flow: message -> activation check -> context -> Claude -> tools -> reply."""

    def __init__(
        self,
        adapter: MessengerAdapter,
        tracker: ConversationTracker,
        assembler: ContextAssembler,
        orchestrator: ToolOrchestrator,
        config: AppConfig,
    ):
        self._adapter = adapter
        self._tracker = tracker
        self._assembler = assembler
        self._orchestrator = orchestrator
        self._config = config

    async def on_inbound_message(self, message: ChatMessage) -> None:
        """Entry point registered with the messenger adapter."""
        if message.author_id == self._adapter.bot_user_id:
            return

        channel_id = message.channel_id
        follow_up = not message.mentions_bot
        if follow_up and not self._tracker.is_active(channel_id):
            return

        # Activation and follow-up accounting share the lock with in-flight turns.
        async with self._tracker.channel_lock(channel_id):
            if not follow_up:
                self._tracker.on_mention(channel_id)
            elif not self._tracker.is_eligible_follow_up(channel_id):
                logger.debug("follow_up_ineligible", channel_id=channel_id)
                return

            bind_turn_context(
                channel_id=channel_id,
                message_id=message.id,
                mode="follow_up" if follow_up else "mention",
            )
            logger.info("turn_start", author=message.author_name)
            try:
                await self._handle_turn(message, follow_up)
            except Exception as e:
                logger.exception("turn_error", error=str(e))
                await self._send_apology(message)

    async def _handle_turn(self, message: ChatMessage, follow_up: bool) -> None:
        channel_id = message.channel_id
        await self._adapter.send_typing(channel_id)

        context = await self._assembler.build_context(channel_id)
        messages = context.messages or [{"role": "user", "content": message.content or "[empty message]"}]

        system = build_system_prompt(
            source_url=self._config.ai.source_url,
            additional_context=context.additional_context,
            override=self._config.ai.system_prompt,
        )
        if follow_up:
            system = build_follow_up_prompt(system, message.content)

        tool_context = ToolContext(
            channel_id=channel_id,
            bot_id=self._adapter.bot_user_id,
            messenger=self._adapter,
        )

        # Follow-up replies may turn out to be a decline, so only mention turns stream.
        if self._config.streaming.enabled and not follow_up:
            await self._run_streaming(message, messages, system, tool_context)
            return

        result = await self._orchestrator.run(messages, system, tool_context)
        if follow_up and is_no_response(result.text):
            logger.info("follow_up_declined", model_calls=result.model_calls)
            return

        await self.deliver(message, result.text)
        if follow_up:
            self._tracker.record_response_sent(channel_id)

    async def _run_streaming(
        self,
        message: ChatMessage,
        messages: list[dict[str, Any]],
        system: str,
        tool_context: ToolContext,
    ) -> None:
        limit = self._config.discord.max_message_length
        interval = self._config.streaming.update_interval_ms / 1000
        buffer: list[str] = []

        task = asyncio.create_task(
            self._orchestrator.run(
                messages, system, tool_context, on_token=buffer.append, on_retry=buffer.clear
            )
        )
        placeholder_id: str | None = None
        shown = ""
        while not task.done():
            await asyncio.wait({task}, timeout=interval)
            if task.done():
                break
            text = "".join(buffer)
            if not text.strip() or text == shown:
                continue
            preview = text if len(text) <= limit else text[: limit - 3] + "..."
            if placeholder_id is None:
                placeholder_id = await self._adapter.reply(message.channel_id, message.id, preview)
            else:
                await self._adapter.edit_message(message.channel_id, placeholder_id, preview)
            shown = text

        result: TurnResult = task.result()
        if placeholder_id is None:
            await self.deliver(message, result.text)
            return

        chunks = chunk_text(result.text, limit) or [result.text]
        await self._adapter.edit_message(message.channel_id, placeholder_id, chunks[0])
        for chunk in chunks[1:]:
            await self._adapter.send(message.channel_id, chunk)
        logger.info("reply_streamed", chunks=len(chunks), model_calls=result.model_calls)

    async def deliver(self, message: ChatMessage, text: str) -> None:
        """Reply with the first chunk, then send the rest to the channel in order."""
        chunks = chunk_text(text, self._config.discord.max_message_length)
        if not chunks:
            logger.warning("reply_empty")
            return
        await self._adapter.reply(message.channel_id, message.id, chunks[0])
        for chunk in chunks[1:]:
            await self._adapter.send(message.channel_id, chunk)
        logger.info("reply_sent", chunks=len(chunks), chars=len(text))

    async def _send_apology(self, message: ChatMessage) -> None:
        try:
            await self._adapter.reply(message.channel_id, message.id, APOLOGY_TEXT)
        except Exception as e:
            logger.error("apology_send_failed", error=str(e))
