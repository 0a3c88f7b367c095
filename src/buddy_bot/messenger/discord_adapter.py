"""Discord messenger adapter using discord.py v2+."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import discord

from buddy_bot.log import get_logger
from buddy_bot.messenger.base import MessengerAdapter
from buddy_bot.messenger.models import Attachment, ChatMessage, Embed

logger = get_logger(__name__)

_MessageableChannel = (discord.TextChannel, discord.DMChannel, discord.Thread, discord.VoiceChannel)


class DiscordAdapter(MessengerAdapter):
    """Discord bot adapter using discord.py."""

    def __init__(self, token: str):
        super().__init__()
        self._token = token
        intents = discord.Intents.default()
        intents.message_content = True
        intents.members = True
        self._client = discord.Client(intents=intents)
        self._task: asyncio.Task[Any] | None = None
        self._ready = asyncio.Event()

        @self._client.event
        async def on_ready() -> None:
            user = self._client.user
            logger.info(
                "discord_bot_ready",
                user=str(user),
                bot_user_id=str(user.id) if user else None,
                guild_count=len(self._client.guilds),
            )
            await self._client.change_presence(
                activity=discord.Activity(type=discord.ActivityType.watching, name="for @mentions"),
                status=discord.Status.online,
            )
            self._ready.set()

        @self._client.event
        async def on_message(message: discord.Message) -> None:
            if message.author == self._client.user:
                return
            if message.author.bot:
                return
            await self._on_discord_message(message)

    @property
    def bot_user_id(self) -> str:
        user = self._client.user
        return str(user.id) if user else ""

    async def start(self) -> None:
        if not self._token:
            raise ValueError("Discord bot token not configured")

        self._task = asyncio.create_task(self._client.start(self._token))
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=30)
        except asyncio.TimeoutError:
            logger.warning("discord_ready_timeout")

        logger.info("discord_adapter_started")

    async def stop(self) -> None:
        await self._client.close()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("discord_adapter_stopped")

    async def _resolve_channel(self, channel_id: str) -> Any:
        channel = self._client.get_channel(int(channel_id))
        if channel is None:
            channel = await self._client.fetch_channel(int(channel_id))
        if not isinstance(channel, _MessageableChannel):
            raise ValueError(f"Channel {channel_id} does not support messages")
        return channel

    async def fetch_recent_messages(
        self, channel_id: str, limit: int, before_id: Optional[str] = None
    ) -> list[ChatMessage]:
        channel = await self._resolve_channel(channel_id)
        before = discord.Object(id=int(before_id)) if before_id else None
        history = [m async for m in channel.history(limit=limit, before=before)]
        # Discord returns newest first.
        history.reverse()
        return [self._convert(m) for m in history]

    async def send_typing(self, channel_id: str) -> None:
        channel = await self._resolve_channel(channel_id)
        await channel.typing()

    async def reply(self, channel_id: str, message_id: str, text: str) -> str:
        channel = await self._resolve_channel(channel_id)
        target = channel.get_partial_message(int(message_id))
        sent = await target.reply(text)
        return str(sent.id)

    async def send(self, channel_id: str, text: str) -> str:
        channel = await self._resolve_channel(channel_id)
        sent = await channel.send(text)
        return str(sent.id)

    async def edit_message(self, channel_id: str, message_id: str, text: str) -> None:
        channel = await self._resolve_channel(channel_id)
        await channel.get_partial_message(int(message_id)).edit(content=text)

    def _convert(self, message: discord.Message) -> ChatMessage:
        bot_user = self._client.user
        mentions_bot = bot_user is not None and any(u.id == bot_user.id for u in message.mentions)
        return ChatMessage(
            id=str(message.id),
            channel_id=str(message.channel.id),
            author_id=str(message.author.id),
            author_name=message.author.display_name,
            content=message.content or "",
            created_at=message.created_at,
            author_is_bot=message.author.bot,
            mentions_bot=mentions_bot,
            reply_to_id=(
                str(message.reference.message_id)
                if message.reference and message.reference.message_id
                else None
            ),
            attachments=[
                Attachment(
                    url=att.url,
                    filename=att.filename,
                    content_type=att.content_type,
                    size=att.size,
                    width=att.width,
                    height=att.height,
                    description=att.description,
                    spoiler=att.is_spoiler(),
                )
                for att in message.attachments
            ],
            embeds=[
                Embed(
                    title=embed.title,
                    description=embed.description,
                    url=embed.url,
                    author=embed.author.name if embed.author else None,
                    image_url=embed.image.url if embed.image else None,
                    fields=[(f.name or "", f.value or "") for f in embed.fields],
                )
                for embed in message.embeds
            ],
            reactions=[(str(r.emoji), r.count) for r in message.reactions],
            edited_at=message.edited_at,
            pinned=message.pinned,
        )

    async def _on_discord_message(self, message: discord.Message) -> None:
        if not self._message_callback:
            return

        incoming = self._convert(message)
        if not incoming.content and not incoming.attachments:
            return

        try:
            await self._message_callback(incoming)
        except Exception as e:
            logger.error("discord_handler_error", error=str(e), channel_id=incoming.channel_id)
