"""Build the model's message list from channel history."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any

import httpx

from buddy_bot.ai.budget import TokenBudgeter
from buddy_bot.ai.images import (
    MAX_IMAGE_BYTES,
    has_valid_signature,
    is_supported_image,
    looks_like_image,
    resolve_media_type,
)
from buddy_bot.config import ConversationConfig
from buddy_bot.log import get_logger
from buddy_bot.messenger.base import MessengerAdapter
from buddy_bot.messenger.models import Attachment, ChatMessage
from buddy_bot.services.url_fetcher import PayloadTooLargeError, UrlFetcher, extract_urls

logger = get_logger(__name__)

Message = dict[str, Any]


@dataclass
class AssembledContext:
    """Everything a turn needs from the channel: messages, extra system text, raw history."""

    messages: list[Message]
    additional_context: str = ""
    history: list[ChatMessage] = field(default_factory=list)
    fetched_url: str | None = None
    dropped: int = 0


def _text_block(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def _image_block(data: bytes, media_type: str) -> dict[str, Any]:
    return {
        "type": "image",
        "source": {
            "type": "base64",
            "media_type": media_type,
            "data": base64.b64encode(data).decode(),
        },
    }


def _as_blocks(content: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [_text_block(content)] if content else []
    return list(content)


def normalize_roles(messages: list[Message]) -> list[Message]:
    """Merge consecutive same-role messages and make sure the list opens with a user turn."""
    merged: list[Message] = []
    for message in messages:
        if merged and merged[-1]["role"] == message["role"]:
            previous = merged[-1]
            if isinstance(previous["content"], str) and isinstance(message["content"], str):
                previous["content"] = f"{previous['content']}\n\n{message['content']}"
            else:
                previous["content"] = _as_blocks(previous["content"]) + _as_blocks(message["content"])
            continue
        merged.append({"role": message["role"], "content": message["content"]})

    if merged and merged[0]["role"] != "user":
        merged.insert(0, {"role": "user", "content": "[Earlier conversation omitted]"})
    return merged


class ContextAssembler:
    """Turns raw channel history into a bounded, role-tagged message list.

    History fetch failures yield an empty history, attachment problems yield
    inline placeholder text, and a failed URL fetch just leaves the extra
    context empty. None of them abort the turn.
    """

    def __init__(
        self,
        messenger: MessengerAdapter,
        url_fetcher: UrlFetcher,
        budgeter: TokenBudgeter,
        config: ConversationConfig,
        max_image_bytes: int = MAX_IMAGE_BYTES,
    ):
        self._messenger = messenger
        self._url_fetcher = url_fetcher
        self._budgeter = budgeter
        self._config = config
        self._max_image_bytes = max_image_bytes

    async def fetch_history(self, channel_id: str, limit: int) -> list[ChatMessage]:
        try:
            return await self._messenger.fetch_recent_messages(channel_id, limit)
        except Exception as e:
            logger.error("context_fetch_failed", channel_id=channel_id, error=str(e))
            return []

    async def build_context(self, channel_id: str, limit: int | None = None) -> AssembledContext:
        limit = limit or self._config.max_context_messages
        history = await self.fetch_history(channel_id, limit)
        bot_id = self._messenger.bot_user_id

        if any(is_supported_image(att) for msg in history for att in msg.attachments):
            messages = await self.format_with_images(history, bot_id)
        else:
            messages = self.format_plain(history, bot_id)

        additional_context = ""
        fetched_url = None
        if self._config.fetch_urls:
            fetched_url, additional_context, image = await self._fetch_url_context(history)
            if image is not None:
                self._attach_to_last_user_message(messages, image)

        messages, dropped = self._budgeter.trim_counted(
            messages,
            budget=self._config.max_context_tokens,
            preserve_tail=self._config.preserve_latest,
        )
        messages = normalize_roles(messages)
        logger.info(
            "context_built",
            channel_id=channel_id,
            history=len(history),
            messages=len(messages),
            dropped=dropped,
            estimated_tokens=self._budgeter.estimate(messages),
            fetched_url=fetched_url,
        )
        return AssembledContext(
            messages=messages,
            additional_context=additional_context,
            history=history,
            fetched_url=fetched_url,
            dropped=dropped,
        )

    @staticmethod
    def _role(msg: ChatMessage, bot_id: str) -> str:
        return "assistant" if msg.author_id == bot_id else "user"

    def format_plain(self, history: list[ChatMessage], bot_id: str) -> list[Message]:
        messages: list[Message] = []
        for msg in history:
            parts = [msg.content] if msg.content else []
            parts.extend(f"[Attachment: {att.filename}]" for att in msg.attachments)
            if not parts:
                continue
            messages.append({"role": self._role(msg, bot_id), "content": "\n".join(parts)})
        return messages

    async def format_with_images(self, history: list[ChatMessage], bot_id: str) -> list[Message]:
        messages: list[Message] = []
        for msg in history:
            content: list[dict[str, Any]] = []
            if msg.content:
                content.append(_text_block(msg.content))

            for att in msg.attachments:
                if is_supported_image(att):
                    block = await self._load_image(att)
                    content.append(block)
                    if block["type"] == "image" and not msg.content:
                        content.insert(0, _text_block(f"[Image: {att.filename}]"))
                elif looks_like_image(att):
                    logger.info(
                        "image_unsupported_skipped",
                        filename=att.filename,
                        content_type=att.content_type,
                    )
                    content.append(_text_block(f"[Unsupported image format: {att.filename}]"))
                else:
                    content.append(_text_block(f"[Attachment: {att.filename}]"))

            if not content:
                continue
            if len(content) == 1 and content[0]["type"] == "text":
                messages.append({"role": self._role(msg, bot_id), "content": content[0]["text"]})
            else:
                messages.append({"role": self._role(msg, bot_id), "content": content})
        return messages

    async def _load_image(self, att: Attachment) -> dict[str, Any]:
        try:
            data = await self._url_fetcher.download(att.url, self._max_image_bytes)
        except PayloadTooLargeError as e:
            size_mb = e.size / (1024 * 1024)
            logger.info("image_too_large", filename=att.filename, size_mb=round(size_mb, 2))
            return _text_block(f"[Image too large to process: {att.filename} ({size_mb:.2f}MB)]")
        except (httpx.HTTPError, RuntimeError) as e:
            logger.warning("image_download_failed", filename=att.filename, error=str(e))
            return _text_block(f"[Failed to load image: {att.filename}]")

        if not data:
            return _text_block(f"[Failed to load image: {att.filename}]")

        media_type = resolve_media_type(att)
        if not has_valid_signature(data, media_type):
            logger.info("image_signature_mismatch", filename=att.filename, media_type=media_type)
            return _text_block(f"[Unable to process image: {att.filename} - may be corrupted]")

        logger.debug("image_loaded", filename=att.filename, media_type=media_type, size=len(data))
        return _image_block(data, media_type)

    async def _fetch_url_context(
        self, history: list[ChatMessage]
    ) -> tuple[str | None, str, dict[str, Any] | None]:
        """Fetch the most recently mentioned URL in the lookback window.

        Returns ``(url, extra_system_text, image_block)``.
        """
        lookback = history[-self._config.url_lookback_messages :] if self._config.url_lookback_messages else []
        url = None
        for msg in reversed(lookback):
            urls = extract_urls(msg.content)
            if urls:
                url = urls[-1]
                break
        if url is None:
            return None, "", None

        result = await self._url_fetcher.fetch(url)
        if not result.ok:
            logger.info("url_context_unavailable", url=url, reason=result.content)
            return url, "", None
        if result.is_image and result.data is not None and result.media_type:
            if has_valid_signature(result.data, result.media_type):
                return url, "", _image_block(result.data, result.media_type)
            return url, "", None
        return url, f"\n\nContent from {url}:\n{result.content}", None

    @staticmethod
    def _attach_to_last_user_message(messages: list[Message], block: dict[str, Any]) -> None:
        for message in reversed(messages):
            if message["role"] != "user":
                continue
            message["content"] = _as_blocks(message["content"]) + [block]
            return
