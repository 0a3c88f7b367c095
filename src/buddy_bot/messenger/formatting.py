"""Human-readable rendering of chat messages for the history tool."""

from __future__ import annotations

import re

from buddy_bot.messenger.models import ChatMessage

_IMAGE_NAME = re.compile(r"\.(png|jpe?g|gif|webp|avif|bmp|tiff)$", re.IGNORECASE)


def build_message_representation(msg: ChatMessage, bot_id: str) -> str:
    """Render a message with its metadata.

    The bot's own messages are returned as bare content; user messages carry
    author, timestamp, attachments, embeds, reactions and reply markers.
    """
    if msg.author_id == bot_id:
        return msg.content or "[No text content]"

    header = f"[{msg.created_at:%Y-%m-%d %H:%M:%S}] {msg.author_name}"
    if msg.author_is_bot:
        header += " [BOT]"
    if msg.content:
        header += f": {msg.content}"
    elif not msg.attachments and not msg.embeds:
        header += ": [No text content]"
    else:
        header += ":"

    lines = [header]

    if msg.attachments:
        lines.append("  Attachments:")
        for att in msg.attachments:
            lines.append(f"    - {att.filename}")
            lines.append(f"      Type: {att.content_type or 'unknown'}")
            lines.append(f"      Size: {att.size / 1024:.2f}KB")
            lines.append(f"      URL: {att.url}")
            is_image = (att.content_type or "").startswith("image/") or bool(_IMAGE_NAME.search(att.filename))
            if is_image:
                if att.width and att.height:
                    lines.append(f"      Dimensions: {att.width}x{att.height}")
                lines.append("      [Image attachment]")
            if att.description:
                lines.append(f"      Description: {att.description}")
            if att.spoiler:
                lines.append("      [SPOILER]")

    if msg.embeds:
        lines.append(f"  Embeds ({len(msg.embeds)}):")
        for embed in msg.embeds:
            if embed.title:
                lines.append(f"    - Title: {embed.title}")
            if embed.description:
                lines.append(f"      Description: {embed.description}")
            if embed.url:
                lines.append(f"      URL: {embed.url}")
            if embed.author:
                lines.append(f"      Author: {embed.author}")
            if embed.image_url:
                lines.append(f"      Image: {embed.image_url}")
            for name, value in embed.fields:
                suffix = "..." if len(value) > 50 else ""
                lines.append(f"      Field {name}: {value[:50]}{suffix}")

    if msg.reactions:
        rendered = ", ".join(f"{emoji} x{count}" for emoji, count in msg.reactions)
        lines.append(f"  Reactions: {rendered}")
    if msg.reply_to_id:
        lines.append(f"  Replying to message {msg.reply_to_id}")
    if msg.edited_at:
        lines.append(f"  Edited at {msg.edited_at:%Y-%m-%d %H:%M:%S}")
    if msg.pinned:
        lines.append("  Pinned message")

    return "\n".join(lines)
