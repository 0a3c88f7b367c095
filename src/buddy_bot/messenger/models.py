"""Platform-neutral message models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True, slots=True)
class Attachment:
    """Attachment metadata as reported by the platform; bytes are fetched on demand."""

    url: str
    filename: str = "attachment"
    content_type: Optional[str] = None  # e.g. "image/jpeg"; platforms may omit it
    size: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    description: Optional[str] = None
    spoiler: bool = False


@dataclass(frozen=True, slots=True)
class Embed:
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    author: Optional[str] = None
    image_url: Optional[str] = None
    fields: list[tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ChatMessage:
    id: str
    channel_id: str
    author_id: str
    author_name: str
    content: str
    created_at: datetime
    author_is_bot: bool = False
    mentions_bot: bool = False
    reply_to_id: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)
    embeds: list[Embed] = field(default_factory=list)
    reactions: list[tuple[str, int]] = field(default_factory=list)
    edited_at: Optional[datetime] = None
    pinned: bool = False
