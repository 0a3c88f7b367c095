"""Abstract messenger adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from buddy_bot.messenger.models import ChatMessage


class MessengerAdapter(ABC):
    """Everything the conversation core needs from a chat platform.

    To add a new platform, subclass this and implement all abstract methods.
    Ids are strings regardless of the platform's native id type.
    """

    def __init__(self) -> None:
        self._message_callback: Callable[[ChatMessage], Awaitable[None]] | None = None

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and begin receiving messages."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Gracefully disconnect."""
        ...

    @property
    @abstractmethod
    def bot_user_id(self) -> str:
        """The bot's own author id; messages with this author are assistant turns."""
        ...

    @abstractmethod
    async def fetch_recent_messages(
        self, channel_id: str, limit: int, before_id: Optional[str] = None
    ) -> list[ChatMessage]:
        """Return up to ``limit`` messages, oldest first."""
        ...

    @abstractmethod
    async def send_typing(self, channel_id: str) -> None:
        ...

    @abstractmethod
    async def reply(self, channel_id: str, message_id: str, text: str) -> str:
        """Reply to a specific message; returns the new message id."""
        ...

    @abstractmethod
    async def send(self, channel_id: str, text: str) -> str:
        """Post a standalone message; returns the new message id."""
        ...

    @abstractmethod
    async def edit_message(self, channel_id: str, message_id: str, text: str) -> None:
        ...

    def on_message(self, callback: Callable[[ChatMessage], Awaitable[None]]) -> None:
        """Register the callback invoked for every incoming message."""
        self._message_callback = callback
