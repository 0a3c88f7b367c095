"""Per-channel conversation state: who is listening for follow-ups, and for how long."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Protocol

from buddy_bot.log import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeactivationScheduler(Protocol):
    """The part of SchedulerService the tracker depends on."""

    def schedule_once(
        self, job_id: str, run_at: datetime, callback: Callable[..., Awaitable[None]], *args: Any
    ) -> None:
        ...

    def cancel(self, job_id: str) -> None:
        ...


@dataclass
class ChannelConversationState:
    activated_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    follow_up_count: int = 0
    is_active: bool = True


class ConversationTracker:
    """Decides whether the bot is listening in a channel.

    A mention (re)activates a channel for ``timeout`` from the moment of the
    mention. While active, at most ``max_follow_ups`` autonomous replies are
    allowed. The deadline is anchored to activation time; sending follow-ups
    does not extend it.
    """

    def __init__(
        self,
        timeout: timedelta,
        max_follow_ups: int,
        scheduler: DeactivationScheduler | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._timeout = timeout
        self._max_follow_ups = max_follow_ups
        self._scheduler = scheduler
        self._clock = clock
        self._states: dict[str, ChannelConversationState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @staticmethod
    def _job_id(channel_id: str) -> str:
        return f"deactivate:{channel_id}"

    def on_mention(self, channel_id: str) -> ChannelConversationState:
        """Start (or restart) listening in a channel and zero its follow-up counter."""
        now = self._clock()
        expires_at = now + self._timeout
        state = ChannelConversationState(
            activated_at=now,
            last_activity_at=now,
            expires_at=expires_at,
        )
        self._states[channel_id] = state
        if self._scheduler is not None:
            # Same job id per channel: the new deadline replaces the pending one.
            self._scheduler.schedule_once(self._job_id(channel_id), expires_at, self._on_timeout, channel_id)
        logger.info("conversation_activated", channel_id=channel_id, expires_at=expires_at.isoformat())
        return state

    def is_active(self, channel_id: str) -> bool:
        state = self._states.get(channel_id)
        if state is None or not state.is_active:
            return False
        return self._clock() < state.expires_at

    def is_eligible_follow_up(self, channel_id: str) -> bool:
        """Return True if a non-mention message in this channel may get a reply.

        Reaching the follow-up cap deactivates the channel as a side effect.
        """
        if not self.is_active(channel_id):
            return False
        state = self._states[channel_id]
        if state.follow_up_count >= self._max_follow_ups:
            logger.info(
                "follow_up_cap_reached",
                channel_id=channel_id,
                follow_up_count=state.follow_up_count,
            )
            self.deactivate(channel_id)
            return False
        return True

    def record_response_sent(self, channel_id: str) -> None:
        """Count a delivered follow-up reply."""
        state = self._states.get(channel_id)
        if state is None:
            return
        state.follow_up_count += 1
        state.last_activity_at = self._clock()
        logger.debug("follow_up_recorded", channel_id=channel_id, follow_up_count=state.follow_up_count)

    async def _on_timeout(self, channel_id: str) -> None:
        logger.info("conversation_timed_out", channel_id=channel_id)
        self.deactivate(channel_id)

    def deactivate(self, channel_id: str) -> None:
        state = self._states.get(channel_id)
        if state is None or not state.is_active:
            return
        state.is_active = False
        if self._scheduler is not None:
            self._scheduler.cancel(self._job_id(channel_id))
        logger.info("conversation_deactivated", channel_id=channel_id, follow_up_count=state.follow_up_count)

    def get_state(self, channel_id: str) -> ChannelConversationState | None:
        """Snapshot accessor for diagnostics and tests."""
        return self._states.get(channel_id)

    def channel_lock(self, channel_id: str) -> asyncio.Lock:
        """Serialization token: one turn per channel at a time."""
        lock = self._locks.get(channel_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[channel_id] = lock
        return lock
