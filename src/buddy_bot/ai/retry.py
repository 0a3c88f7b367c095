"""Bounded exponential backoff for model calls."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from buddy_bot.ai.errors import TransientModelError
from buddy_bot.config import RetryConfig
from buddy_bot.log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(max_retries=config.max_retries, base_delay=config.base_delay, max_delay=config.max_delay)

    def delay_for(self, retry_index: int) -> float:
        """Delay before retry ``retry_index`` (0-based): 1s, 2s, 4s... capped at max_delay."""
        return min(self.base_delay * (2**retry_index), self.max_delay)

    def retrying(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry: Callable[[], None] | None = None,
    ) -> AsyncRetrying:
        def _before_sleep(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            logger.warning(
                "model_call_retry",
                status=getattr(error, "status", None),
                delay=state.next_action.sleep if state.next_action else None,
                attempt=state.attempt_number,
                max_retries=self.max_retries,
            )
            if on_retry is not None:
                on_retry()

        return AsyncRetrying(
            sleep=sleep,
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception_type(TransientModelError),
            before_sleep=_before_sleep,
        )


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Callable[[], None] | None = None,
) -> T:
    """Await ``fn()``, retrying only TransientModelError.

    At most ``policy.max_retries`` retries follow the first attempt; the last
    TransientModelError is re-raised once they are used up. Every other
    exception propagates immediately. ``on_retry`` runs before each retry, so
    callers can discard partial output of the failed attempt.
    """
    try:
        return await policy.retrying(sleep=sleep, on_retry=on_retry)(fn)
    except TransientModelError as e:
        logger.error(
            "model_retries_exhausted",
            attempts=policy.max_retries + 1,
            status=e.status,
            error=str(e),
        )
        raise
