"""Model-call error taxonomy and the user-facing text for each class."""

from __future__ import annotations

from typing import Optional


class ModelError(Exception):
    """Base class for failures talking to the model API."""

    user_message = "Sorry, I encountered an error while processing your request."

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TransientModelError(ModelError):
    """Overload, 5xx, explicit retry hint or a dropped connection. Safe to retry."""

    user_message = "Sorry, Claude's servers are busy right now. Please try again in a moment."


class RateLimitedError(ModelError):
    """HTTP 429. Surfaced immediately, never retried."""

    user_message = "Sorry, we're hitting rate limits. Please wait a moment before trying again."


class PermanentModelError(ModelError):
    """Malformed request, auth failure and every other non-retryable API error."""


class UnexpectedResponseError(ModelError):
    """The model answered with neither text nor a recognised tool call."""

    user_message = "Sorry, I got an unexpected response and couldn't finish that one."


def user_message_for(error: BaseException) -> str:
    if isinstance(error, ModelError):
        return error.user_message
    return ModelError.user_message
