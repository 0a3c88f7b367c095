"""Token estimation and recency-preserving context trimming."""

from __future__ import annotations

import functools
import json
import re
from typing import Any

import tiktoken

from buddy_bot.log import get_logger

logger = get_logger(__name__)

Message = dict[str, Any]

DEFAULT_ENCODING = "cl100k_base"

# USD per million tokens, by model family.
_MODEL_COSTS: dict[str, tuple[float, float]] = {
    "claude-3-haiku": (0.25, 1.25),
    "claude-3-5-haiku": (0.80, 4.0),
    "claude-3-5-sonnet": (3.0, 15.0),
    "claude-sonnet": (3.0, 15.0),
    "claude-3-opus": (15.0, 75.0),
    "claude-opus": (15.0, 75.0),
}


_NOTICE_RE = re.compile(r"^\[Context Note: (\d+) earlier messages were trimmed to fit token limit\]$")


@functools.lru_cache(maxsize=None)
def _encoding(name: str) -> tiktoken.Encoding:
    return tiktoken.get_encoding(name)


def trim_notice(dropped: int) -> Message:
    return {
        "role": "user",
        "content": f"[Context Note: {dropped} earlier messages were trimmed to fit token limit]",
    }


def notice_count(message: Message) -> int | None:
    """Number of messages a trim notice reports, or None for any other message."""
    content = message.get("content")
    if message.get("role") != "user" or not isinstance(content, str):
        return None
    match = _NOTICE_RE.match(content)
    return int(match.group(1)) if match else None


class TokenBudgeter:
    """Token estimates for Anthropic-style message lists.

    Text is counted with a tiktoken encoding (``cl100k_base``, a close
    stand-in for Claude's tokenizer), every message pays a fixed structural
    overhead plus its role, and every image block costs a flat
    ``image_tokens``.
    """

    def __init__(
        self,
        encoding_name: str = DEFAULT_ENCODING,
        message_overhead: int = 4,
        image_tokens: int = 1500,
    ):
        self._encoding = _encoding(encoding_name)
        self.message_overhead = message_overhead
        self.image_tokens = image_tokens

    def count_text(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode(text, disallowed_special=()))

    def _count_block(self, block: Any) -> int:
        if isinstance(block, str):
            return self.count_text(block)
        if not isinstance(block, dict):
            return 0
        kind = block.get("type")
        if kind == "text":
            return self.count_text(block.get("text") or "")
        if kind == "image":
            return self.image_tokens
        if kind == "tool_use":
            return self.count_text(block.get("name") or "") + self.count_text(
                json.dumps(block.get("input") or {}, sort_keys=True)
            )
        if kind == "tool_result":
            content = block.get("content")
            if isinstance(content, list):
                return sum(self._count_block(b) for b in content)
            return self.count_text(content or "")
        return 0

    def estimate_message(self, message: Message) -> int:
        tokens = self.message_overhead + self.count_text(message.get("role", ""))
        content = message.get("content")
        if isinstance(content, str):
            tokens += self.count_text(content)
        elif isinstance(content, list):
            tokens += sum(self._count_block(block) for block in content)
        return tokens

    def estimate(self, messages: list[Message]) -> int:
        return sum(self.estimate_message(m) for m in messages)

    def trim(self, messages: list[Message], budget: int, preserve_tail: int = 5) -> list[Message]:
        return self.trim_counted(messages, budget, preserve_tail)[0]

    def trim_counted(
        self, messages: list[Message], budget: int, preserve_tail: int = 5
    ) -> tuple[list[Message], int]:
        """Drop the oldest messages until the estimate fits ``budget``.

        The last ``preserve_tail`` messages are always kept, whatever they
        cost. Older messages are admitted newest first and admission stops at
        the first one that would overflow. When anything is dropped, a single
        notice message is prepended; the notice is not charged to the budget.
        A notice already leading ``messages`` is folded into the new one, so
        trimming its own output again changes nothing. Returns the trimmed list
        and the total number of messages the notice reports.
        """
        earlier = notice_count(messages[0]) if messages else None
        body = messages[1:] if earlier is not None else messages
        earlier = earlier or 0

        if len(body) <= preserve_tail:
            return list(messages), earlier

        split = len(body) - preserve_tail if preserve_tail > 0 else len(body)
        older, tail = body[:split], body[split:]

        used = self.estimate(tail)
        kept: list[Message] = []
        for message in reversed(older):
            cost = self.estimate_message(message)
            if used + cost > budget:
                break
            kept.append(message)
            used += cost
        kept.reverse()

        dropped = len(older) - len(kept)
        if dropped == 0:
            return list(messages), earlier
        dropped += earlier

        logger.info(
            "context_trimmed",
            dropped=dropped,
            kept=len(kept) + len(tail),
            estimated_tokens=used,
            budget=budget,
        )
        return [trim_notice(dropped), *kept, *tail], dropped


def estimate_cost(input_tokens: int, output_tokens: int, model: str) -> float:
    """Rough USD cost of a call, for logging only."""
    rates = _MODEL_COSTS["claude-3-5-sonnet"]
    # Longest matching family prefix wins (claude-3-5-haiku before claude-3-haiku style clashes).
    for family in sorted(_MODEL_COSTS, key=len, reverse=True):
        if model.startswith(family):
            rates = _MODEL_COSTS[family]
            break
    input_rate, output_rate = rates
    return (input_tokens * input_rate + output_tokens * output_rate) / 1_000_000
