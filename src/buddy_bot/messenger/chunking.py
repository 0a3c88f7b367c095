"""Split long replies into platform-sized messages."""

from __future__ import annotations

DISCORD_MESSAGE_LIMIT = 2000


def chunk_text(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    """Split ``text`` into ordered chunks of at most ``limit`` characters.

    Splits at the last whitespace inside the window when there is one,
    otherwise hard-splits at ``limit``. The boundary whitespace stays at the
    end of the earlier chunk and leading whitespace of each continuation
    chunk is dropped, so joining the chunks after stripping continuation
    whitespace reproduces the input.
    """
    if limit <= 0:
        raise ValueError("limit must be positive")
    if not text:
        return []

    chunks: list[str] = []
    remaining = text
    while len(remaining) > limit:
        window = remaining[:limit]
        split_pos = max(window.rfind(" "), window.rfind("\n"), window.rfind("\t"))
        if split_pos <= 0:
            split_pos = limit
        else:
            split_pos += 1
        chunks.append(remaining[:split_pos])
        remaining = remaining[split_pos:].lstrip()
    if remaining:
        chunks.append(remaining)
    return chunks
