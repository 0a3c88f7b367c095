"""Image attachment classification and magic-byte validation."""

from __future__ import annotations

import re
from typing import Optional

from buddy_bot.messenger.models import Attachment
from buddy_bot.services.url_fetcher import SUPPORTED_IMAGE_TYPES, media_type_from_path

MAX_IMAGE_BYTES = 10 * 1024 * 1024

_SUPPORTED_EXTENSION = re.compile(r"\.(png|jpe?g|gif|webp)$", re.IGNORECASE)
_ANY_IMAGE_EXTENSION = re.compile(r"\.(png|jpe?g|gif|webp|avif|bmp|tiff?|heic)$", re.IGNORECASE)


def is_supported_image(att: Attachment) -> bool:
    """Declared content type first, file extension second."""
    if att.content_type and att.content_type.lower() in SUPPORTED_IMAGE_TYPES:
        return True
    return bool(_SUPPORTED_EXTENSION.search(att.filename or ""))


def looks_like_image(att: Attachment) -> bool:
    return (att.content_type or "").lower().startswith("image/") or bool(
        _ANY_IMAGE_EXTENSION.search(att.filename or "")
    )


def resolve_media_type(att: Attachment) -> str:
    declared = (att.content_type or "").lower()
    if declared in SUPPORTED_IMAGE_TYPES:
        return declared
    return media_type_from_path(att.filename or "") or "image/jpeg"


def detect_media_type(data: bytes) -> Optional[str]:
    """Identify a supported image format from its leading bytes."""
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def has_valid_signature(data: bytes, media_type: str) -> bool:
    """True when ``data`` starts with the signature of ``media_type``."""
    if len(data) < 4:
        return False
    return detect_media_type(data) == media_type
