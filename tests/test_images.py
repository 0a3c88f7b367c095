"""Tests for image classification and signature checks."""

from __future__ import annotations

from buddy_bot.ai.images import (
    detect_media_type,
    has_valid_signature,
    is_supported_image,
    looks_like_image,
    resolve_media_type,
)
from buddy_bot.messenger.models import Attachment

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 16
GIF = b"GIF89a" + b"\x00" * 16
WEBP = b"RIFF\x10\x00\x00\x00WEBPVP8 "


def test_detect_media_type():
    assert detect_media_type(PNG) == "image/png"
    assert detect_media_type(JPEG) == "image/jpeg"
    assert detect_media_type(GIF) == "image/gif"
    assert detect_media_type(WEBP) == "image/webp"
    assert detect_media_type(b"<html>") is None


def test_signature_must_match_declared_type():
    assert has_valid_signature(PNG, "image/png")
    assert not has_valid_signature(PNG, "image/jpeg")
    assert not has_valid_signature(b"\x89P", "image/png")


def test_supported_image_by_content_type_or_extension():
    assert is_supported_image(Attachment(url="u", filename="blob", content_type="image/webp"))
    assert is_supported_image(Attachment(url="u", filename="photo.JPG"))
    assert not is_supported_image(Attachment(url="u", filename="scan.bmp", content_type="image/bmp"))
    assert not is_supported_image(Attachment(url="u", filename="notes.txt", content_type="text/plain"))


def test_unsupported_images_still_look_like_images():
    assert looks_like_image(Attachment(url="u", filename="scan.bmp"))
    assert not looks_like_image(Attachment(url="u", filename="notes.txt"))


def test_resolve_media_type_prefers_declared_type():
    assert resolve_media_type(Attachment(url="u", filename="a.png", content_type="image/gif")) == "image/gif"
    assert resolve_media_type(Attachment(url="u", filename="a.png")) == "image/png"
    assert resolve_media_type(Attachment(url="u", filename="a", content_type="image/webp")) == "image/webp"
