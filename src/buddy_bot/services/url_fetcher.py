"""URL content fetcher with HTML main-content extraction and a TTL cache."""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from buddy_bot.config import UrlFetcherServiceConfig
from buddy_bot.log import get_logger
from buddy_bot.services.base import Service

logger = get_logger(__name__)

_URL_PATTERN = re.compile(
    r"https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b[-a-zA-Z0-9()@:%_+.~#?&/=]*",
    re.IGNORECASE,
)

_CONTENT_SELECTORS = ("main", "article", '[role="main"]', ".content", "#content", "body")

SUPPORTED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

_EXTENSION_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


class PayloadTooLargeError(ValueError):
    """Raised when a download exceeds its byte cap."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"payload of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


@dataclass
class FetchResult:
    url: str
    content: str
    title: Optional[str] = None
    is_image: bool = False
    media_type: Optional[str] = None
    data: Optional[bytes] = None
    ok: bool = True


def extract_urls(text: str) -> list[str]:
    """Return the URLs in ``text`` in order of first appearance, without duplicates."""
    return list(dict.fromkeys(_URL_PATTERN.findall(text)))


def media_type_from_path(path: str) -> Optional[str]:
    lowered = path.lower()
    for ext, media_type in _EXTENSION_MEDIA_TYPES.items():
        if lowered.endswith(ext):
            return media_type
    return None


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "... (truncated)"
    return text


def extract_main_content(html: str, max_chars: int) -> tuple[str, str]:
    """Return ``(title, text)`` for an HTML page using a main-content heuristic."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    title = soup.title.get_text(strip=True) if soup.title else ""

    content = ""
    for selector in _CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        content = element.get_text(" ", strip=True)
        if len(content) > 100:
            break

    content = re.sub(r"\s+", " ", content).strip()
    return title, _truncate(content, max_chars)


class UrlFetcher(Service):
    """Fetches web pages and images for the model.

    Successful fetches are cached per URL for ``cache_ttl_seconds``, at most
    ``max_cache_entries`` at a time (expired entries go first, then the
    oldest). Network
    and HTTP failures are reported in ``FetchResult.content`` with
    ``ok=False`` instead of being raised.
    """

    def __init__(
        self,
        config: UrlFetcherServiceConfig,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self._cache: dict[str, tuple[float, FetchResult]] = {}

    @property
    def service_name(self) -> str:
        return "url_fetcher"

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout,
                follow_redirects=True,
                headers={"User-Agent": self._config.user_agent},
            )
        logger.info("url_fetcher_started", timeout=self._config.timeout)

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        logger.info("url_fetcher_stopped")

    async def health_check(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("UrlFetcher used before start()")
        return self._client

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    def _store(self, url: str, result: FetchResult) -> None:
        now = self._clock()
        ttl = self._config.cache_ttl_seconds
        for key in [k for k, (stored_at, _) in self._cache.items() if now - stored_at >= ttl]:
            del self._cache[key]
        # Insertion order is storage order.
        while self._cache and len(self._cache) >= self._config.max_cache_entries:
            del self._cache[next(iter(self._cache))]
        self._cache[url] = (now, result)

    async def download(self, url: str, max_bytes: int) -> bytes:
        """Download raw bytes, aborting once ``max_bytes`` is exceeded."""
        async with self.client.stream("GET", url, timeout=self._config.timeout) as response:
            response.raise_for_status()
            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                raise PayloadTooLargeError(int(declared), max_bytes)
            buffer = bytearray()
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > max_bytes:
                    raise PayloadTooLargeError(len(buffer), max_bytes)
        return bytes(buffer)

    async def fetch(self, url: str) -> FetchResult:
        cached = self._cache.get(url)
        if cached is not None:
            stored_at, result = cached
            if self._clock() - stored_at < self._config.cache_ttl_seconds:
                logger.debug("url_cache_hit", url=url)
                return result
            del self._cache[url]

        logger.info("url_fetch_start", url=url)
        try:
            result = await self._fetch_uncached(url)
        except httpx.TimeoutException:
            logger.warning("url_fetch_timeout", url=url)
            return FetchResult(url=url, content="Request timed out", ok=False)
        except PayloadTooLargeError as e:
            size_mb = e.size / (1024 * 1024)
            limit_mb = e.limit / (1024 * 1024)
            return FetchResult(
                url=url,
                content=f"Image too large to process ({size_mb:.2f}MB > {limit_mb:.0f}MB)",
                is_image=True,
                ok=False,
            )
        except httpx.HTTPError as e:
            logger.warning("url_fetch_error", url=url, error=str(e))
            return FetchResult(url=url, content=f"Error fetching URL: {e}", ok=False)

        if result.ok:
            self._store(url, result)
        return result

    async def _fetch_uncached(self, url: str) -> FetchResult:
        async with self.client.stream("GET", url, timeout=self._config.timeout) as response:
            if response.status_code >= 400:
                return FetchResult(url=url, content=f"Failed to fetch ({response.status_code})", ok=False)

            content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()

            if content_type.startswith("image/"):
                data = bytearray()
                async for chunk in response.aiter_bytes():
                    data.extend(chunk)
                    if len(data) > self._config.max_image_bytes:
                        raise PayloadTooLargeError(len(data), self._config.max_image_bytes)
                media_type = content_type
                if media_type not in SUPPORTED_IMAGE_TYPES:
                    media_type = media_type_from_path(urlparse(url).path) or "image/jpeg"
                logger.info("url_fetch_image", url=url, media_type=media_type, size=len(data))
                return FetchResult(
                    url=url,
                    content=f"[Image: {media_type}, {len(data) / (1024 * 1024):.2f}MB]",
                    is_image=True,
                    media_type=media_type,
                    data=bytes(data),
                )

            await response.aread()
            body = response.text

        if content_type == "text/html":
            title, text = extract_main_content(body, self._config.max_text_chars)
            return FetchResult(url=url, content=f"Title: {title}\n\n{text}", title=title)
        if content_type == "text/plain":
            return FetchResult(url=url, content=_truncate(body, self._config.max_text_chars))
        if content_type == "application/json" or content_type.endswith("+json"):
            try:
                pretty = json.dumps(json.loads(body), indent=2)
            except ValueError:
                pretty = body
            return FetchResult(url=url, content=_truncate(pretty, self._config.max_text_chars))
        return FetchResult(url=url, content=f"Unsupported content type: {content_type or 'unknown'}", ok=False)
