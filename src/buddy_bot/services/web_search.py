"""Web search with SearXNG instances and a DuckDuckGo instant-answer fallback."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote_plus

import httpx

from buddy_bot.config import WebSearchServiceConfig
from buddy_bot.log import get_logger
from buddy_bot.services.base import Service

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SearchResult:
    title: str
    snippet: str
    url: str
    source: str


def search_link_result(query: str, snippet: str) -> SearchResult:
    """A manually built result pointing at a search page; used when every backend fails."""
    return SearchResult(
        title=f'Search for "{query}"',
        snippet=snippet,
        url=f"https://duckduckgo.com/?q={quote_plus(query)}",
        source="DuckDuckGo",
    )


class WebSearchService(Service):
    """Searches the web without an API key.

    Backends are tried in order: the primary SearXNG instance, each alternate
    instance, then DuckDuckGo instant answers. If all of them come back empty
    the caller still gets a single search-link result.
    """

    def __init__(self, config: WebSearchServiceConfig, client: httpx.AsyncClient | None = None):
        self._config = config
        self._client = client
        self._owns_client = client is None

    @property
    def service_name(self) -> str:
        return "web_search"

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout,
                headers={"Accept": "application/json"},
            )
        logger.info("web_search_started", primary=self._config.primary_instance)

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        logger.info("web_search_stopped")

    async def health_check(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("WebSearchService used before start()")
        return self._client

    async def search(self, query: str, limit: int | None = None) -> list[SearchResult]:
        limit = limit or self._config.result_limit
        logger.info("web_search", query=query, limit=limit)

        instances = [self._config.primary_instance, *self._config.alternate_instances]
        for instance in instances:
            try:
                results = await self._search_searxng(instance, query, limit)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("searxng_failed", instance=instance, error=str(e))
                continue
            if results:
                logger.info("web_search_ok", backend=instance, count=len(results))
                return results
            logger.info("searxng_empty", instance=instance)

        try:
            results = await self._search_duckduckgo(query, limit)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("duckduckgo_failed", error=str(e))
            return [
                search_link_result(query, "Search service temporarily unavailable. Please try again later.")
            ]
        if results:
            return results
        return [
            search_link_result(
                query,
                f'Click to search for "{query}" on DuckDuckGo. '
                "Direct API results were not available for this query.",
            )
        ]

    async def _search_searxng(self, instance: str, query: str, limit: int) -> list[SearchResult]:
        response = await self.client.get(
            f"{instance.rstrip('/')}/search",
            params={"q": query, "format": "json", "language": "en"},
            timeout=self._config.timeout,
        )
        response.raise_for_status()
        data: dict[str, Any] = response.json()
        return [
            SearchResult(
                title=item.get("title") or "Untitled",
                snippet=item.get("content") or item.get("description") or "No description available",
                url=item.get("url") or "",
                source=item.get("engine") or "Web Search",
            )
            for item in (data.get("results") or [])[:limit]
        ]

    async def _search_duckduckgo(self, query: str, limit: int) -> list[SearchResult]:
        response = await self.client.get(
            self._config.duckduckgo_url,
            params={"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"},
            timeout=self._config.timeout,
        )
        response.raise_for_status()
        data: dict[str, Any] = response.json()

        results: list[SearchResult] = []
        if data.get("AbstractText"):
            results.append(
                SearchResult(
                    title=data.get("Heading") or query,
                    snippet=data["AbstractText"],
                    url=data.get("AbstractURL") or f"https://duckduckgo.com/?q={quote_plus(query)}",
                    source="DuckDuckGo Instant Answer",
                )
            )
        for topic in data.get("RelatedTopics") or []:
            if len(results) >= limit:
                break
            text = topic.get("Text") if isinstance(topic, dict) else None
            if not text:
                continue
            results.append(
                SearchResult(
                    title=text.split(" - ")[0] or "Related Topic",
                    snippet=text,
                    url=topic.get("FirstURL") or "",
                    source="DuckDuckGo",
                )
            )
        return results


def format_results(query: str, results: list[SearchResult]) -> str:
    """Render results as the text block handed back to the model."""
    lines = [f'Search results for "{query}":', ""]
    for idx, result in enumerate(results, start=1):
        lines.append(f"{idx}. {result.title}")
        lines.append(f"   {result.snippet}")
        if result.url:
            lines.append(f"   URL: {result.url}")
        lines.append(f"   Source: {result.source}")
        lines.append("")
    return "\n".join(lines).rstrip()
