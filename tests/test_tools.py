"""Tests for the built-in tools and the registry."""

from __future__ import annotations

import httpx
import pytest

from buddy_bot.ai.tools.base import ToolCall, ToolContext
from buddy_bot.ai.tools.fetch_url import FetchUrlTool
from buddy_bot.ai.tools.read_history import ReadHistoryTool
from buddy_bot.ai.tools.read_source import ReadSourceInput, ReadSourceTool
from buddy_bot.ai.tools.registry import ToolRegistry
from buddy_bot.ai.tools.web_search import WebSearchTool
from buddy_bot.config import ServicesConfig, SourceServiceConfig, UrlFetcherServiceConfig
from buddy_bot.services.service_manager import ServiceManager
from buddy_bot.services.source_reader import SourceReader
from buddy_bot.services.url_fetcher import UrlFetcher
from buddy_bot.services.web_search import SearchResult

from conftest import BOT_ID, FakeMessenger, make_message


class _SearchStub:
    def __init__(self) -> None:
        self.queries: list[tuple[str, int | None]] = []

    async def search(self, query: str, limit: int | None = None) -> list[SearchResult]:
        self.queries.append((query, limit))
        return [SearchResult("Result", "snippet", "https://r.example", "bing")]


def _context(messenger: FakeMessenger | None = None) -> ToolContext:
    return ToolContext(channel_id="chan", bot_id=BOT_ID, messenger=messenger or FakeMessenger())


def test_discover_registers_builtin_tools():
    registry = ToolRegistry(ServiceManager(ServicesConfig()))
    registry.discover_and_register()
    names = [t.name for t in registry.all_tools()]
    assert names == ["web_search", "fetch_url", "read_source", "read_history"]
    assert [t.name for t in registry.get_tools_by_names(["read_history", "missing"])] == ["read_history"]


def test_api_dict_schema_comes_from_input_model():
    schema = WebSearchTool(_SearchStub()).to_api_dict()
    assert schema["name"] == "web_search"
    assert schema["input_schema"]["required"] == ["query"]
    assert "title" not in schema["input_schema"]
    assert ReadSourceTool(None).input_schema.get("required") is None


@pytest.mark.asyncio
async def test_web_search_tool_formats_results():
    stub = _SearchStub()
    registry = ToolRegistry()
    registry.register(WebSearchTool(stub))
    result = await registry.dispatch(ToolCall("1", "web_search", {"query": "weather"}), _context())
    assert stub.queries == [("weather", 5)]
    assert result.content.startswith('Search results for "weather":')
    assert result.is_error is False


@pytest.mark.asyncio
async def test_web_search_rejects_empty_query():
    registry = ToolRegistry()
    registry.register(WebSearchTool(_SearchStub()))
    result = await registry.dispatch(ToolCall("1", "web_search", {"query": ""}), _context())
    assert result.is_error is True


@pytest.mark.asyncio
async def test_fetch_url_tool_returns_page_text():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="plain body", headers={"content-type": "text/plain"})

    fetcher = UrlFetcher(UrlFetcherServiceConfig(), client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    registry = ToolRegistry()
    registry.register(FetchUrlTool(fetcher))
    result = await registry.dispatch(ToolCall("1", "fetch_url", {"url": "https://x.example/a.txt"}), _context())
    assert result.content == "plain body"

    invalid = await registry.dispatch(ToolCall("2", "fetch_url", {"url": "ftp://x"}), _context())
    assert invalid.is_error is True


def _source_reader() -> SourceReader:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.github.com":
            if request.url.path.endswith("/contents/src/index.ts"):
                return httpx.Response(200, json={"type": "file", "name": "index.ts"})
            return httpx.Response(
                200,
                json=[
                    {"type": "file", "name": "package.json", "size": 812},
                    {"type": "dir", "name": "src"},
                ],
            )
        if request.url.path.endswith("/main/src/index.ts"):
            return httpx.Response(200, text="console.log('hi')")
        return httpx.Response(404)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceReader(SourceServiceConfig(), client=client)


@pytest.mark.asyncio
async def test_read_source_lists_repository_without_path():
    tool = ReadSourceTool(_source_reader())
    text = await tool.execute(ReadSourceInput(), _context())
    assert text.splitlines() == ["Contents of /:", "  [DIR]  src/", "  [FILE] package.json (812 bytes)"]


@pytest.mark.asyncio
async def test_read_source_reads_file_and_reports_missing():
    tool = ReadSourceTool(_source_reader())
    assert await tool.execute(ReadSourceInput(path="src/index.ts"), _context()) == "console.log('hi')"
    missing = await tool.execute(ReadSourceInput(path="nope.ts"), _context())
    assert missing == "Error: File not found: nope.ts"
    not_dir = await tool.execute(ReadSourceInput(path="src/index.ts", is_directory=True), _context())
    assert "is a file" in not_dir


@pytest.mark.asyncio
async def test_read_history_renders_messages_and_pages():
    history = [
        make_message("first", id="10"),
        make_message("my answer", id="11", author_id=BOT_ID, author_name="buddy"),
    ]
    messenger = FakeMessenger(history)
    registry = ToolRegistry()
    registry.register(ReadHistoryTool())
    result = await registry.dispatch(
        ToolCall("1", "read_history", {"limit": 2, "before_id": "12"}), _context(messenger)
    )
    assert messenger.fetch_calls == [("chan", 2, "12")]
    assert result.content.startswith("Last 2 messages (oldest first):")
    assert "(id 10) [2024-05-01 12:30:00] alice: first" in result.content
    assert "(id 11) my answer" in result.content


@pytest.mark.asyncio
async def test_read_history_limit_is_bounded():
    registry = ToolRegistry()
    registry.register(ReadHistoryTool())
    result = await registry.dispatch(ToolCall("1", "read_history", {"limit": 500}), _context())
    assert result.is_error is True
