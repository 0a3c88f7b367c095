"""Read the bot's own source repository from GitHub."""

from __future__ import annotations

from typing import Any

import httpx

from buddy_bot.config import SourceServiceConfig
from buddy_bot.log import get_logger
from buddy_bot.services.base import Service

logger = get_logger(__name__)


class SourceReader(Service):
    """Lists directories and reads files of a public GitHub repository."""

    def __init__(self, config: SourceServiceConfig, client: httpx.AsyncClient | None = None):
        self._config = config
        self._client = client
        self._owns_client = client is None

    @property
    def service_name(self) -> str:
        return "source_reader"

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=10.0, follow_redirects=True)
        logger.info("source_reader_started", repo=f"{self._config.owner}/{self._config.repo}")

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("SourceReader used before start()")
        return self._client

    async def list_directory(self, path: str = "") -> str:
        """Return a directory listing, directories first. Raises httpx.HTTPError on failure."""
        cfg = self._config
        url = f"{cfg.api_url}/repos/{cfg.owner}/{cfg.repo}/contents/{path.strip('/')}"
        response = await self.client.get(
            url,
            params={"ref": cfg.branch},
            headers={"Accept": "application/vnd.github.v3+json"},
        )
        response.raise_for_status()
        entries: list[dict[str, Any]] = response.json()
        if isinstance(entries, dict):
            raise ValueError(f"'{path}' is a file, not a directory")

        entries.sort(key=lambda e: (e.get("type") != "dir", e.get("name", "")))
        lines = [f"Contents of /{path.strip('/')}:"]
        for entry in entries:
            if entry.get("type") == "dir":
                lines.append(f"  [DIR]  {entry['name']}/")
            else:
                lines.append(f"  [FILE] {entry['name']} ({entry.get('size', 0)} bytes)")
        return "\n".join(lines)

    async def read_file(self, path: str) -> str:
        """Return file content, truncated to ``max_file_chars``. Raises httpx.HTTPError on failure."""
        cfg = self._config
        url = f"{cfg.raw_url}/{cfg.owner}/{cfg.repo}/{cfg.branch}/{path.lstrip('/')}"
        response = await self.client.get(url)
        if response.status_code == 404:
            raise FileNotFoundError(f"File not found: {path}")
        response.raise_for_status()
        content = response.text
        if len(content) > cfg.max_file_chars:
            content = content[: cfg.max_file_chars] + "\n... (truncated)"
        logger.debug("source_file_read", path=path, chars=len(content))
        return content
