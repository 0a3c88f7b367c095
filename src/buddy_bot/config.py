"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class DiscordConfig(BaseModel):
    token: str
    max_message_length: int = 2000


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    # Retrying is owned by buddy_bot.ai.retry; the SDK must not retry on its own.
    max_retries: int = 0
    timeout: int = 120


class AIConfig(BaseModel):
    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 2000
    temperature: float = 0.7
    system_prompt: str = ""  # empty = built-in persona prompt
    source_url: str = "https://github.com/asktree/disclaude"


class ConversationConfig(BaseModel):
    max_context_messages: int = 20
    max_context_tokens: int = 100_000
    preserve_latest: int = 5
    follow_up_timeout_seconds: float = 30.0
    follow_up_message_count: int = 3
    fetch_urls: bool = True
    url_lookback_messages: int = 5


class ToolsConfig(BaseModel):
    enabled: list[str] = Field(
        default_factory=lambda: ["web_search", "fetch_url", "read_source", "read_history"]
    )
    max_rounds: int = 5


class RetryConfig(BaseModel):
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0


class StreamingConfig(BaseModel):
    enabled: bool = False
    update_interval_ms: int = 1000


class WebSearchServiceConfig(BaseModel):
    primary_instance: str = "https://searx.be"
    alternate_instances: list[str] = Field(
        default_factory=lambda: [
            "https://search.bus-hit.me",
            "https://searx.tiekoetter.com",
            "https://searx.fmac.xyz",
        ]
    )
    duckduckgo_url: str = "https://api.duckduckgo.com/"
    timeout: float = 5.0
    result_limit: int = 5


class UrlFetcherServiceConfig(BaseModel):
    timeout: float = 10.0
    max_text_chars: int = 5000
    max_image_bytes: int = 10 * 1024 * 1024
    cache_ttl_seconds: float = 15 * 60
    max_cache_entries: int = 256
    user_agent: str = "Mozilla/5.0 (compatible; BuddyBot/1.0)"


class SourceServiceConfig(BaseModel):
    owner: str = "asktree"
    repo: str = "disclaude"
    branch: str = "main"
    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"
    max_file_chars: int = 20_000


class SchedulerServiceConfig(BaseModel):
    timezone: str = "UTC"


class ServicesConfig(BaseModel):
    web_search: WebSearchServiceConfig = Field(default_factory=WebSearchServiceConfig)
    url_fetcher: UrlFetcherServiceConfig = Field(default_factory=UrlFetcherServiceConfig)
    source: SourceServiceConfig = Field(default_factory=SourceServiceConfig)
    scheduler: SchedulerServiceConfig = Field(default_factory=SchedulerServiceConfig)


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    discord: DiscordConfig
    anthropic: AnthropicConfig
    ai: AIConfig = Field(default_factory=AIConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    services: ServicesConfig = Field(default_factory=ServicesConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")

_TRUTHY = {"1", "true", "yes", "on"}


def _interpolate_env_vars(text: str, environ: dict[str, str]) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        value = environ.get(match.group(1))
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def _apply_env_overrides(data: dict[str, Any], environ: dict[str, str]) -> dict[str, Any]:
    """Layer the legacy deployment variables on top of the YAML values."""
    ai = data.setdefault("ai", {}) or {}
    conversation = data.setdefault("conversation", {}) or {}
    streaming = data.setdefault("streaming", {}) or {}
    data["ai"], data["conversation"], data["streaming"] = ai, conversation, streaming

    if environ.get("CLAUDE_MODEL"):
        ai["model"] = environ["CLAUDE_MODEL"]
    if environ.get("MAX_CONTEXT_MESSAGES"):
        conversation["max_context_messages"] = int(environ["MAX_CONTEXT_MESSAGES"])
    if environ.get("FOLLOW_UP_TIMEOUT_MS"):
        conversation["follow_up_timeout_seconds"] = int(environ["FOLLOW_UP_TIMEOUT_MS"]) / 1000
    if environ.get("FOLLOW_UP_MESSAGE_COUNT"):
        conversation["follow_up_message_count"] = int(environ["FOLLOW_UP_MESSAGE_COUNT"])
    if environ.get("STREAM_RESPONSES"):
        streaming["enabled"] = environ["STREAM_RESPONSES"].strip().lower() in _TRUTHY
    if environ.get("STREAM_UPDATE_INTERVAL_MS"):
        streaming["update_interval_ms"] = int(environ["STREAM_UPDATE_INTERVAL_MS"])
    return data


def parse_config(raw_text: str, environ: dict[str, str] | None = None) -> AppConfig:
    """Validate YAML text into an AppConfig, applying env interpolation and overrides."""
    env = dict(os.environ) if environ is None else environ
    data = yaml.safe_load(_interpolate_env_vars(raw_text, env)) or {}
    return AppConfig(**_apply_env_overrides(data, env))


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    return parse_config(config_file.read_text(encoding="utf-8"))
