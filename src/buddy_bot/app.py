"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from datetime import timedelta

from buddy_bot.ai.budget import TokenBudgeter
from buddy_bot.ai.client import AIClient, AnthropicClient
from buddy_bot.ai.conversation import ContextAssembler
from buddy_bot.ai.handler import MessageHandler
from buddy_bot.ai.retry import RetryPolicy
from buddy_bot.ai.tool_runner import ToolOrchestrator
from buddy_bot.ai.tools.registry import ToolRegistry
from buddy_bot.config import AppConfig
from buddy_bot.core.tracker import ConversationTracker
from buddy_bot.log import get_logger
from buddy_bot.messenger.base import MessengerAdapter
from buddy_bot.services.service_manager import ServiceManager

logger = get_logger(__name__)


class BuddyBotApp:
    """Top-level application orchestrator."""

    def __init__(
        self,
        config: AppConfig,
        adapter: MessengerAdapter | None = None,
        ai_client: AIClient | None = None,
    ):
        self.config = config
        self.service_manager = ServiceManager(config.services)
        self.tool_registry = ToolRegistry(self.service_manager)
        self.adapter = adapter or self._create_adapter()
        self.ai_client = ai_client or AnthropicClient(config.anthropic, config.ai)
        self.tracker = ConversationTracker(
            timeout=timedelta(seconds=config.conversation.follow_up_timeout_seconds),
            max_follow_ups=config.conversation.follow_up_message_count,
            scheduler=self.service_manager.get_scheduler(),
        )
        self.handler: MessageHandler | None = None

    async def start(self) -> None:
        """Initialize and start all components."""
        # 1. Services
        await self.service_manager.start_all()
        logger.info("service_health", **await self.service_manager.health_check_all())

        # 2. Tools
        self.tool_registry.discover_and_register()
        tools = self.tool_registry.get_tools_by_names(self.config.tools.enabled)

        # 3. Turn pipeline
        assembler = ContextAssembler(
            messenger=self.adapter,
            url_fetcher=self.service_manager.get_url_fetcher(),
            budgeter=TokenBudgeter(),
            config=self.config.conversation,
            max_image_bytes=self.config.services.url_fetcher.max_image_bytes,
        )
        orchestrator = ToolOrchestrator(
            client=self.ai_client,
            registry=self.tool_registry,
            tools=tools,
            policy=RetryPolicy.from_config(self.config.retry),
            max_rounds=self.config.tools.max_rounds,
            model=self.config.ai.model,
        )
        self.handler = MessageHandler(
            adapter=self.adapter,
            tracker=self.tracker,
            assembler=assembler,
            orchestrator=orchestrator,
            config=self.config,
        )

        # 4. Messenger
        self.adapter.on_message(self.handler.on_inbound_message)
        await self.adapter.start()

        logger.info(
            "buddy_bot_started",
            model=self.config.ai.model,
            tools=[t.name for t in tools],
            follow_up_timeout_seconds=self.config.conversation.follow_up_timeout_seconds,
            follow_up_message_count=self.config.conversation.follow_up_message_count,
            streaming=self.config.streaming.enabled,
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        try:
            await self.adapter.stop()
        except Exception as e:
            logger.error("messenger_stop_error", error=str(e))

        await self.service_manager.stop_all()
        logger.info("buddy_bot_stopped")

    def _create_adapter(self) -> MessengerAdapter:
        from buddy_bot.messenger.discord_adapter import DiscordAdapter

        return DiscordAdapter(self.config.discord.token)
