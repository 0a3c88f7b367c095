"""Service lifecycle manager."""

from __future__ import annotations

from buddy_bot.config import ServicesConfig
from buddy_bot.log import get_logger
from buddy_bot.services.base import Service
from buddy_bot.services.scheduler import SchedulerService
from buddy_bot.services.source_reader import SourceReader
from buddy_bot.services.url_fetcher import UrlFetcher
from buddy_bot.services.web_search import WebSearchService

logger = get_logger(__name__)


class ServiceManager:
    """Manages startup and shutdown of all services."""

    def __init__(self, config: ServicesConfig):
        self._scheduler = SchedulerService(config.scheduler)
        self._web_search = WebSearchService(config.web_search)
        self._url_fetcher = UrlFetcher(config.url_fetcher)
        self._source_reader = SourceReader(config.source)

    def get_scheduler(self) -> SchedulerService:
        return self._scheduler

    def get_web_search(self) -> WebSearchService:
        return self._web_search

    def get_url_fetcher(self) -> UrlFetcher:
        return self._url_fetcher

    def get_source_reader(self) -> SourceReader:
        return self._source_reader

    def _all(self) -> list[Service]:
        return [self._scheduler, self._web_search, self._url_fetcher, self._source_reader]

    async def start_all(self) -> None:
        """Start all services. The scheduler is required; the HTTP-backed ones only log failures."""
        await self._scheduler.start()
        for service in self._all()[1:]:
            try:
                await service.start()
            except Exception as e:
                logger.warning("service_unavailable", service=service.service_name, error=str(e))
        logger.info("all_services_started")

    async def stop_all(self) -> None:
        """Stop all services in reverse start order."""
        for service in reversed(self._all()):
            try:
                await service.stop()
            except Exception as e:
                logger.error("service_stop_error", service=service.service_name, error=str(e))
        logger.info("all_services_stopped")

    async def health_check_all(self) -> dict[str, bool]:
        return {service.service_name: await service.health_check() for service in self._all()}
