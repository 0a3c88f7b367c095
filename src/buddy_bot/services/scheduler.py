"""APScheduler-backed scheduler for deferred, cancellable actions."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from buddy_bot.config import SchedulerServiceConfig
from buddy_bot.log import get_logger
from buddy_bot.services.base import Service

logger = get_logger(__name__)


class SchedulerService(Service):
    """Runs one-shot coroutine jobs on the bot's event loop.

    Jobs are keyed by id: scheduling an id that is already pending replaces
    it, so there is never more than one pending job per key.
    """

    def __init__(self, config: SchedulerServiceConfig):
        self._config = config
        self._scheduler = AsyncIOScheduler(timezone=config.timezone)

    @property
    def service_name(self) -> str:
        return "scheduler"

    async def start(self) -> None:
        self._scheduler.start()
        logger.info("scheduler_started", timezone=self._config.timezone)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")

    async def health_check(self) -> bool:
        return self._scheduler.running

    def schedule_once(
        self,
        job_id: str,
        run_at: datetime,
        callback: Callable[..., Awaitable[None]],
        *args: Any,
    ) -> None:
        """Run ``callback(*args)`` once at ``run_at``, superseding any pending job with this id."""
        self._scheduler.add_job(
            callback,
            DateTrigger(run_date=run_at),
            id=job_id,
            args=list(args),
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.debug("one_shot_job_scheduled", job_id=job_id, run_at=run_at.isoformat())

    def cancel(self, job_id: str) -> None:
        """Drop a pending job. Unknown or already-fired ids are ignored."""
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            return
        logger.debug("job_cancelled", job_id=job_id)

    def pending_job_ids(self) -> list[str]:
        return [job.id for job in self._scheduler.get_jobs()]
