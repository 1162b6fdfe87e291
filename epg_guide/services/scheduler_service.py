import logging
from datetime import datetime
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from epg_guide.config import settings


logger = logging.getLogger(__name__)

JOB_ID = "guide_refresh"


class GuideScheduler:
    """Scheduler for automatic guide refreshes"""

    def __init__(self):
        self.scheduler: AsyncIOScheduler | None = None
        self._refresh: Callable[[], Awaitable[dict]] | None = None

    async def _refresh_job(self) -> None:
        """Background job that runs the guide refresh"""
        logger.info("Scheduled guide refresh triggered")
        if self._refresh is None:
            return
        try:
            result = await self._refresh()
            if result.get("status") == "failed":
                logger.error(f"Scheduled refresh failed: {result.get('error')}")
        except Exception as e:
            logger.error(f"Exception in scheduled refresh: {e}", exc_info=True)

    def start(
        self,
        refresh: Callable[[], Awaitable[dict]],
        cron: str | None = None,
        misfire_grace_sec: int | None = None,
    ) -> None:
        """
        Start the scheduler with the refresh job

        Args:
            refresh: Coroutine function running one refresh and returning its summary
            cron: Crontab expression (defaults to settings.refresh_cron)
            misfire_grace_sec: Grace period for missed runs (defaults to settings)
        """
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        cron = cron or settings.refresh_cron
        try:
            trigger = CronTrigger.from_crontab(cron, timezone="UTC")
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", cron, exc)
            raise

        self._refresh = refresh
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.add_job(
            self._refresh_job,
            trigger=trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=misfire_grace_sec if misfire_grace_sec is not None else settings.refresh_misfire_grace_sec,
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next refresh: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None
        self._refresh = None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled refresh time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None


guide_scheduler = GuideScheduler()
