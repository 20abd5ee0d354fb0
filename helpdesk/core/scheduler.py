"""
Background scheduler for the stale-ticket reminder sweep.

Thin wrapper over APScheduler's AsyncIOScheduler so the app lifespan can
start and stop it.
"""

from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from helpdesk.utils.logger import get_logger

logger = get_logger(__name__)


class ReminderScheduler:
    """Runs one async job on a fixed interval, never overlapping itself."""

    def __init__(self, interval_seconds: int = 300, job_id: str = "stale_ticket_reminders"):
        self.interval_seconds = interval_seconds
        self.job_id = job_id
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self, job: Callable[[], Awaitable[object]]) -> None:
        if self._running:
            logger.warning("Reminder scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job,
            "interval",
            seconds=self.interval_seconds,
            id=self.job_id,
            name="Stale ticket reminder sweep",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True
        logger.info(
            "Reminder scheduler started",
            extra={"interval_seconds": self.interval_seconds},
        )

    def stop(self) -> None:
        if not self._running:
            return
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Reminder scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
