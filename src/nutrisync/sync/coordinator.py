"""Background retry for sessions that fell back to local-only storage."""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import SyncSettings
from ..models import SyncStatus
from .sync_engine import SyncEngine

__all__ = ["SyncCoordinator"]

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Owns the background retry scheduler for one sync session.

    While the session is ``local_only`` the retry job re-pushes the current
    dataset every ``retry_interval_seconds``.
    """

    RETRY_JOB_ID = "retry_job"

    def __init__(self, engine: SyncEngine, settings: SyncSettings) -> None:
        self.engine = engine
        self.settings = settings
        self.scheduler = BackgroundScheduler()

    def start(self) -> None:
        """Start the retry scheduler (no-op when background retry is off)."""
        if not self.settings.background_retry:
            logger.info("Background retry disabled")
            return
        if self.scheduler.running:
            return

        interval = self.settings.retry_interval_seconds
        self.scheduler.add_job(
            self._retry_if_local_only,
            trigger=IntervalTrigger(seconds=interval),
            id=self.RETRY_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Background retry started (interval: {interval}s)")

    def stop(self) -> None:
        """Shut down the scheduler if running."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def _retry_if_local_only(self) -> None:
        if self.engine.is_closed or self.engine.status != SyncStatus.LOCAL_ONLY:
            return
        logger.info(f"Retrying remote sync for {self.engine.user_id}")
        try:
            self.engine.resync()
        except Exception as e:
            logger.error(f"Background retry failed: {e}")

    def __enter__(self) -> "SyncCoordinator":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
