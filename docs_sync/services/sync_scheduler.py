"""Periodic full resync of all enabled sources"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from docs_sync.models.sync_result import SyncResult
from docs_sync.services.doc_sync import DocSync

logger = logging.getLogger(__name__)

JOB_ID = "docs_resync"


class SyncScheduler:
    """Run DocSync.sync_all on an interval in a background thread"""

    def __init__(self, doc_sync_factory: Callable[[], DocSync]):
        """
        Initialize sync scheduler

        Args:
            doc_sync_factory: Builds a fresh DocSync per run (each run owns its event loop)
        """
        self.doc_sync_factory = doc_sync_factory
        self.scheduler: BackgroundScheduler | None = None

    def configure_scheduler_sync(
        self,
        scheduler: BackgroundScheduler,
        interval_hours: int,
        max_concurrent_jobs: int = 1,
    ) -> None:
        """
        Configure scheduler with intervals (synchronous version for BackgroundScheduler)

        Args:
            scheduler: Initialized BackgroundScheduler instance
            interval_hours: Resync interval in hours
            max_concurrent_jobs: Maximum concurrent resync jobs
        """
        self.scheduler = scheduler

        trigger = IntervalTrigger(hours=interval_hours, start_date=datetime.now())

        self.scheduler.add_job(
            self.resync_once,
            trigger=trigger,
            id=JOB_ID,
            name="Documentation Resync",
            max_instances=max_concurrent_jobs,
            replace_existing=True,
        )

        logger.info(f"Scheduled resync every {interval_hours} hours")

    def stop_scheduler_sync(self) -> None:
        """Gracefully stop scheduler (synchronous version)"""
        if self.scheduler:
            try:
                self.scheduler.remove_job(JOB_ID)
                logger.info("Stopped resync scheduler")
            except JobLookupError:
                logger.warning("Resync job not found during shutdown")

    def resync_once(self) -> list[SyncResult]:
        """
        Execute a single resync of every enabled source

        Note: This is synchronous because BackgroundScheduler runs in threads.
        We use asyncio.run() to bridge to the async sync pipeline.

        Returns:
            One SyncResult per source; empty if the run could not start
        """
        logger.info("Starting scheduled resync")
        try:
            results = asyncio.run(self._run())
        except Exception as e:
            logger.error(f"Scheduled resync failed with exception: {e}", exc_info=True)
            return []

        failed = [r.source for r in results if not r.success]
        if failed:
            logger.error(f"Scheduled resync finished with failures: {', '.join(failed)}")
        else:
            logger.info(f"Scheduled resync of {len(results)} source(s) completed")
        return results

    async def _run(self) -> list[SyncResult]:
        async with self.doc_sync_factory() as doc_sync:
            return await doc_sync.sync_all()
