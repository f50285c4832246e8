"""Background timer for automatic syncs."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from infoflow_sync.core.async_utils import run_sync_exclusive
from infoflow_sync.sync.errors import SyncConfigurationError

if TYPE_CHECKING:
    from infoflow_sync.sync.engine import SyncManager
    from infoflow_sync.sync.models import SyncReport
    from infoflow_sync.sync.status import StatusQueue

logger = logging.getLogger(__name__)

AUTO_SYNC_JOB_ID = "infoflow_auto_sync"
STATUS_TICK_JOB_ID = "infoflow_status_tick"


class AutoSyncScheduler:
    """Runs ``SyncManager.run(auto=True)`` every *interval_minutes*.

    Jobs never overlap (``max_instances=1``); a manual run holding the
    in-flight lock makes the automatic run skip itself.

    Args:
        manager: The sync manager to drive.
        interval_minutes: Minutes between runs; 0 disables the timer.
        status: Optional status queue to tick once per second.
    """

    def __init__(
        self,
        manager: SyncManager,
        interval_minutes: int,
        status: StatusQueue | None = None,
    ) -> None:
        self.manager = manager
        self.interval_minutes = interval_minutes
        self.status = status
        self._scheduler: AsyncIOScheduler | None = None
        self._started = False

    async def start(self) -> None:
        """Start the scheduler.  Must be called from a running event loop."""
        if self._started:
            logger.warning("Auto-sync scheduler already started")
            return

        self._scheduler = AsyncIOScheduler()

        if self.interval_minutes > 0:
            self._scheduler.add_job(
                self._run_auto_sync,
                trigger=IntervalTrigger(minutes=self.interval_minutes),
                id=AUTO_SYNC_JOB_ID,
                name="InfoFlow auto sync",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info(
                "Auto sync scheduled every %d minutes", self.interval_minutes
            )
        else:
            logger.info("Auto sync disabled (sync_frequency=0)")

        if self.status is not None:
            self._scheduler.add_job(
                self.status.tick,
                trigger=IntervalTrigger(seconds=1),
                id=STATUS_TICK_JOB_ID,
                name="InfoFlow status tick",
                replace_existing=True,
                max_instances=1,
            )

        self._scheduler.start()
        self._started = True

    async def stop(self) -> None:
        """Stop the scheduler, waiting for a running job to finish."""
        if self._scheduler and self._started:
            self._scheduler.shutdown(wait=True)
            self._scheduler = None
            self._started = False
            logger.info("Auto-sync scheduler stopped")

    async def _run_auto_sync(self) -> SyncReport | None:
        """Execute one scheduled sync; failures are logged, never raised."""
        try:
            report = await run_sync_exclusive(self.manager.run, auto=True)
        except SyncConfigurationError as e:
            logger.warning("Auto sync not run: %s", e)
            return None
        except Exception:
            logger.exception("Auto sync failed")
            return None

        logger.info(
            "Auto sync %s: %d processed, %d errors",
            report.status,
            len(report.results),
            len(report.errors),
        )
        return report

    def get_next_run_time(self) -> datetime | None:
        """Next scheduled auto sync, or ``None`` if not scheduled."""
        if not self._scheduler or not self._started:
            return None
        job = self._scheduler.get_job(AUTO_SYNC_JOB_ID)
        return job.next_run_time if job else None

    @property
    def is_running(self) -> bool:
        return self._started and self._scheduler is not None
