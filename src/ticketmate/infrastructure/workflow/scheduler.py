"""
Workflow Scheduler
==================

APScheduler interval job that drains pending workflow runs and, when a
metrics exporter is enabled, pushes run counts by status after each tick.
"""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ticketmate.infrastructure.workflow.engine import WorkflowEngine
from ticketmate.shared.infrastructure.grafana import GrafanaOTLPExporter
from ticketmate.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class WorkflowScheduler:
    """
    Wrapper for APScheduler polling the workflow engine.

    Manages the lifecycle of the scheduler and its single job. An interval
    of 0 disables polling; runs then only execute through the webhook.
    """

    def __init__(
        self,
        engine: WorkflowEngine,
        interval_seconds: int = 5,
        metrics: Optional[GrafanaOTLPExporter] = None,
    ):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self._metrics = metrics
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def tick(self) -> int:
        """One poll: execute pending runs, then export run counts."""
        try:
            executed = await self.engine.run_pending()
        except Exception as e:
            logger.error("Workflow poll failed", extra={"error": str(e)}, exc_info=True)
            return 0

        if executed:
            logger.debug("Workflow poll executed runs", extra={"executed": executed})

        if self._metrics is not None and self._metrics.is_enabled():
            await self._metrics.export_workflow_stats(await self.engine.stats())

        return executed

    async def start(self) -> None:
        """Start the scheduler."""
        if self._running:
            logger.warning("Workflow scheduler already running")
            return

        if self.interval_seconds <= 0:
            logger.info("Workflow scheduler disabled (interval 0)")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.interval_seconds,
            id="workflow_poll",
            name="Workflow Poll Job",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Workflow scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Workflow scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
