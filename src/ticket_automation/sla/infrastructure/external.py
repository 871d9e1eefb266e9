"""
SLA Sweep Scheduling
====================

Runs the SLA sweep on a fixed interval with APScheduler.
"""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ticket_automation.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SweepFunc = Callable[[], Awaitable[Optional[Dict[str, Any]]]]


class SLAScheduler:
    """
    Periodic trigger for the SLA sweep.

    At most one sweep runs at a time. Runs missed while a sweep was still
    busy are coalesced into one. With run_on_start the first sweep fires
    immediately instead of one interval after startup, so deadlines that
    passed while the service was down are picked up at once.
    """

    JOB_ID = "sla_sweep"

    def __init__(self, interval_seconds: int = 60, run_on_start: bool = False):
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self.last_summary: Optional[Dict[str, Any]] = None
        self.last_run_at: Optional[datetime] = None
        self._sweep: Optional[SweepFunc] = None
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def start(self, sweep: SweepFunc) -> None:
        if self.is_running:
            logger.warning("SLA scheduler already running")
            return

        self._sweep = sweep
        # next_run_time=None would add the job paused
        first_run = {"next_run_time": datetime.now(timezone.utc)} if self.run_on_start else {}

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self.run_sweep,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="SLA sweep",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            **first_run,
        )
        self._scheduler.start()

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds, "run_on_start": self.run_on_start}
        )

    async def run_sweep(self) -> Optional[Dict[str, Any]]:
        """Run one sweep now and remember its summary."""
        if self._sweep is None:
            raise RuntimeError("SLA scheduler has no sweep configured. Call start() first.")

        summary = await self._sweep()
        self.last_run_at = datetime.now(timezone.utc)
        self.last_summary = summary
        if summary and (summary.get("breached") or summary.get("failed")):
            logger.warning("SLA sweep found problems", extra=summary)
        return summary

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def next_run_at(self) -> Optional[datetime]:
        if not self.is_running:
            return None
        job = self._scheduler.get_job(self.JOB_ID)
        return job.next_run_time if job else None
