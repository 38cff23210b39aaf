"""Job scheduling for the long-running monitor."""

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger


logger = structlog.get_logger(__name__)


class JobScheduler:
    """Manages interval jobs using APScheduler."""

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self.running = False

    async def start(self):
        """Start the job scheduler. Must be called from a running event loop."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.start()
        self.running = True
        logger.info("Job scheduler started")

    async def stop(self):
        """Stop the job scheduler."""
        if not self.running:
            return

        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Job scheduler stopped")

    def add_interval_job(self, job_id: str, func: Callable, seconds: float, description: Optional[str] = None):
        """Add an interval job that first runs right away and never overlaps itself."""
        self.scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            name=description or job_id,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )

        logger.info("Added interval job",
                    job_id=job_id,
                    interval_seconds=seconds,
                    description=description)
