"""
Extraction Scheduler - Cron and On-Demand Execution

Manages scheduled and manual sync runs using APScheduler.

Features:
- Cron-based scheduling (configurable via EXTRACT_SCHEDULE_CRON)
- RUN_ONCE mode for immediate execution
- Redis event publishing after each run (PUBLISH_EVENTS)
- Graceful shutdown handling
- Any run-scoped failure stops the scheduler and exits with status 1

Usage:
    # Scheduled mode (default)
    python -m apps.extractor

    # Run once and exit
    RUN_ONCE=true python -m apps.extractor
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from apps.extractor.extractor_job import RunSummary, run_extraction
from apps.extractor.publisher import publish_sync_event
from utils.config import Settings, get_settings
from utils.logging import setup_logging

logger = logging.getLogger(__name__)


class ExtractionScheduler:
    """
    Scheduler for periodic or on-demand sync runs.

    Handles:
    - APScheduler setup and management
    - Cron-based scheduling
    - RUN_ONCE immediate execution
    - Signal handling for graceful shutdown
    """

    def __init__(self, run_once: bool = False, settings: Optional[Settings] = None) -> None:
        """
        Initialize scheduler.

        Args:
            run_once: If True, run one sync and exit
            settings: Settings to use, defaults to the cached instance
        """
        self.run_once = run_once
        self.settings = settings or get_settings()
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()
        self.failure: BaseException | None = None
        self.last_summary: RunSummary | None = None

        logger.info(
            "ExtractionScheduler initialized",
            extra={
                "run_once": run_once,
                "cron_schedule": self.settings.EXTRACT_SCHEDULE_CRON,
            },
        )

    async def execute_extraction(self) -> None:
        """
        Execute one sync run and publish its outcome.

        A failure is recorded and stops the scheduler before being re-raised.
        """
        logger.info("Starting sync run")

        try:
            summary = await run_extraction(self.settings)
            self.last_summary = summary

            if self.settings.PUBLISH_EVENTS:
                await publish_sync_event("sync_completed", summary=summary.to_dict(), settings=self.settings)

            logger.info(
                "Sync run completed successfully",
                extra={"total_records": summary.total_records, "stores": len(summary.outcomes)},
            )

        except Exception as e:
            logger.error(
                "Sync run failed",
                extra={"error_type": type(e).__name__, "error": str(e)},
                exc_info=True,
            )
            self.failure = e
            self.shutdown_event.set()

            if self.settings.PUBLISH_EVENTS:
                try:
                    await publish_sync_event("sync_failed", error=str(e), settings=self.settings)
                except Exception as publish_error:
                    logger.error("Could not publish failure event", extra={"error": str(publish_error)})
            raise

        finally:
            if self.run_once:
                logger.info("RUN_ONCE mode: signaling shutdown")
                self.shutdown_event.set()

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""

        def signal_handler(signum: int, frame: object) -> None:
            logger.info(f"Received signal {signum}, initiating graceful shutdown")
            self.shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def start(self) -> None:
        """
        Start scheduler or execute once.

        In scheduled mode, runs until a shutdown signal or a failed run.

        Raises:
            Exception: The error of the failed run, if any
        """
        self.setup_signal_handlers()

        if self.run_once:
            logger.info("Running in RUN_ONCE mode")
            await self.execute_extraction()
            return

        logger.info("Running in scheduled mode")

        self.scheduler = AsyncIOScheduler()

        trigger = CronTrigger.from_crontab(self.settings.EXTRACT_SCHEDULE_CRON)
        self.scheduler.add_job(
            self.execute_extraction,
            trigger=trigger,
            id="sync_job",
            name="Incremental Dispensing Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        logger.info("Scheduler started")

        job = self.scheduler.get_job("sync_job")
        next_run = getattr(job, "next_run_time", None)
        next_run_str = str(next_run) if next_run is not None else None

        logger.info(
            "Scheduled sync job",
            extra={
                "schedule": self.settings.EXTRACT_SCHEDULE_CRON,
                "next_run": next_run_str,
            },
        )
        logger.info("Waiting for jobs...")

        await self.shutdown_event.wait()

        logger.info("Shutting down scheduler")
        if self.scheduler:
            self.scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")

        if self.failure is not None:
            raise self.failure


async def main() -> None:
    """Main entry point for scheduler."""
    settings = get_settings()
    setup_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT)

    scheduler = ExtractionScheduler(run_once=settings.RUN_ONCE, settings=settings)

    try:
        await scheduler.start()
    except Exception as e:
        logger.error("Scheduler failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
