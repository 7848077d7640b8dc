"""
Sync Scheduler - Cron and On-Demand Execution

Manages scheduled and manual sync runs using APScheduler.

Features:
- Cron-based scheduling (configurable via SYNC_SCHEDULE_CRON)
- RUN_ONCE mode for immediate execution
- One Redis lock per feed installation around each run
- Redis event publishing after successful runs
- Graceful shutdown: SIGINT/SIGTERM stop the current run between pages

Usage:
    # Scheduled mode (default)
    python -m apps.stream_loader.scheduler

    # Run once and exit
    RUN_ONCE=true python -m apps.stream_loader.scheduler
"""

import asyncio
import logging
import signal
import sys
from contextlib import AsyncExitStack
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from apps.stream_loader.controller import PageFetcher, SyncController
from apps.stream_loader.decoder import EventDecoder
from apps.stream_loader.feeds import FeedDefinition, get_feed
from apps.stream_loader.fetcher import HttpPageFetcher
from apps.stream_loader.publisher import publish_sync_event
from utils.config import Settings, settings
from utils.errors import SyncError
from utils.logging import SyncSink, open_log_sink, setup_logging
from utils.mq import installation_lock
from utils.schemas import SyncReport
from utils.state import FileCursorStore
from utils.store import build_content_store

logger = logging.getLogger(__name__)


async def run_feed(
    feed: FeedDefinition,
    app_settings: Settings = settings,
    cancel: Optional[asyncio.Event] = None,
    sink: Optional[SyncSink] = None,
    fetcher: Optional[PageFetcher] = None,
) -> SyncReport:
    """
    Run one feed installation from its committed cursor to the end of the stream.

    Storage locations are checked before anything is fetched; the installation
    lock is held for the whole run when SYNC_LOCK_ENABLED is set.

    Args:
        feed: Feed to synchronize
        app_settings: Settings supplying credentials and storage locations
        cancel: Cancellation signal checked between pages
        sink: Progress sink
        fetcher: Page fetcher; an HttpPageFetcher is created when omitted

    Raises:
        SyncError: If the run fails
    """
    store = build_content_store(app_settings, feed.name)
    cursor_store = FileCursorStore(feed.cursor_path(app_settings.STATE_DIR, app_settings.INSTALL_ID))
    cursor_store.check_writable()

    async with AsyncExitStack() as stack:
        if app_settings.SYNC_LOCK_ENABLED:
            await stack.enter_async_context(installation_lock(feed.name, app_settings.INSTALL_ID))

        if fetcher is None:
            fetcher = await stack.enter_async_context(
                HttpPageFetcher(
                    feed,
                    install_id=app_settings.INSTALL_ID,
                    api_key=app_settings.API_KEY,
                    timeout=app_settings.API_TIMEOUT,
                    max_retries=app_settings.FETCH_MAX_RETRIES,
                )
            )

        controller = SyncController(
            feed=feed,
            fetcher=fetcher,
            decoder=EventDecoder(feed.kinds),
            store=store,
            cursor_store=cursor_store,
            sink=sink,
            max_pages=app_settings.SYNC_MAX_PAGES,
        )
        return await controller.run(cancel)


class SyncScheduler:
    """
    Scheduler for periodic or on-demand sync runs.

    Handles:
    - APScheduler setup and management
    - Cron-based scheduling
    - RUN_ONCE immediate execution
    - Signal handling for graceful shutdown
    """

    def __init__(self, run_once: bool = False, app_settings: Settings = settings) -> None:
        """
        Initialize scheduler.

        Args:
            run_once: If True, run every configured feed once and exit
            app_settings: Settings to run with
        """
        self.run_once = run_once
        self.settings = app_settings
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()

        logger.info(
            "SyncScheduler initialized",
            extra={
                "run_once": run_once,
                "cron_schedule": app_settings.SYNC_SCHEDULE_CRON,
                "feeds": app_settings.feed_names,
            },
        )

    async def execute_sync(self) -> list[SyncReport]:
        """
        Run every configured feed in turn and publish an event per finished run.

        Feeds run one after another; a failing feed stops the whole execution.
        """
        logger.info("Starting sync execution")
        reports = []

        try:
            with open_log_sink(self.settings.LOG_FILE, self.settings.LOG_FORMAT) as sink:
                for name in self.settings.feed_names:
                    if self.shutdown_event.is_set():
                        logger.info("Shutdown requested, skipping remaining feeds")
                        break

                    feed = get_feed(self.settings, name)
                    report = await run_feed(
                        feed,
                        app_settings=self.settings,
                        cancel=self.shutdown_event,
                        sink=sink,
                    )
                    reports.append(report)

                    if self.settings.SYNC_PUBLISH_EVENTS:
                        await publish_sync_event(report, install_id=self.settings.INSTALL_ID)

                    logger.info(
                        "Feed sync finished",
                        extra=report.model_dump(mode="json"),
                    )

        except SyncError as e:
            logger.error(
                "Sync execution failed",
                extra={"error": e.to_dict()},
                exc_info=True,
            )
            raise

        except Exception as e:
            logger.error(
                "Sync execution failed",
                extra={"error": str(e)},
                exc_info=True,
            )
            raise

        finally:
            # Signal shutdown if run_once mode
            if self.run_once:
                logger.info("RUN_ONCE mode: signaling shutdown")
                self.shutdown_event.set()

        return reports

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

        In scheduled mode, runs continuously until shutdown signal.
        In RUN_ONCE mode, executes immediately and exits.
        """
        self.setup_signal_handlers()

        if self.run_once:
            logger.info("Running in RUN_ONCE mode")
            await self.execute_sync()
            return

        # Scheduled mode
        logger.info("Running in scheduled mode")

        self.scheduler = AsyncIOScheduler()

        trigger = CronTrigger.from_crontab(self.settings.SYNC_SCHEDULE_CRON)
        self.scheduler.add_job(
            self.execute_sync,
            trigger=trigger,
            id="stream_sync_job",
            name="Periodic Stream Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        # Start scheduler first to get next_run_time
        self.scheduler.start()
        logger.info("Scheduler started")

        job = self.scheduler.get_job("stream_sync_job")
        next_run = getattr(job, "next_run_time", None)
        next_run_str = str(next_run) if next_run is not None else None

        logger.info(
            "Scheduled sync job",
            extra={
                "schedule": self.settings.SYNC_SCHEDULE_CRON,
                "next_run": next_run_str,
            },
        )
        logger.info("Waiting for jobs...")

        # Wait for shutdown signal
        await self.shutdown_event.wait()

        # Graceful shutdown
        logger.info("Shutting down scheduler")
        if self.scheduler:
            self.scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")


async def main() -> None:
    """Main entry point for scheduler."""
    setup_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT)

    scheduler = SyncScheduler(run_once=settings.RUN_ONCE)

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
