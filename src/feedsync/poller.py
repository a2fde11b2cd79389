"""Background scheduler that keeps all active feeds in sync."""

import asyncio
import logging

import httpx

from feedsync.database import Database
from feedsync.sync import SyncSummary, sync_active_feeds

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MINUTES = 15
DEFAULT_WARMUP_SECONDS = 5.0


class FeedScheduler:
    """Runs a bulk sync shortly after start and then on a fixed interval.

    The scheduler is idle between passes and running while a pass is in
    progress. Passes never overlap: a pass that takes longer than the
    interval pushes the next one back.
    """

    def __init__(
        self,
        db: Database,
        client: httpx.AsyncClient,
        interval_minutes: float = DEFAULT_POLL_INTERVAL_MINUTES,
        warmup_seconds: float = DEFAULT_WARMUP_SECONDS,
        max_concurrency: int = 1,
    ):
        self.db = db
        self.client = client
        self.interval_seconds = interval_minutes * 60
        self.warmup_seconds = warmup_seconds
        self.max_concurrency = max_concurrency
        self.passes_completed = 0
        self.last_summary: SyncSummary | None = None
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_running(self) -> bool:
        """True while a bulk pass is in progress."""
        return self._running

    async def start(self) -> None:
        """Start ticking. Restarts cleanly if already started."""
        await self.stop()
        self._task = asyncio.create_task(self._loop(), name="feedsync-scheduler")
        logger.info(
            "Feed scheduler started. Fetching feeds every %g minutes.",
            self.interval_seconds / 60,
        )

    async def stop(self) -> None:
        """Cancel the timer and wait for the loop to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._running = False
        logger.info("Feed scheduler stopped.")

    async def run_pass(self) -> SyncSummary:
        """Run one bulk pass over all active feeds."""
        self._running = True
        try:
            summary = await sync_active_feeds(
                self.db, self.client, max_concurrency=self.max_concurrency
            )
        finally:
            self._running = False
        self.passes_completed += 1
        self.last_summary = summary
        logger.info(
            "Feed fetch complete. Success: %d, Failed: %d, New items: %d",
            summary.success,
            summary.failed,
            summary.items_added,
        )
        return summary

    async def _loop(self) -> None:
        loop = asyncio.get_running_loop()
        started_at = loop.time()

        await asyncio.sleep(self.warmup_seconds)
        logger.info("Running initial feed fetch...")
        await self._safe_pass()

        ticks = 1
        while True:
            next_tick = started_at + ticks * self.interval_seconds
            now = loop.time()
            if next_tick < now:
                # Skip slots missed while a long pass was running.
                ticks = int((now - started_at) // self.interval_seconds) + 1
                next_tick = started_at + ticks * self.interval_seconds
            await asyncio.sleep(next_tick - now)
            ticks += 1
            await self._safe_pass()

    async def _safe_pass(self) -> None:
        try:
            await self.run_pass()
        except Exception:
            logger.exception("Error in scheduled feed fetch")
