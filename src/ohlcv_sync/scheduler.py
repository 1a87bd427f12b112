"""Periodic trigger for sync cycles with a single-cycle guard.

At most one cycle runs at a time. A trigger that fires while a cycle is in
progress is a no-op: it is neither queued nor run in parallel.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from ohlcv_sync.logging import get_logger
from ohlcv_sync.sync import CycleReport

logger = get_logger(__name__)

CycleRunner = Callable[[], Awaitable[CycleReport]]


class SyncScheduler:
    """Owns the sync loop and the "cycle in progress" state.

    The guard is an asyncio.Lock checked and acquired with no await in
    between, so the test-and-set is atomic within the event loop.

    Args:
        run_cycle: Coroutine function running one full sync cycle.
        interval_seconds: Delay between the end of one tick and the next.
        run_on_start: Run a cycle immediately when start() is called.
    """

    def __init__(
        self,
        run_cycle: CycleRunner,
        interval_seconds: float,
        run_on_start: bool = True,
    ) -> None:
        self._run_cycle = run_cycle
        self._interval = interval_seconds
        self._run_on_start = run_on_start
        self._cycle_lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self.last_report: CycleReport | None = None
        self.last_error: str | None = None
        self.last_finished_at: float | None = None

    @property
    def is_syncing(self) -> bool:
        """Whether a sync cycle is currently executing."""
        return self._cycle_lock.locked()

    @property
    def is_running(self) -> bool:
        """Whether the periodic loop is active."""
        return self._running

    async def trigger(self) -> CycleReport | None:
        """Run one sync cycle unless one is already in progress.

        Returns the cycle report, or None when skipped or failed.
        Cycle-level exceptions are logged, not raised: the next tick retries.
        """
        if self._cycle_lock.locked():
            logger.info("sync_cycle_already_running", note="trigger ignored")
            return None

        async with self._cycle_lock:
            try:
                report = await self._run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.last_error = str(e)
                logger.error("sync_cycle_error", error=str(e), exc_info=True)
                return None
            finally:
                self.last_finished_at = time.time()

            self.last_report = report
            self.last_error = None
            return report

    async def start(self) -> None:
        """Run the periodic loop until stop() is called."""
        if self._running:
            logger.warning("sync_scheduler_already_running")
            return
        self._running = True
        logger.info(
            "sync_scheduler_started",
            interval_seconds=self._interval,
            run_on_start=self._run_on_start,
        )

        try:
            if self._run_on_start:
                await self.trigger()
            while self._running:
                await asyncio.sleep(self._interval)
                if not self._running:
                    break
                await self.trigger()
        except asyncio.CancelledError:
            pass
        finally:
            self._running = False
            logger.info("sync_scheduler_stopped")

    def start_background(self) -> asyncio.Task:  # type: ignore[type-arg]
        """Start the loop as a background task and return it."""
        self._task = asyncio.create_task(self.start())
        return self._task

    async def stop(self) -> None:
        """Stop the loop, cancelling any in-flight sleep or cycle."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def status(self) -> dict:
        """Snapshot for the status endpoint."""
        return {
            "running": self._running,
            "syncing": self.is_syncing,
            "last_finished_at": self.last_finished_at,
            "last_error": self.last_error,
            "last_cycle": self.last_report.to_dict() if self.last_report else None,
        }
