"""
Cycle scheduler.

Runs the reconciliation engine immediately and then once per interval,
measured from the start of the previous cycle.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

import structlog

from banksync.sync.engine import ReconciliationEngine

logger = structlog.get_logger()


class SyncScheduler:
    """
    Drives reconciliation cycles on a fixed interval, one at a time.

    The next cycle is due at ``previous start + interval``. A cycle that
    overruns its slot is followed immediately by the next one, and a
    failing cycle never stops the loop.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the scheduler.

        Args:
            engine: Engine whose cycles are driven
            interval_seconds: Start-to-start spacing (defaults to the engine config)
            clock: Monotonic clock in seconds
            sleep: Coroutine used to wait between cycles
        """
        self.engine = engine
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else engine.config.get_interval_seconds()
        )
        self._clock = clock
        self._sleep = sleep

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.cycles_run = 0

    @property
    def running(self) -> bool:
        return self._running

    async def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """
        Run cycles until stopped (or ``max_cycles`` cycles have run).
        """
        self._running = True
        logger.info(
            "scheduler.started",
            interval_seconds=self.interval_seconds,
            accounts=len(self.engine.accounts),
        )

        try:
            while self._running:
                cycle_start = self._clock()
                await self._run_cycle()
                self.cycles_run += 1

                if max_cycles is not None and self.cycles_run >= max_cycles:
                    break

                delay = max(cycle_start + self.interval_seconds - self._clock(), 0.0)
                logger.debug("scheduler.waiting_for_next_cycle", delay_seconds=round(delay, 3))
                await self._sleep(delay)
        finally:
            self._running = False
            logger.info("scheduler.stopped", cycles=self.cycles_run)

    async def _run_cycle(self) -> None:
        try:
            await self.engine.run_cycle()
        except Exception as e:
            logger.error(
                "scheduler.cycle_failed",
                error=str(e),
                error_type=type(e).__name__,
                consecutive_failures=self.engine.metrics.consecutive_failures(),
            )

    async def start(self) -> None:
        """Start the loop as a background task."""
        if self._task is not None and not self._task.done():
            logger.warning("scheduler.already_running")
            return
        self._task = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        """Stop the loop, cancelling any wait or in-flight cycle."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
