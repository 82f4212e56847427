"""
Periodic job scheduling with a per-instance reentrancy guard.

Two triggers drive a job: an immediate run at startup and a fixed-interval
loop after it. Both go through the same TickGuard, so a tick that fires while
the previous one is still running is skipped rather than queued.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from shared.utils.logging import get_logger, tick_context
from shared.utils.metrics import TICK_ERRORS, TICKS_SKIPPED

logger = get_logger(__name__)

R = TypeVar("R")


class TickGuard:
    """Single-flight flag owned by one worker instance."""

    def __init__(self) -> None:
        self._running = False

    @property
    def busy(self) -> bool:
        return self._running

    def try_acquire(self) -> bool:
        # No await between check and set, so this is atomic on the event loop.
        if self._running:
            return False
        self._running = True
        return True

    def release(self) -> None:
        self._running = False


class PeriodicJob(Generic[R]):
    """
    Run `tick` at most once at a time, immediately on start and then every
    `interval_s` seconds.

    `run_once()` is the immediate trigger and `run_forever()` the interval
    trigger; tests call them independently.
    """

    def __init__(
        self,
        name: str,
        tick: Callable[[], Awaitable[R]],
        interval_s: float,
        guard: Optional[TickGuard] = None,
    ) -> None:
        self.name = name
        self._tick = tick
        self.interval_s = interval_s
        self.guard = guard or TickGuard()
        self.last_result: Optional[R] = None
        self.runs = 0
        self.skipped = 0
        self._tasks: set[asyncio.Task[None]] = set()

    async def run_once(self) -> Optional[R]:
        """Run one tick unless one is already in flight. Returns None when skipped."""
        if not self.guard.try_acquire():
            self.skipped += 1
            TICKS_SKIPPED.labels(worker=self.name).inc()
            logger.debug("tick_skipped_in_flight", worker=self.name)
            return None
        try:
            with tick_context(self.name):
                result = await self._tick()
        finally:
            self.guard.release()
        self.runs += 1
        self.last_result = result
        return result

    async def _safe_run_once(self) -> None:
        try:
            await self.run_once()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            TICK_ERRORS.labels(worker=self.name).inc()
            logger.exception("tick_failed", worker=self.name, error=str(exc))

    async def run_forever(self, shutdown: Optional[asyncio.Event] = None) -> None:
        """Fire every interval until cancelled or shutdown is set."""
        logger.info("periodic_job_started", worker=self.name, interval_s=self.interval_s)
        while shutdown is None or not shutdown.is_set():
            if shutdown is None:
                await asyncio.sleep(self.interval_s)
            else:
                try:
                    await asyncio.wait_for(shutdown.wait(), timeout=self.interval_s)
                    break
                except asyncio.TimeoutError:
                    pass
            # Interval trigger does not wait for a slow tick; the guard skips overlap.
            self._spawn()

    def _spawn(self) -> None:
        task = asyncio.create_task(self._safe_run_once())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def start(self, shutdown: Optional[asyncio.Event] = None) -> None:
        """Immediate trigger followed by the interval trigger."""
        self._spawn()
        await self.run_forever(shutdown)

    async def drain(self) -> None:
        """Wait for ticks still in flight; a running tick is never cancelled."""
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def status(self) -> dict[str, Any]:
        last = self.last_result
        return {
            "runs": self.runs,
            "skipped": self.skipped,
            "busy": self.guard.busy,
            "last": last.as_dict() if hasattr(last, "as_dict") else last,
        }
