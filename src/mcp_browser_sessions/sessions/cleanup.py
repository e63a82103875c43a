"""Background sweep that reclaims idle sessions on a fixed period."""

import asyncio
import contextlib
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..constants import MAX_CLEANUP_FAILURES
from .session_manager import CleanupResult

import logging
logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    DISABLED = "disabled"
    STOPPED = "stopped"


class CleanupScheduler:
    """
    Run ``sweep()`` every ``interval_secs`` until stopped or disabled.

    One sweep is awaited to completion before the next sleep starts, so sweeps
    never overlap; an overrunning sweep pushes the next tick back rather than
    queueing another. After ``max_failures`` consecutive failures the
    scheduler moves to DISABLED and stops ticking until ``reset_failures()``.

    Args:
        sweep: Async callable performing one sweep
        interval_secs: Delay between the end of one sweep and the next
        max_failures: Consecutive failures tolerated before disabling
    """

    def __init__(
        self,
        sweep: Callable[[], Awaitable[CleanupResult]],
        interval_secs: float,
        max_failures: int = MAX_CLEANUP_FAILURES,
    ):
        if interval_secs <= 0:
            raise ValueError("interval_secs must be > 0")
        self._sweep = sweep
        self.interval_secs = float(interval_secs)
        self.max_failures = max(1, int(max_failures))
        self._failures = 0
        self._state = SchedulerState.IDLE
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def start(self) -> None:
        """Arm the periodic loop. No-op if already scheduled or disabled."""
        if self._task is not None and not self._task.done():
            return
        if self._state is SchedulerState.DISABLED:
            logger.warning("Cleanup scheduler is disabled; call reset_failures() to re-enable")
            return
        self._state = SchedulerState.SCHEDULED
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="session-cleanup")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._state is not SchedulerState.DISABLED:
            self._state = SchedulerState.STOPPED

    def reset_failures(self) -> None:
        """
        Clear the failure counter. A disabled scheduler goes back to IDLE; it is
        re-armed at once when called on the event loop, otherwise by the next
        ``start()``.
        """
        was_disabled = self._state is SchedulerState.DISABLED
        self._failures = 0
        if not was_disabled:
            return

        logger.info("Cleanup scheduler re-enabled after failure reset")
        self._state = SchedulerState.IDLE
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; cleanup resumes on the next start()")
            return
        self.start()

    async def run_once(self) -> Optional[CleanupResult]:
        """
        Perform one sweep and update the failure counter.

        Returns the sweep result, or None if the sweep raised.
        """
        if self._state is SchedulerState.DISABLED:
            return None

        previous = self._state
        self._state = SchedulerState.RUNNING
        try:
            result = await self._sweep()
        except asyncio.CancelledError:
            self._state = previous
            raise
        except Exception as e:
            self._failures += 1
            logger.error(f"Session cleanup failed ({self._failures}/{self.max_failures}): {e}")
            if self._failures >= self.max_failures:
                self._state = SchedulerState.DISABLED
                logger.error(
                    f"Session cleanup disabled after {self._failures} consecutive failures; "
                    "idle sessions will not be reclaimed until the failure counter is reset"
                )
            else:
                self._state = previous
            return None

        self._failures = 0
        self._state = previous
        if result is not None and result.cleaned > 0:
            logger.info(f"Cleaned up {result.cleaned} expired session(s)")
        return result

    async def _loop(self) -> None:
        while self._state is not SchedulerState.DISABLED:
            await asyncio.sleep(self.interval_secs)
            await self.run_once()


__all__ = ["SchedulerState", "CleanupScheduler"]
