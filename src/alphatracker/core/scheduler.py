"""Timer-driven jobs with explicit idle/running state.

A tick that arrives while the previous run is still in progress is skipped,
never queued. Exceptions raised by a run are logged and the job returns to
idle so the next tick runs normally.
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from alphatracker.core.types import utcnow
from alphatracker.logging import get_logger, set_trading_context
from alphatracker.observability.metrics import metrics

logger = get_logger(__name__)


class JobState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class CycleJob:
    """One periodic job guarded by an idle/running state machine."""

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
    ) -> None:
        """Initialize the job."""
        self.name = name
        self._func = func
        self._interval = interval_seconds
        self._state = JobState.IDLE
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[bool]] = set()

        self.runs = 0
        self.skipped = 0
        self.failures = 0
        self.last_result: Any = None
        self.last_error: str | None = None
        self.last_started_at = None
        self.last_finished_at = None

    @property
    def state(self) -> JobState:
        return self._state

    async def run_once(self) -> bool:
        """Run the job unless it is already running.

        Returns:
            ``True`` if the job ran (successfully or not), ``False`` if skipped.
        """
        if self._state == JobState.RUNNING:
            self.skipped += 1
            metrics.increment("cycles_skipped")
            logger.warning(f"{self.name} still running, skipping this cycle")
            return False

        self._state = JobState.RUNNING
        self.last_started_at = utcnow()
        set_trading_context(cycle=self.name)
        try:
            self.last_result = await self._func()
            self.last_error = None
        except Exception as e:
            self.failures += 1
            self.last_error = str(e)
            logger.error(f"{self.name} cycle failed: {e}", exc_info=True)
        finally:
            self.runs += 1
            self.last_finished_at = utcnow()
            self._state = JobState.IDLE
        return True

    def _spawn(self) -> None:
        task = asyncio.create_task(self.run_once())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _loop(self) -> None:
        logger.info(f"{self.name} loop started (interval={self._interval}s)")
        while self._running:
            try:
                self._spawn()
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                logger.info(f"{self.name} loop cancelled")
                break

    async def start(self) -> None:
        """Start ticking every ``interval_seconds``."""
        if self._running:
            logger.warning(f"{self.name} already started")
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Stop ticking and wait for an in-flight run to finish."""
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info(f"{self.name} stopped")

    def get_state(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "runs": self.runs,
            "skipped": self.skipped,
            "failures": self.failures,
            "last_error": self.last_error,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
        }
