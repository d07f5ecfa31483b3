# cityguard/tasks/background.py
"""
Periodic maintenance jobs running on the application's event loop.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ..auth.rate_limiting import FixedWindowRateLimiter
from ..auth.session_management import SessionStore

logger = logging.getLogger("cityguard.tasks")


@dataclass
class TaskStats:
    runs: int = 0
    failures: int = 0
    last_result: Optional[int] = None
    last_error: Optional[str] = field(default=None, repr=False)


class PeriodicTask:
    """Runs an async job every ``interval`` seconds until stopped.

    A failing run is logged and counted; the loop keeps going.
    """

    def __init__(self, name: str, job: Callable[[], Awaitable[Optional[int]]], interval: float):
        self.name = name
        self.job = job
        self.interval = interval
        self.stats = TaskStats()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[int]:
        try:
            result = await self.job()
        except Exception as e:
            self.stats.failures += 1
            self.stats.last_error = str(e)
            logger.error(f"[{self.name}] run failed: {e}", exc_info=True)
            return None
        self.stats.runs += 1
        self.stats.last_result = result
        return result

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(f"[{self.name}] started, interval={self.interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"[{self.name}] stopped")


class SessionSweeper(PeriodicTask):
    """Deletes expired and long-retired sessions, and prunes stale rate-limit windows."""

    def __init__(
        self,
        sessions: SessionStore,
        interval: float = 3600,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        rate_limit_window: int = 900,
    ):
        super().__init__("session-sweeper", self.sweep, interval)
        self.sessions = sessions
        self.rate_limiter = rate_limiter
        self.rate_limit_window = rate_limit_window

    async def sweep(self) -> int:
        removed = await self.sessions.sweep_expired()
        if removed:
            logger.info(f"Swept {removed} expired session(s)")
        if self.rate_limiter is not None:
            await self.rate_limiter.prune(self.rate_limit_window)
        return removed


__all__ = ["PeriodicTask", "SessionSweeper", "TaskStats"]
