# auth/rate_limiting.py
"""
Rate limiting for authentication endpoints.

A fixed window per key (scope + client IP). Counters live in process memory,
so limits are per worker and best effort.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from fastapi import Request

from ..core.exceptions import RateLimited


@dataclass
class _Window:
    calls: int
    window_start: float


class FixedWindowRateLimiter:
    """In-memory fixed-window rate limiter."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.storage: Dict[str, _Window] = {}
        self.lock = asyncio.Lock()

    async def hit(self, key: str, max_requests: int, window_seconds: int) -> Tuple[bool, int, float]:
        """Count one request against ``key``.

        Returns:
            (allowed, remaining requests, seconds until the window resets)
        """
        async with self.lock:
            now = self.clock()
            window = self.storage.get(key)

            if window is None or now - window.window_start >= window_seconds:
                window = _Window(calls=0, window_start=now)
                self.storage[key] = window

            retry_after = window_seconds - (now - window.window_start)
            if window.calls >= max_requests:
                return False, 0, retry_after

            window.calls += 1
            return True, max_requests - window.calls, retry_after

    async def prune(self, window_seconds: int) -> int:
        """Drop windows that ended long enough ago to be irrelevant."""
        async with self.lock:
            now = self.clock()
            expired = [
                key for key, window in self.storage.items()
                if now - window.window_start >= window_seconds * 2
            ]
            for key in expired:
                del self.storage[key]
            return len(expired)

    async def reset(self) -> None:
        async with self.lock:
            self.storage.clear()


def get_client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def rate_limit(scope: str, limit_setting: str):
    """FastAPI dependency enforcing the limit named by ``limit_setting``.

    The limiter and settings are read from ``app.state`` so each app instance
    keeps its own counters.
    """
    async def dependency(request: Request) -> None:
        settings = request.app.state.settings
        if not settings.RATE_LIMIT_ENABLED:
            return

        limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
        allowed, _, retry_after = await limiter.hit(
            f"{scope}:{get_client_ip(request)}",
            getattr(settings, limit_setting),
            settings.RATE_LIMIT_WINDOW_SECONDS,
        )
        if not allowed:
            raise RateLimited(retry_after, context={"scope": scope, "client": get_client_ip(request)})

    return dependency


__all__ = ["FixedWindowRateLimiter", "get_client_ip", "rate_limit"]
