"""
Decorators applied to store methods.
"""
from __future__ import annotations
import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Tuple, Type, TypeVar

from .exceptions import ConnectionError, TimeoutError

R = TypeVar("R")
AsyncFn = Callable[..., Awaitable[R]]

logger = logging.getLogger("cityguard.db")


def retry_on_db_error(
    attempts: int = 3,
    delay: float = 0.05,
    backoff: float = 2.0,
    retry_on: Tuple[Type[Exception], ...] = (ConnectionError,),
) -> Callable[[AsyncFn], AsyncFn]:
    """Retry an idempotent read with exponential backoff.

    Never put this on a write: a write that timed out may still have landed.

    Args:
        attempts: Total tries, the first one included
        delay: Pause before the second try, in seconds
        backoff: Factor applied to the pause after every failed retry
        retry_on: Exception types worth another try; anything else propagates
    """
    def decorator(func: AsyncFn) -> AsyncFn:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> R:
            pause = delay
            for attempt in range(1, attempts):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    logger.warning(
                        f"{func.__qualname__} failed ({attempt}/{attempts}): {e}; retrying in {pause:.2f}s"
                    )
                    await asyncio.sleep(pause)
                    pause *= backoff
            return await func(*args, **kwargs)

        return wrapper
    return decorator


def with_timeout(func: AsyncFn) -> AsyncFn:
    """Bound a store method by the store's ``timeout`` attribute (None = unbounded).

    Expiry raises :class:`TimeoutError`; cancellation of the caller passes
    through untouched.
    """
    @functools.wraps(func)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> R:
        timeout = getattr(self, "timeout", None)
        try:
            return await asyncio.wait_for(func(self, *args, **kwargs), timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"{func.__qualname__} timed out after {timeout}s",
                context={"operation": func.__qualname__, "timeout": timeout},
            ) from e

    return wrapper
