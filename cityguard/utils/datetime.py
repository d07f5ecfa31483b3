import math
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def get_current_time() -> datetime:
    """
    Get the current time in UTC.

    Returns:
        datetime: The current time in UTC as a naive datetime, matching the
        naive UTC columns used by the storage layer.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_timestamp(dt: datetime) -> int:
    """Convert a naive UTC datetime to integer epoch seconds."""
    return int(dt.replace(tzinfo=timezone.utc).timestamp())


def minutes_until(target: Optional[datetime], now: datetime) -> int:
    """
    Whole minutes remaining until ``target``, rounded up.

    Args:
        target: The future instant, or None
        now: The reference instant

    Returns:
        int: 0 when ``target`` is None or already passed
    """
    if target is None or target <= now:
        return 0
    return math.ceil((target - now).total_seconds() / 60)
