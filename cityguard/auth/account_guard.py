"""
Account lockout policy.

ACTIVE -> LOCKED after ``max_attempts`` consecutive failures. A lock is never
cleared by a timer: it simply stops applying once ``locked_until`` has passed,
and the counter goes back to zero on the next successful login.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from ..core.exceptions import AccountLocked
from ..utils.datetime import Clock, get_current_time, minutes_until
from .models import User
from .users import UserStore

logger = logging.getLogger("cityguard.auth")


@dataclass(frozen=True)
class FailureOutcome:
    """Result of recording one failed attempt."""
    failed_attempts: int
    locked: bool
    remaining_minutes: int = 0


class AccountGuard:
    def __init__(
        self,
        users: UserStore,
        max_attempts: int = 5,
        lock_duration: timedelta = timedelta(minutes=30),
        clock: Clock = get_current_time,
    ):
        self.users = users
        self.max_attempts = max_attempts
        self.lock_duration = lock_duration
        self.clock = clock

    def remaining_minutes(self, user: User) -> int:
        return minutes_until(user.locked_until, self.clock())

    def ensure_not_locked(self, user: User) -> None:
        """Raise AccountLocked while the user is inside a lock window."""
        if user.is_locked(self.clock()):
            raise AccountLocked(
                self.remaining_minutes(user),
                context={"user_id": user.id},
            )

    async def register_failure(self, user: User) -> FailureOutcome:
        now = self.clock()
        updated: Optional[User] = await self.users.register_failed_attempt(
            user.id, self.max_attempts, now + self.lock_duration, now
        )
        if updated is None:
            return FailureOutcome(failed_attempts=0, locked=False)

        locked = updated.failed_attempts >= self.max_attempts and updated.is_locked(now)
        if locked:
            logger.warning(
                f"Account {user.id} locked after {updated.failed_attempts} failed attempts"
            )
        return FailureOutcome(
            failed_attempts=updated.failed_attempts,
            locked=locked,
            remaining_minutes=minutes_until(updated.locked_until, now),
        )

    async def register_success(self, user: User) -> None:
        await self.users.reset_failed_attempts(user.id, self.clock())


__all__ = ["AccountGuard", "FailureOutcome"]
