"""
Credential store: persisted user records and their lockout state.

Two interchangeable backends implement :class:`UserStore`: an in-memory
store for tests and demos and an async SQLAlchemy store for production.
Failed-attempt bookkeeping is atomic in both.
"""
import asyncio
import copy
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, case, select, update
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base, Database, IntegrityError, TimestampMixin, retry_on_db_error, with_timeout
from ..schemas.user import UserType
from .models import User

logger = logging.getLogger("cityguard.auth")

PROFILE_FIELDS = ("first_name", "last_name", "phone")


class UserStore(Protocol):
    async def get_by_id(self, user_id: str) -> Optional[User]: ...

    async def get_by_email(self, email: str) -> Optional[User]: ...

    async def create(self, user: User) -> User: ...

    async def register_failed_attempt(
        self, user_id: str, max_attempts: int, lock_until: datetime, now: datetime
    ) -> Optional[User]: ...

    async def reset_failed_attempts(self, user_id: str, now: datetime) -> None: ...

    async def update_profile(self, user_id: str, changes: Dict[str, Any], now: datetime) -> Optional[User]: ...

    async def update_password(self, user_id: str, password_hash: str, now: datetime) -> None: ...

    async def touch_activity(self, user_id: str, now: datetime) -> None: ...


class InMemoryUserStore:
    """Dictionary-backed store. Every mutation happens under one lock."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._users: Dict[str, User] = {}
        self._ids_by_email: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    @with_timeout
    async def get_by_id(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return copy.deepcopy(user) if user else None

    @with_timeout
    async def get_by_email(self, email: str) -> Optional[User]:
        user_id = self._ids_by_email.get(email.strip().lower())
        return await self.get_by_id(user_id) if user_id else None

    @with_timeout
    async def create(self, user: User) -> User:
        async with self._lock:
            if user.email in self._ids_by_email:
                raise IntegrityError("Email already registered", context={"email": user.email})
            self._users[user.id] = copy.deepcopy(user)
            self._ids_by_email[user.email] = user.id
        return copy.deepcopy(user)

    @with_timeout
    async def register_failed_attempt(
        self, user_id: str, max_attempts: int, lock_until: datetime, now: datetime
    ) -> Optional[User]:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            user.failed_attempts += 1
            if user.failed_attempts >= max_attempts:
                user.locked_until = lock_until
            user.updated_at = now
            return copy.deepcopy(user)

    @with_timeout
    async def reset_failed_attempts(self, user_id: str, now: datetime) -> None:
        async with self._lock:
            user = self._users.get(user_id)
            if user is not None:
                user.failed_attempts = 0
                user.locked_until = None
                user.last_login = now
                user.updated_at = now

    @with_timeout
    async def update_profile(self, user_id: str, changes: Dict[str, Any], now: datetime) -> Optional[User]:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            for key, value in changes.items():
                if key in PROFILE_FIELDS:
                    setattr(user, key, value)
            user.updated_at = now
            return copy.deepcopy(user)

    @with_timeout
    async def update_password(self, user_id: str, password_hash: str, now: datetime) -> None:
        async with self._lock:
            user = self._users.get(user_id)
            if user is not None:
                user.password_hash = password_hash
                user.updated_at = now

    @with_timeout
    async def touch_activity(self, user_id: str, now: datetime) -> None:
        async with self._lock:
            user = self._users.get(user_id)
            if user is not None:
                user.last_active_date = now


# === SQL backend ===
class UserRecord(TimestampMixin, Base):
    """User table."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    user_type: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    profile: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    failed_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_active_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


def _to_user(record: UserRecord) -> User:
    return User(
        id=record.id,
        email=record.email,
        password_hash=record.password_hash,
        user_type=UserType(record.user_type),
        first_name=record.first_name,
        last_name=record.last_name,
        phone=record.phone or "",
        profile=dict(record.profile or {}),
        failed_attempts=record.failed_attempts,
        locked_until=record.locked_until,
        email_verified=record.email_verified,
        last_login=record.last_login,
        is_active=record.is_active,
        last_active_date=record.last_active_date,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class SQLUserStore:
    """Async SQLAlchemy store. Reads retry transient failures, writes do not."""

    def __init__(self, database: Database, timeout: Optional[float] = None):
        self.database = database
        self.timeout = timeout

    @with_timeout
    @retry_on_db_error()
    async def get_by_id(self, user_id: str) -> Optional[User]:
        async with self.database.session() as session:
            record = await session.get(UserRecord, user_id)
            return _to_user(record) if record else None

    @with_timeout
    @retry_on_db_error()
    async def get_by_email(self, email: str) -> Optional[User]:
        async with self.database.session() as session:
            result = await session.execute(
                select(UserRecord).where(UserRecord.email == email.strip().lower())
            )
            record = result.scalar_one_or_none()
            return _to_user(record) if record else None

    @with_timeout
    async def create(self, user: User) -> User:
        record = UserRecord(
            id=user.id,
            email=user.email,
            password_hash=user.password_hash,
            user_type=user.user_type.value,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=user.phone,
            profile=user.profile,
            failed_attempts=user.failed_attempts,
            locked_until=user.locked_until,
            email_verified=user.email_verified,
            last_login=user.last_login,
            is_active=user.is_active,
            last_active_date=user.last_active_date,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
        async with self.database.session() as session:
            session.add(record)
        return user

    @with_timeout
    async def register_failed_attempt(
        self, user_id: str, max_attempts: int, lock_until: datetime, now: datetime
    ) -> Optional[User]:
        # Single statement: both assignments read the pre-update counter
        stmt = (
            update(UserRecord)
            .where(UserRecord.id == user_id)
            .ordered_values(
                (
                    UserRecord.locked_until,
                    case(
                        (UserRecord.failed_attempts + 1 >= max_attempts, lock_until),
                        else_=UserRecord.locked_until,
                    ),
                ),
                (UserRecord.failed_attempts, UserRecord.failed_attempts + 1),
                (UserRecord.updated_at, now),
            )
            .execution_options(synchronize_session=False)
        )
        async with self.database.session() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                return None
            record = (
                await session.execute(select(UserRecord).where(UserRecord.id == user_id))
            ).scalar_one()
            return _to_user(record)

    @with_timeout
    async def reset_failed_attempts(self, user_id: str, now: datetime) -> None:
        async with self.database.session() as session:
            await session.execute(
                update(UserRecord)
                .where(UserRecord.id == user_id)
                .values(failed_attempts=0, locked_until=None, last_login=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )

    @with_timeout
    async def update_profile(self, user_id: str, changes: Dict[str, Any], now: datetime) -> Optional[User]:
        values = {key: value for key, value in changes.items() if key in PROFILE_FIELDS}
        async with self.database.session() as session:
            record = await session.get(UserRecord, user_id)
            if record is None:
                return None
            for key, value in values.items():
                setattr(record, key, value)
            record.updated_at = now
            await session.flush()
            return _to_user(record)

    @with_timeout
    async def update_password(self, user_id: str, password_hash: str, now: datetime) -> None:
        async with self.database.session() as session:
            await session.execute(
                update(UserRecord)
                .where(UserRecord.id == user_id)
                .values(password_hash=password_hash, updated_at=now)
                .execution_options(synchronize_session=False)
            )

    @with_timeout
    async def touch_activity(self, user_id: str, now: datetime) -> None:
        async with self.database.session() as session:
            await session.execute(
                update(UserRecord)
                .where(UserRecord.id == user_id)
                .values(last_active_date=now)
                .execution_options(synchronize_session=False)
            )


__all__ = ["UserStore", "InMemoryUserStore", "SQLUserStore", "UserRecord"]
