"""
Session store: persisted records linking issued tokens to a user.

Tokens are stored only as SHA-256 digests. A user holds at most
``max_active_sessions`` active sessions; opening one more deletes the oldest
by ``issued_at`` first.
"""
import asyncio
import copy
import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol

from sqlalchemy import Boolean, DateTime, ForeignKey, String, and_, delete, or_, select, update
from sqlalchemy.orm import Mapped, mapped_column

from ..core.security import hash_token
from ..db import Base, Database, retry_on_db_error, with_timeout
from ..utils.datetime import Clock, get_current_time
from .models import Session, SessionMetadata
from .users import UserRecord

logger = logging.getLogger("cityguard.auth.sessions")

USER_AGENT_MAX_LENGTH = 255


class SessionStore(Protocol):
    max_active_sessions: int

    async def create(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        metadata: Optional[SessionMetadata] = None,
    ) -> Session: ...

    async def get(self, session_id: str) -> Optional[Session]: ...

    async def find_active_by_refresh_token(self, refresh_token: str) -> Optional[Session]: ...

    async def find_active_by_access_token(self, access_token: str) -> Optional[Session]: ...

    async def rotate_access_token(self, session_id: str, access_token: str) -> bool: ...

    async def touch(self, session_id: str) -> None: ...

    async def invalidate(self, session_id: str) -> bool: ...

    async def invalidate_all(self, user_id: str) -> int: ...

    async def list_active(self, user_id: str) -> List[Session]: ...

    async def sweep_expired(self) -> int: ...


def _new_session(
    user_id: str,
    access_token: str,
    refresh_token: str,
    expires_at: datetime,
    metadata: Optional[SessionMetadata],
    now: datetime,
) -> Session:
    if expires_at <= now:
        raise ValueError("Session expiry must be after its issue time")
    metadata = metadata or SessionMetadata()
    user_agent = metadata.user_agent[:USER_AGENT_MAX_LENGTH] if metadata.user_agent else None
    return Session(
        id=str(uuid.uuid4()),
        user_id=user_id,
        access_token_hash=hash_token(access_token),
        refresh_token_hash=hash_token(refresh_token),
        issued_at=now,
        expires_at=expires_at,
        last_activity=now,
        client_ip=metadata.client_ip,
        user_agent=user_agent,
    )


class InMemorySessionStore:
    """Dictionary-backed session store guarded by a single lock."""

    def __init__(
        self,
        max_active_sessions: int = 5,
        retention: timedelta = timedelta(days=30),
        clock: Clock = get_current_time,
        timeout: Optional[float] = None,
    ):
        self.max_active_sessions = max_active_sessions
        self.retention = retention
        self.clock = clock
        self.timeout = timeout
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()

    def _active_for_user(self, user_id: str, now: datetime) -> List[Session]:
        return sorted(
            (s for s in self._sessions.values() if s.user_id == user_id and s.is_usable(now)),
            key=lambda s: s.issued_at,
        )

    def _find(self, field: str, digest: str) -> Optional[Session]:
        now = self.clock()
        for session in self._sessions.values():
            if getattr(session, field) == digest and session.is_usable(now):
                return copy.copy(session)
        return None

    @with_timeout
    async def create(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        metadata: Optional[SessionMetadata] = None,
    ) -> Session:
        now = self.clock()
        session = _new_session(user_id, access_token, refresh_token, expires_at, metadata, now)
        async with self._lock:
            active = self._active_for_user(user_id, now)
            while len(active) >= self.max_active_sessions:
                oldest = active.pop(0)
                del self._sessions[oldest.id]
                logger.info(f"Evicted session {oldest.id} for user {user_id}")
            self._sessions[session.id] = session
        return copy.copy(session)

    @with_timeout
    async def get(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return copy.copy(session) if session else None

    @with_timeout
    async def find_active_by_refresh_token(self, refresh_token: str) -> Optional[Session]:
        return self._find("refresh_token_hash", hash_token(refresh_token))

    @with_timeout
    async def find_active_by_access_token(self, access_token: str) -> Optional[Session]:
        return self._find("access_token_hash", hash_token(access_token))

    @with_timeout
    async def rotate_access_token(self, session_id: str, access_token: str) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_usable(self.clock()):
                return False
            session.access_token_hash = hash_token(access_token)
            session.last_activity = self.clock()
            return True

    @with_timeout
    async def touch(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.is_active:
                session.last_activity = self.clock()

    @with_timeout
    async def invalidate(self, session_id: str) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return False
            session.is_active = False
            session.invalidated_at = self.clock()
            return True

    @with_timeout
    async def invalidate_all(self, user_id: str) -> int:
        now = self.clock()
        count = 0
        async with self._lock:
            for session in self._sessions.values():
                if session.user_id == user_id and session.is_active:
                    session.is_active = False
                    session.invalidated_at = now
                    count += 1
        return count

    @with_timeout
    async def list_active(self, user_id: str) -> List[Session]:
        now = self.clock()
        return [copy.copy(s) for s in self._active_for_user(user_id, now)]

    @with_timeout
    async def sweep_expired(self) -> int:
        now = self.clock()
        cutoff = now - self.retention
        async with self._lock:
            doomed = [
                s.id for s in self._sessions.values()
                if s.expires_at <= now
                or (not s.is_active and s.invalidated_at is not None and s.invalidated_at < cutoff)
            ]
            for session_id in doomed:
                del self._sessions[session_id]
        return len(doomed)


# === SQL backend ===
class UserSessionRecord(Base):
    """User session table."""
    __tablename__ = "user_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    access_token_hash: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    refresh_token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)
    last_activity: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    invalidated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    client_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(USER_AGENT_MAX_LENGTH), nullable=True)


def _to_session(record: UserSessionRecord) -> Session:
    return Session(
        id=record.id,
        user_id=record.user_id,
        access_token_hash=record.access_token_hash,
        refresh_token_hash=record.refresh_token_hash,
        issued_at=record.issued_at,
        expires_at=record.expires_at,
        last_activity=record.last_activity,
        is_active=record.is_active,
        invalidated_at=record.invalidated_at,
        client_ip=record.client_ip,
        user_agent=record.user_agent,
    )


class SQLSessionStore:
    """Async SQLAlchemy session store."""

    def __init__(
        self,
        database: Database,
        max_active_sessions: int = 5,
        retention: timedelta = timedelta(days=30),
        clock: Clock = get_current_time,
        timeout: Optional[float] = None,
    ):
        self.database = database
        self.max_active_sessions = max_active_sessions
        self.retention = retention
        self.clock = clock
        self.timeout = timeout

    def _usable(self, now: datetime):
        return and_(UserSessionRecord.is_active.is_(True), UserSessionRecord.expires_at > now)

    @with_timeout
    async def create(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        metadata: Optional[SessionMetadata] = None,
    ) -> Session:
        now = self.clock()
        new = _new_session(user_id, access_token, refresh_token, expires_at, metadata, now)
        async with self.database.session() as session:
            # Holding the owner's row serializes logins for one user
            await session.execute(
                select(UserRecord.id).where(UserRecord.id == user_id).with_for_update()
            )
            session.add(UserSessionRecord(
                id=new.id,
                user_id=new.user_id,
                access_token_hash=new.access_token_hash,
                refresh_token_hash=new.refresh_token_hash,
                issued_at=new.issued_at,
                expires_at=new.expires_at,
                last_activity=new.last_activity,
                is_active=True,
                client_ip=new.client_ip,
                user_agent=new.user_agent,
            ))
            await session.flush()

            result = await session.execute(
                select(UserSessionRecord.id)
                .where(
                    UserSessionRecord.user_id == user_id,
                    UserSessionRecord.id != new.id,
                    self._usable(now),
                )
                .order_by(UserSessionRecord.issued_at.desc(), UserSessionRecord.id.desc())
            )
            evicted = list(result.scalars().all())[self.max_active_sessions - 1:]
            if evicted:
                await session.execute(
                    delete(UserSessionRecord).where(UserSessionRecord.id.in_(evicted))
                )
                logger.info(f"Evicted {len(evicted)} session(s) for user {user_id}")
        return new

    @with_timeout
    @retry_on_db_error()
    async def get(self, session_id: str) -> Optional[Session]:
        async with self.database.session() as session:
            record = await session.get(UserSessionRecord, session_id)
            return _to_session(record) if record else None

    async def _find_by(self, column, digest: str) -> Optional[Session]:
        async with self.database.session() as session:
            result = await session.execute(
                select(UserSessionRecord).where(column == digest, self._usable(self.clock()))
            )
            record = result.scalars().first()
            return _to_session(record) if record else None

    @with_timeout
    @retry_on_db_error()
    async def find_active_by_refresh_token(self, refresh_token: str) -> Optional[Session]:
        return await self._find_by(UserSessionRecord.refresh_token_hash, hash_token(refresh_token))

    @with_timeout
    @retry_on_db_error()
    async def find_active_by_access_token(self, access_token: str) -> Optional[Session]:
        return await self._find_by(UserSessionRecord.access_token_hash, hash_token(access_token))

    @with_timeout
    async def rotate_access_token(self, session_id: str, access_token: str) -> bool:
        now = self.clock()
        async with self.database.session() as session:
            result = await session.execute(
                update(UserSessionRecord)
                .where(UserSessionRecord.id == session_id, self._usable(now))
                .values(access_token_hash=hash_token(access_token), last_activity=now)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    @with_timeout
    async def touch(self, session_id: str) -> None:
        async with self.database.session() as session:
            await session.execute(
                update(UserSessionRecord)
                .where(UserSessionRecord.id == session_id, UserSessionRecord.is_active.is_(True))
                .values(last_activity=self.clock())
                .execution_options(synchronize_session=False)
            )

    @with_timeout
    async def invalidate(self, session_id: str) -> bool:
        async with self.database.session() as session:
            result = await session.execute(
                update(UserSessionRecord)
                .where(UserSessionRecord.id == session_id, UserSessionRecord.is_active.is_(True))
                .values(is_active=False, invalidated_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    @with_timeout
    async def invalidate_all(self, user_id: str) -> int:
        async with self.database.session() as session:
            result = await session.execute(
                update(UserSessionRecord)
                .where(UserSessionRecord.user_id == user_id, UserSessionRecord.is_active.is_(True))
                .values(is_active=False, invalidated_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    @with_timeout
    @retry_on_db_error()
    async def list_active(self, user_id: str) -> List[Session]:
        async with self.database.session() as session:
            result = await session.execute(
                select(UserSessionRecord)
                .where(UserSessionRecord.user_id == user_id, self._usable(self.clock()))
                .order_by(UserSessionRecord.issued_at.asc())
            )
            return [_to_session(record) for record in result.scalars().all()]

    @with_timeout
    async def sweep_expired(self) -> int:
        now = self.clock()
        cutoff = now - self.retention
        async with self.database.session() as session:
            result = await session.execute(
                delete(UserSessionRecord).where(
                    or_(
                        UserSessionRecord.expires_at <= now,
                        and_(
                            UserSessionRecord.is_active.is_(False),
                            UserSessionRecord.invalidated_at < cutoff,
                        ),
                    )
                )
            )
            return result.rowcount


__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "SQLSessionStore",
    "UserSessionRecord",
]
