# auth/audit.py
"""
Authentication audit logging for CityGuard.

Entries are append-only: stores expose ``append`` and queries, never update.
"""
import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import JSON, DateTime, String, Text, select
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base, Database, retry_on_db_error, with_timeout
from ..utils.datetime import Clock, get_current_time
from .models import AuditAction, AuditLogEntry, AuditResult, SessionMetadata

logger = logging.getLogger("cityguard.auth.audit")


class AuditLog(Protocol):
    async def append(self, entry: AuditLogEntry) -> AuditLogEntry: ...

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[AuditLogEntry]: ...


class InMemoryAuditLog:
    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._entries: List[AuditLogEntry] = []
        self._lock = asyncio.Lock()

    @property
    def entries(self) -> List[AuditLogEntry]:
        return list(self._entries)

    @with_timeout
    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        async with self._lock:
            self._entries.append(entry)
        return entry

    @with_timeout
    async def list_for_user(self, user_id: str, limit: int = 50) -> List[AuditLogEntry]:
        matching = [e for e in self._entries if e.user_id == user_id]
        return sorted(matching, key=lambda e: e.timestamp, reverse=True)[:limit]


class AuthAuditLog(Base):
    """Authentication audit log model."""
    __tablename__ = "auth_audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    action: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    result: Mapped[str] = mapped_column(String(10), nullable=False)
    client_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)


class SQLAuditLog:
    def __init__(self, database: Database, timeout: Optional[float] = None):
        self.database = database
        self.timeout = timeout

    @with_timeout
    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        async with self.database.session() as session:
            session.add(AuthAuditLog(
                id=entry.id or str(uuid.uuid4()),
                user_id=entry.user_id,
                action=entry.action.value,
                result=entry.result.value,
                client_ip=entry.client_ip,
                user_agent=entry.user_agent,
                details=dict(entry.details),
                timestamp=entry.timestamp,
            ))
        return entry

    @with_timeout
    @retry_on_db_error()
    async def list_for_user(self, user_id: str, limit: int = 50) -> List[AuditLogEntry]:
        async with self.database.session() as session:
            result = await session.execute(
                select(AuthAuditLog)
                .where(AuthAuditLog.user_id == user_id)
                .order_by(AuthAuditLog.timestamp.desc())
                .limit(limit)
            )
            return [
                AuditLogEntry(
                    id=row.id,
                    user_id=row.user_id,
                    action=AuditAction(row.action),
                    result=AuditResult(row.result),
                    client_ip=row.client_ip,
                    user_agent=row.user_agent,
                    details=dict(row.details or {}),
                    timestamp=row.timestamp,
                )
                for row in result.scalars().all()
            ]


class AuditService:
    """Builds audit entries and writes them to the configured log."""

    def __init__(self, log: AuditLog, clock: Clock = get_current_time):
        self.log = log
        self.clock = clock

    async def log_auth_event(
        self,
        action: AuditAction,
        user_id: Optional[str] = None,
        metadata: Optional[SessionMetadata] = None,
        success: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLogEntry:
        """Log an authentication event."""
        metadata = metadata or SessionMetadata()
        entry = AuditLogEntry(
            id=str(uuid.uuid4()),
            action=action,
            result=AuditResult.SUCCESS if success else AuditResult.FAILED,
            timestamp=self.clock(),
            user_id=user_id,
            client_ip=metadata.client_ip,
            user_agent=metadata.user_agent,
            details=details or {},
        )
        logger.info(
            f"audit action={action.value} result={entry.result.value} "
            f"user={user_id or '-'} ip={metadata.client_ip or '-'}"
        )
        return await self.log.append(entry)

    async def get_user_audit_logs(self, user_id: str, limit: int = 50) -> List[AuditLogEntry]:
        """Get audit logs for a user."""
        return await self.log.list_for_user(user_id, limit)


__all__ = [
    "AuditLog",
    "InMemoryAuditLog",
    "SQLAuditLog",
    "AuthAuditLog",
    "AuditService",
]
