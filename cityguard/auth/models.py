"""
Storage-independent auth records.

The stores hand these out instead of ORM rows so the service layer never
depends on which backend is configured.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..schemas.user import UserType
from ..utils.datetime import get_current_time


class AuditAction(str, Enum):
    """Audit action types."""
    REGISTER = "register"
    LOGIN = "login"
    LOGIN_FAILED = "login_failed"
    ACCOUNT_LOCKED = "account_locked"
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    TOKEN_REFRESH = "token_refresh"
    PROFILE_UPDATE = "profile_update"
    PASSWORD_CHANGE = "password_change"
    SESSION_REVOKED = "session_revoked"


class AuditResult(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class User:
    id: str
    email: str
    password_hash: str
    user_type: UserType
    first_name: str
    last_name: str
    phone: str = ""
    profile: Dict[str, Any] = field(default_factory=dict)
    failed_attempts: int = 0
    locked_until: Optional[datetime] = None
    email_verified: bool = False
    last_login: Optional[datetime] = None
    is_active: bool = True
    last_active_date: Optional[datetime] = None
    created_at: datetime = field(default_factory=get_current_time)
    updated_at: datetime = field(default_factory=get_current_time)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now


@dataclass
class Session:
    id: str
    user_id: str
    access_token_hash: str
    refresh_token_hash: str
    issued_at: datetime
    expires_at: datetime
    last_activity: datetime
    is_active: bool = True
    invalidated_at: Optional[datetime] = None
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None

    def is_usable(self, now: datetime) -> bool:
        return self.is_active and self.expires_at > now


@dataclass(frozen=True)
class SessionMetadata:
    """Client details captured when a session is opened."""
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class AuditLogEntry:
    action: AuditAction
    result: AuditResult
    timestamp: datetime
    user_id: Optional[str] = None
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


__all__ = [
    "AuditAction",
    "AuditResult",
    "User",
    "Session",
    "SessionMetadata",
    "AuditLogEntry",
]
