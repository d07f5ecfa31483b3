# auth/__init__.py
"""
Authentication and authorization for CityGuard.

Credential and session stores (in-memory and SQL), account lockout, the audit
log, per-client rate limiting and the request authentication dependencies.
"""
from .models import AuditAction, AuditLogEntry, AuditResult, Session, SessionMetadata, User
from .users import InMemoryUserStore, SQLUserStore, UserRecord, UserStore
from .session_management import InMemorySessionStore, SessionStore, SQLSessionStore, UserSessionRecord
from .audit import AuditLog, AuditService, AuthAuditLog, InMemoryAuditLog, SQLAuditLog
from .account_guard import AccountGuard, FailureOutcome
from .rate_limiting import FixedWindowRateLimiter, get_client_ip, rate_limit
from .middleware import (
    Authenticator,
    Principal,
    get_current_principal,
    get_optional_principal,
    request_metadata,
    require_roles,
    require_zone_access,
)

__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "AuditResult",
    "Session",
    "SessionMetadata",
    "User",
    "UserStore",
    "InMemoryUserStore",
    "SQLUserStore",
    "UserRecord",
    "SessionStore",
    "InMemorySessionStore",
    "SQLSessionStore",
    "UserSessionRecord",
    "AuditLog",
    "AuditService",
    "AuthAuditLog",
    "InMemoryAuditLog",
    "SQLAuditLog",
    "AccountGuard",
    "FailureOutcome",
    "FixedWindowRateLimiter",
    "get_client_ip",
    "rate_limit",
    "Authenticator",
    "Principal",
    "get_current_principal",
    "get_optional_principal",
    "request_metadata",
    "require_roles",
    "require_zone_access",
]
