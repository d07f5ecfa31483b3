"""
Registration, login and session orchestration.
"""
import logging
import uuid
from dataclasses import replace
from typing import List, Optional, Tuple

from ..auth.account_guard import AccountGuard
from ..auth.audit import AuditService
from ..auth.models import AuditAction, SessionMetadata, User
from ..auth.session_management import SessionStore
from ..auth.users import UserStore
from ..core.exceptions import (
    AccountLocked,
    Conflict,
    InvalidCredentials,
    PermissionDenied,
    TokenInvalid,
    ValidationError,
)
from ..core.security import PasswordHasher, TokenService
from ..db.exceptions import IntegrityError
from ..schemas.token import AccessTokenResponse, TokenPair
from ..schemas.user import (
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    SessionInfo,
    SessionStats,
    build_default_profile,
)
from ..utils.datetime import Clock, get_current_time

logger = logging.getLogger("cityguard.auth")


class AuthService:
    """Auth use cases over the configured stores.

    Every public method either returns its result or raises one of the
    errors in :mod:`cityguard.core.exceptions`.
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        audit: AuditService,
        tokens: TokenService,
        hasher: PasswordHasher,
        guard: AccountGuard,
        clock: Clock = get_current_time,
    ):
        self.users = users
        self.sessions = sessions
        self.audit = audit
        self.tokens = tokens
        self.hasher = hasher
        self.guard = guard
        self.clock = clock

    async def _open_session(self, user: User, metadata: Optional[SessionMetadata]) -> TokenPair:
        access_token = self.tokens.issue_access_token(user)
        refresh_token = self.tokens.issue_refresh_token(user)
        await self.sessions.create(
            user.id,
            access_token,
            refresh_token,
            expires_at=self.clock() + self.tokens.refresh_ttl,
            metadata=metadata,
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.tokens.access_ttl_seconds,
        )

    async def _require_user(self, user_id: str) -> User:
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise TokenInvalid(reason="USER_NOT_FOUND", context={"user_id": user_id})
        return user

    # === Registration & login ===
    async def register(
        self, data: RegisterRequest, metadata: Optional[SessionMetadata] = None
    ) -> Tuple[User, TokenPair]:
        if await self.users.get_by_email(data.email) is not None:
            raise Conflict(context={"email": data.email})

        now = self.clock()
        user = User(
            id=str(uuid.uuid4()),
            email=data.email,
            password_hash=await self.hasher.hash(data.password),
            user_type=data.user_type,
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone or "",
            profile=build_default_profile(data.user_type),
            created_at=now,
            updated_at=now,
        )
        try:
            user = await self.users.create(user)
        except IntegrityError as e:
            # Lost a race with a concurrent registration for the same email
            raise Conflict(context={"email": data.email}) from e

        tokens = await self._open_session(user, metadata)
        await self.audit.log_auth_event(AuditAction.REGISTER, user.id, metadata)
        logger.info(f"Registered {user.user_type.value} user {user.id}")
        return user, tokens

    async def login(
        self, data: LoginRequest, metadata: Optional[SessionMetadata] = None
    ) -> Tuple[User, TokenPair]:
        user = await self.users.get_by_email(data.email)
        if user is None:
            await self.hasher.dummy_verify(data.password)
            await self.audit.log_auth_event(
                AuditAction.LOGIN_FAILED, None, metadata, success=False,
                details={"email": data.email, "reason": "unknown_email"},
            )
            raise InvalidCredentials(reason="UNKNOWN_EMAIL")

        try:
            self.guard.ensure_not_locked(user)
        except AccountLocked:
            await self.audit.log_auth_event(
                AuditAction.LOGIN_FAILED, user.id, metadata, success=False,
                details={"reason": "account_locked"},
            )
            raise

        if not await self.hasher.verify(data.password, user.password_hash):
            outcome = await self.guard.register_failure(user)
            await self.audit.log_auth_event(
                AuditAction.LOGIN_FAILED, user.id, metadata, success=False,
                details={"reason": "invalid_password", "failedAttempts": outcome.failed_attempts},
            )
            if outcome.locked:
                await self.audit.log_auth_event(
                    AuditAction.ACCOUNT_LOCKED, user.id, metadata, success=False,
                    details={"remainingMinutes": outcome.remaining_minutes},
                )
            raise InvalidCredentials(reason="INVALID_PASSWORD")

        if not user.is_active:
            await self.audit.log_auth_event(
                AuditAction.LOGIN_FAILED, user.id, metadata, success=False,
                details={"reason": "account_inactive"},
            )
            raise PermissionDenied("Account is deactivated", context={"user_id": user.id})

        await self.guard.register_success(user)
        user = replace(user, failed_attempts=0, locked_until=None, last_login=self.clock())

        tokens = await self._open_session(user, metadata)
        await self.audit.log_auth_event(AuditAction.LOGIN, user.id, metadata)
        return user, tokens

    async def refresh(
        self, refresh_token: str, metadata: Optional[SessionMetadata] = None
    ) -> AccessTokenResponse:
        claims = self.tokens.verify_refresh_token(refresh_token)

        session = await self.sessions.find_active_by_refresh_token(refresh_token)
        if session is None or session.user_id != claims.user_id:
            raise TokenInvalid(reason="SESSION_INACTIVE", context={"user_id": claims.user_id})

        user = await self._require_user(claims.user_id)
        if not user.is_active:
            raise PermissionDenied("Account is deactivated", context={"user_id": user.id})

        access_token = self.tokens.issue_access_token(user)
        if not await self.sessions.rotate_access_token(session.id, access_token):
            raise TokenInvalid(reason="SESSION_INACTIVE", context={"session_id": session.id})

        await self.audit.log_auth_event(
            AuditAction.TOKEN_REFRESH, user.id, metadata, details={"sessionId": session.id}
        )
        return AccessTokenResponse(access_token=access_token, expires_in=self.tokens.access_ttl_seconds)

    # === Sessions ===
    async def logout(
        self, user_id: str, session_id: str, metadata: Optional[SessionMetadata] = None
    ) -> None:
        await self.sessions.invalidate(session_id)
        await self.audit.log_auth_event(
            AuditAction.LOGOUT, user_id, metadata, details={"sessionId": session_id}
        )

    async def logout_all(self, user_id: str, metadata: Optional[SessionMetadata] = None) -> int:
        count = await self.sessions.invalidate_all(user_id)
        await self.audit.log_auth_event(
            AuditAction.LOGOUT_ALL, user_id, metadata, details={"sessions": count}
        )
        return count

    async def list_sessions(self, user_id: str, current_session_id: Optional[str] = None) -> List[SessionInfo]:
        sessions = await self.sessions.list_active(user_id)
        return [
            SessionInfo(
                id=s.id,
                ip_address=s.client_ip,
                user_agent=s.user_agent,
                is_current=s.id == current_session_id,
                issued_at=s.issued_at,
                last_activity=s.last_activity,
                expires_at=s.expires_at,
            )
            for s in sorted(sessions, key=lambda s: s.last_activity, reverse=True)
        ]

    async def session_stats(self, user_id: str) -> SessionStats:
        user = await self._require_user(user_id)
        sessions = await self.sessions.list_active(user_id)
        return SessionStats(
            active_sessions=len(sessions),
            max_active_sessions=self.sessions.max_active_sessions,
            last_login=user.last_login,
            last_activity=max((s.last_activity for s in sessions), default=None),
        )

    async def revoke_session(
        self, user_id: str, session_id: str, metadata: Optional[SessionMetadata] = None
    ) -> None:
        session = await self.sessions.get(session_id)
        if session is None or session.user_id != user_id or not session.is_active:
            raise ValidationError("Session not found", details={"sessionId": session_id})

        await self.sessions.invalidate(session_id)
        await self.audit.log_auth_event(
            AuditAction.SESSION_REVOKED, user_id, metadata, details={"sessionId": session_id}
        )

    # === Profile ===
    async def get_profile(self, user_id: str) -> User:
        return await self._require_user(user_id)

    async def update_profile(
        self, user_id: str, data: ProfileUpdateRequest, metadata: Optional[SessionMetadata] = None
    ) -> User:
        changes = data.model_dump(exclude_none=True)
        if not changes:
            raise ValidationError("No profile fields to update")

        user = await self.users.update_profile(user_id, changes, self.clock())
        if user is None:
            raise TokenInvalid(reason="USER_NOT_FOUND", context={"user_id": user_id})

        await self.audit.log_auth_event(
            AuditAction.PROFILE_UPDATE, user_id, metadata, details={"fields": sorted(changes)}
        )
        return user

    async def change_password(
        self, user_id: str, data: ChangePasswordRequest, metadata: Optional[SessionMetadata] = None
    ) -> None:
        """Replace the password and end every session of the user."""
        user = await self._require_user(user_id)
        if not await self.hasher.verify(data.current_password, user.password_hash):
            await self.audit.log_auth_event(
                AuditAction.PASSWORD_CHANGE, user_id, metadata, success=False,
                details={"reason": "invalid_current_password"},
            )
            raise InvalidCredentials("Current password is incorrect")

        await self.users.update_password(user_id, await self.hasher.hash(data.new_password), self.clock())
        count = await self.sessions.invalidate_all(user_id)
        await self.audit.log_auth_event(
            AuditAction.PASSWORD_CHANGE, user_id, metadata, details={"sessionsEnded": count}
        )


__all__ = ["AuthService"]
