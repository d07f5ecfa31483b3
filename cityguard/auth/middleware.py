"""
Request authentication and authorization as FastAPI dependencies:

    token -> verify -> active session -> reload user -> account status
          -> role / zone -> principal on ``request.state.principal``
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import BackgroundTasks, Depends, Request
from fastapi.security.utils import get_authorization_scheme_param

from ..core.exceptions import AuthError, PermissionDenied, TokenInvalid, ValidationError
from ..core.security import Claims, TokenService
from ..db.exceptions import DatabaseError
from ..schemas.token import EmployeeClaims, OfficeClaims
from ..schemas.user import UserType
from .account_guard import AccountGuard
from .models import SessionMetadata
from .rate_limiting import get_client_ip
from .session_management import SessionStore
from .users import UserStore

logger = logging.getLogger("cityguard.auth.middleware")

ACCESS_TOKEN_COOKIE = "accessToken"
ACCESS_TOKEN_QUERY_PARAM = "token"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller: decoded claims plus the session they belong to."""
    claims: Claims
    session_id: str

    @property
    def id(self) -> str:
        return self.claims.user_id

    @property
    def email(self) -> str:
        return self.claims.email

    @property
    def user_type(self) -> UserType:
        return UserType(self.claims.user_type)


class Authenticator:
    """Turns a raw access token into a :class:`Principal` or raises."""

    def __init__(
        self,
        tokens: TokenService,
        users: UserStore,
        sessions: SessionStore,
        guard: AccountGuard,
        require_email_verification: bool = False,
    ):
        self.tokens = tokens
        self.users = users
        self.sessions = sessions
        self.guard = guard
        self.require_email_verification = require_email_verification

    async def authenticate(self, token: str) -> Principal:
        claims = self.tokens.verify_access_token(token)

        session = await self.sessions.find_active_by_access_token(token)
        if session is None or session.user_id != claims.user_id:
            raise TokenInvalid(reason="SESSION_INACTIVE", context={"user_id": claims.user_id})

        user = await self.users.get_by_id(claims.user_id)
        if user is None:
            raise TokenInvalid(reason="USER_NOT_FOUND", context={"user_id": claims.user_id})
        if not user.is_active:
            raise PermissionDenied("Account is deactivated", context={"user_id": user.id})
        self.guard.ensure_not_locked(user)
        if self.require_email_verification and not user.email_verified:
            raise PermissionDenied("Email verification required", context={"user_id": user.id})

        return Principal(claims=claims, session_id=session.id)

    async def record_activity(self, principal: Principal) -> None:
        """Post-response bookkeeping. Failures are logged and dropped."""
        now = self.guard.clock()
        try:
            await self.sessions.touch(principal.session_id)
            await self.users.touch_activity(principal.id, now)
        except DatabaseError as e:
            logger.warning(f"Failed to record activity for session {principal.session_id}: {e}")


def extract_token(request: Request) -> Optional[str]:
    """Bearer header, then ``?token=``, then the ``accessToken`` cookie."""
    scheme, param = get_authorization_scheme_param(request.headers.get("Authorization"))
    if scheme.lower() == "bearer" and param:
        return param

    token = request.query_params.get(ACCESS_TOKEN_QUERY_PARAM)
    if token:
        return token

    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


def request_metadata(request: Request) -> SessionMetadata:
    return SessionMetadata(
        client_ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


async def get_current_principal(request: Request, background_tasks: BackgroundTasks) -> Principal:
    token = extract_token(request)
    if not token:
        raise TokenInvalid("Access token required", reason="TOKEN_MISSING")

    authenticator: Authenticator = request.app.state.authenticator
    principal = await authenticator.authenticate(token)

    background_tasks.add_task(authenticator.record_activity, principal)
    request.state.principal = principal
    return principal


async def get_optional_principal(request: Request, background_tasks: BackgroundTasks) -> Optional[Principal]:
    """Like :func:`get_current_principal` but yields None instead of failing."""
    try:
        return await get_current_principal(request, background_tasks)
    except AuthError as e:
        logger.debug(f"Optional authentication skipped: {e.reason}")
        return None


def require_roles(*user_types: Any):
    """Dependency factory admitting only the given user types."""
    allowed = {UserType(t) for t in user_types}

    async def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.user_type not in allowed:
            raise PermissionDenied(
                context={"user_id": principal.id, "required": sorted(t.value for t in allowed)}
            )
        return principal

    return dependency


async def resolve_target_zone(request: Request, param: str) -> Optional[str]:
    """Target zone from path params, then query params, then a JSON body."""
    zone = request.path_params.get(param) or request.query_params.get(param)
    if zone:
        return zone

    if "application/json" in request.headers.get("content-type", ""):
        try:
            body = await request.json()
        except ValueError:
            return None
        if isinstance(body, dict) and body.get(param):
            return str(body[param])
    return None


def check_zone_access(claims: Claims, zone: str) -> None:
    if isinstance(claims, EmployeeClaims) and claims.zone != zone:
        raise PermissionDenied("Access denied to this zone", context={"zone": zone})
    if isinstance(claims, OfficeClaims) and zone not in claims.managed_zones:
        raise PermissionDenied("Access denied to this zone", context={"zone": zone})


def require_zone_access(param: str = "zone"):
    """Dependency factory restricting employees and managers to their zones."""
    async def dependency(
        request: Request, principal: Principal = Depends(get_current_principal)
    ) -> Principal:
        zone = await resolve_target_zone(request, param)
        if zone is None:
            raise ValidationError("Zone parameter is required", details={"param": param})
        check_zone_access(principal.claims, zone)
        return principal

    return dependency


__all__ = [
    "Principal",
    "Authenticator",
    "extract_token",
    "request_metadata",
    "get_current_principal",
    "get_optional_principal",
    "require_roles",
    "require_zone_access",
    "check_zone_access",
]
