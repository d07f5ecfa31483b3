"""
Authentication routes for CityGuard.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request, status

from ..auth.middleware import (
    Principal,
    get_current_principal,
    get_optional_principal,
    request_metadata,
    require_roles,
    require_zone_access,
)
from ..auth.rate_limiting import rate_limit
from ..schemas.responses import (
    AuthResponse,
    PrincipalResponse,
    PrincipalSummary,
    PublicContextResponse,
    ProfileResponse,
    RefreshResponse,
    SessionListResponse,
    SessionStatsResponse,
    SuccessResponse,
)
from ..schemas.token import RefreshRequest
from ..schemas.user import (
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    UserResponse,
    UserType,
)
from ..services.auth import AuthService

router = APIRouter()

auth_rate_limit = rate_limit("auth", "AUTH_RATE_LIMIT_REQUESTS")
refresh_rate_limit = rate_limit("refresh", "REFRESH_RATE_LIMIT_REQUESTS")


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _summary(principal: Principal) -> PrincipalSummary:
    return PrincipalSummary(
        id=principal.id,
        email=principal.email,
        user_type=principal.user_type,
        session_id=principal.session_id,
    )


def _principal_response(principal: Principal, message: Optional[str] = None) -> PrincipalResponse:
    return PrincipalResponse(message=message, user=_summary(principal))


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limit)],
    summary="Register a new user",
)
async def register(
    payload: RegisterRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """
    Register a new user.

    - **email**: must be a valid email and unique
    - **password**: at least 8 characters with upper, lower and a digit
    - **userType**: citizen, employee, office or environmental
    """
    user, tokens = await service.register(payload, request_metadata(request))
    return AuthResponse(user=UserResponse.from_user(user), tokens=tokens)


@router.post(
    "/login",
    response_model=AuthResponse,
    dependencies=[Depends(auth_rate_limit)],
    summary="Log in with email and password",
)
async def login(
    payload: LoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    user, tokens = await service.login(payload, request_metadata(request))
    return AuthResponse(user=UserResponse.from_user(user), tokens=tokens)


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    dependencies=[Depends(refresh_rate_limit)],
    summary="Exchange a refresh token for a new access token",
)
async def refresh(
    payload: RefreshRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> RefreshResponse:
    tokens = await service.refresh(payload.refresh_token, request_metadata(request))
    return RefreshResponse(tokens=tokens)


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> SuccessResponse:
    await service.logout(principal.id, principal.session_id, request_metadata(request))
    return SuccessResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=SuccessResponse)
async def logout_all(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> SuccessResponse:
    count = await service.logout_all(principal.id, request_metadata(request))
    return SuccessResponse(message=f"Logged out of {count} session(s)")


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    user = await service.get_profile(principal.id)
    return ProfileResponse(user=UserResponse.from_user(user))


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    payload: ProfileUpdateRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    user = await service.update_profile(principal.id, payload, request_metadata(request))
    return ProfileResponse(user=UserResponse.from_user(user))


@router.post("/change-password", response_model=SuccessResponse)
async def change_password(
    payload: ChangePasswordRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> SuccessResponse:
    """Change the password. All sessions, including this one, are ended."""
    await service.change_password(principal.id, payload, request_metadata(request))
    return SuccessResponse(message="Password changed successfully. Please log in again.")


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> SessionListResponse:
    sessions = await service.list_sessions(principal.id, principal.session_id)
    return SessionListResponse(sessions=sessions)


@router.get("/session-stats", response_model=SessionStatsResponse)
async def session_stats(
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> SessionStatsResponse:
    return SessionStatsResponse(stats=await service.session_stats(principal.id))


@router.delete("/sessions/{session_id}", response_model=SuccessResponse)
async def revoke_session(
    session_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> SuccessResponse:
    await service.revoke_session(principal.id, session_id, request_metadata(request))
    return SuccessResponse(message="Session revoked")


@router.get("/verify", response_model=PrincipalResponse)
async def verify_token(principal: Principal = Depends(get_current_principal)) -> PrincipalResponse:
    return _principal_response(principal, "Token is valid")


@router.get("/public-with-context", response_model=PublicContextResponse, response_model_exclude_none=True)
async def public_with_context(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> PublicContextResponse:
    """Public route that tailors its answer when the caller happens to be signed in."""
    return PublicContextResponse(
        message="This is a public endpoint",
        is_authenticated=principal is not None,
        user=_summary(principal) if principal is not None else None,
    )


# === Guarded routes ===
@router.get("/protected/citizen-only", response_model=PrincipalResponse)
async def citizen_only(principal: Principal = Depends(require_roles(UserType.CITIZEN))) -> PrincipalResponse:
    return _principal_response(principal, "Citizen access granted")


@router.get("/protected/employee-only", response_model=PrincipalResponse)
async def employee_only(principal: Principal = Depends(require_roles(UserType.EMPLOYEE))) -> PrincipalResponse:
    return _principal_response(principal, "Employee access granted")


@router.get("/protected/manager-only", response_model=PrincipalResponse)
async def manager_only(principal: Principal = Depends(require_roles(UserType.OFFICE))) -> PrincipalResponse:
    return _principal_response(principal, "Manager access granted")


@router.get("/protected/staff-only", response_model=PrincipalResponse)
async def staff_only(
    principal: Principal = Depends(
        require_roles(UserType.EMPLOYEE, UserType.OFFICE, UserType.ENVIRONMENTAL)
    ),
) -> PrincipalResponse:
    return _principal_response(principal, "Staff access granted")


@router.get("/protected/zone/{zone}", response_model=PrincipalResponse)
async def zone_access(
    zone: str,
    principal: Principal = Depends(require_zone_access("zone")),
) -> PrincipalResponse:
    return _principal_response(principal, f"Access granted to zone {zone}")
