from .user import (
    UserType,
    RegisterRequest,
    LoginRequest,
    ProfileUpdateRequest,
    ChangePasswordRequest,
    UserResponse,
    SessionInfo,
    build_default_profile,
)
from .token import (
    AccessClaims,
    CitizenClaims,
    EmployeeClaims,
    OfficeClaims,
    EnvironmentalClaims,
    RefreshClaims,
    TokenPair,
    AccessTokenResponse,
    RefreshRequest,
)

__all__ = [
    "UserType",
    "RegisterRequest",
    "LoginRequest",
    "ProfileUpdateRequest",
    "ChangePasswordRequest",
    "UserResponse",
    "SessionInfo",
    "build_default_profile",
    "AccessClaims",
    "CitizenClaims",
    "EmployeeClaims",
    "OfficeClaims",
    "EnvironmentalClaims",
    "RefreshClaims",
    "TokenPair",
    "AccessTokenResponse",
    "RefreshRequest",
]
