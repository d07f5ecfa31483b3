"""
Response envelopes. Every success body carries ``success: true``.
"""
from typing import List, Optional

from .token import AccessTokenResponse, TokenPair
from .user import CamelModel, SessionInfo, SessionStats, UserResponse, UserType


class SuccessResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None


class AuthResponse(CamelModel):
    """Returned by register and login."""
    success: bool = True
    user: UserResponse
    tokens: TokenPair


class RefreshResponse(CamelModel):
    success: bool = True
    tokens: AccessTokenResponse


class ProfileResponse(CamelModel):
    success: bool = True
    user: UserResponse


class SessionListResponse(CamelModel):
    success: bool = True
    sessions: List[SessionInfo]


class SessionStatsResponse(CamelModel):
    success: bool = True
    stats: SessionStats


class PrincipalSummary(CamelModel):
    id: str
    email: str
    user_type: UserType
    session_id: str


class PrincipalResponse(CamelModel):
    """Returned by token verification and the guarded routes."""
    success: bool = True
    message: Optional[str] = None
    user: PrincipalSummary


class PublicContextResponse(CamelModel):
    """Public route body; ``user`` is present only when a valid token came along."""
    success: bool = True
    message: str
    is_authenticated: bool
    user: Optional[PrincipalSummary] = None


class HealthResponse(CamelModel):
    status: str
    storage: str
    database: Optional[str] = None
