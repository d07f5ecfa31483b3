"""
Authentication error taxonomy.

Every error carries an HTTP ``status_code`` and a public ``code`` that is
returned to clients, plus an internal ``reason`` that is only logged. Token
errors share one public code and message so clients cannot tell an expired
token from a forged one.
"""
from typing import Any, Dict, Optional


class AuthError(Exception):
    """Base exception for all auth-service errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        reason: Optional[str] = None,
        details: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Client-facing message; defaults to the class message
            reason: Internal classification, logged but never returned
            details: Extra client-facing payload (field errors, lock time)
            context: Operator-only context for logs
            headers: Extra response headers
        """
        self.message = message or self.default_message
        super().__init__(self.message)
        self.reason = reason or self.code
        self.details = details
        self.context = context or {}
        self.headers = headers or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AuthError):
    """Client-fixable input error (400)."""
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class InvalidCredentials(AuthError):
    """Unknown email or wrong password (401). Never says which."""
    status_code = 401
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class TokenInvalid(AuthError):
    """Any token or session failure (401)."""
    status_code = 401
    code = "TOKEN_INVALID"
    default_message = "Invalid or expired token"

    def __init__(self, message: Optional[str] = None, **kwargs: Any) -> None:
        kwargs.setdefault("reason", getattr(self, "internal_reason", "TOKEN_INVALID"))
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class TokenExpired(TokenInvalid):
    internal_reason = "TOKEN_EXPIRED"


class TokenMalformed(TokenInvalid):
    internal_reason = "TOKEN_MALFORMED"


class TokenNotYetValid(TokenInvalid):
    internal_reason = "TOKEN_NOT_YET_VALID"


class PermissionDenied(AuthError):
    """Authenticated but not allowed (403)."""
    status_code = 403
    code = "PERMISSION_DENIED"
    default_message = "Insufficient permissions"


class AccountLocked(AuthError):
    """Account is inside its lock window (423)."""
    status_code = 423
    code = "ACCOUNT_LOCKED"

    def __init__(self, remaining_minutes: int, **kwargs: Any) -> None:
        self.remaining_minutes = remaining_minutes
        kwargs.setdefault("details", {"remainingMinutes": remaining_minutes})
        super().__init__(
            f"Account is locked. Try again in {remaining_minutes} minutes.",
            **kwargs,
        )


class Conflict(AuthError):
    """Duplicate account (409)."""
    status_code = 409
    code = "CONFLICT"
    default_message = "User with this email already exists"


class RateLimited(AuthError):
    """Too many requests from one client (429)."""
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: float, **kwargs: Any) -> None:
        self.retry_after = max(1, int(retry_after))
        kwargs.setdefault("headers", {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Remaining": "0",
        })
        super().__init__(**kwargs)


class Internal(AuthError):
    """Unexpected or storage failure (500). Safe to retry reads with backoff."""


__all__ = [
    "AuthError",
    "ValidationError",
    "InvalidCredentials",
    "TokenInvalid",
    "TokenExpired",
    "TokenMalformed",
    "TokenNotYetValid",
    "PermissionDenied",
    "AccountLocked",
    "Conflict",
    "RateLimited",
    "Internal",
]
