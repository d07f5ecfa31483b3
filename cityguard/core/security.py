"""
Security primitives: password hashing and JWT signing/verification.
"""
import hashlib
import logging
import uuid
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional, Union

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from ..schemas.token import (
    CitizenClaims,
    EmployeeClaims,
    EnvironmentalClaims,
    OfficeClaims,
    RefreshClaims,
    access_claims_adapter,
    claims_for_user,
)
from ..utils.datetime import Clock, get_current_time, to_timestamp
from .config import Settings
from .exceptions import TokenExpired, TokenMalformed, TokenNotYetValid

logger = logging.getLogger("cityguard.auth")

Claims = Union[CitizenClaims, EmployeeClaims, OfficeClaims, EnvironmentalClaims]


class TokenType(str, Enum):
    """Token types."""
    ACCESS = "access"
    REFRESH = "refresh"


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a token; the only form in which tokens are stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class PasswordHasher:
    """bcrypt hashing that keeps the work off the event loop."""

    def __init__(self, rounds: int = 12):
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)
        self._dummy_hash: Optional[str] = None

    async def hash(self, password: str) -> str:
        return await run_in_threadpool(self._context.hash, password)

    async def verify(self, password: str, hashed: str) -> bool:
        try:
            return await run_in_threadpool(self._context.verify, password, hashed)
        except ValueError:
            logger.warning("Stored password hash could not be parsed")
            return False

    async def dummy_verify(self, password: str) -> None:
        """Spend roughly the time of a real verification for unknown accounts."""
        if self._dummy_hash is None:
            self._dummy_hash = await self.hash(uuid.uuid4().hex)
        await run_in_threadpool(self._context.verify, password, self._dummy_hash)


class TokenService:
    """
    Issues and verifies access and refresh tokens.

    Access and refresh tokens are signed with different secrets and carry
    different audiences, so neither can stand in for the other. Time checks
    use the injected clock instead of the wall clock.
    """

    def __init__(self, settings: Settings, clock: Clock = get_current_time):
        self.algorithm = settings.JWT_ALGORITHM
        self.issuer = settings.JWT_ISSUER
        self.clock = clock
        self._secrets = {
            TokenType.ACCESS: settings.JWT_SECRET,
            TokenType.REFRESH: settings.JWT_REFRESH_SECRET,
        }
        self._audiences = {
            TokenType.ACCESS: settings.JWT_AUDIENCE,
            TokenType.REFRESH: settings.JWT_REFRESH_AUDIENCE,
        }
        self._ttls = {
            TokenType.ACCESS: timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            TokenType.REFRESH: timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        }

    @property
    def access_ttl_seconds(self) -> int:
        return int(self._ttls[TokenType.ACCESS].total_seconds())

    @property
    def refresh_ttl(self) -> timedelta:
        return self._ttls[TokenType.REFRESH]

    def _encode(self, payload: Dict[str, Any], kind: TokenType) -> str:
        now = self.clock()
        issued_at = to_timestamp(now)
        to_encode = dict(payload)
        to_encode.update({
            "iat": issued_at,
            "nbf": issued_at,
            "exp": to_timestamp(now + self._ttls[kind]),
            "jti": uuid.uuid4().hex,
            "iss": self.issuer,
            "aud": self._audiences[kind],
        })
        return jwt.encode(to_encode, self._secrets[kind], algorithm=self.algorithm)

    def issue_access_token(self, user: Any) -> str:
        claims = claims_for_user(user)
        return self._encode(claims.model_dump(by_alias=True), TokenType.ACCESS)

    def issue_refresh_token(self, user: Any) -> str:
        claims = RefreshClaims(user_id=user.id, user_type=user.user_type, token_type="refresh")
        return self._encode(claims.model_dump(by_alias=True, mode="json"), TokenType.REFRESH)

    def _decode(self, token: str, kind: TokenType) -> Dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.algorithm],
                audience=self._audiences[kind],
                issuer=self.issuer,
                # exp/nbf are checked below against the injected clock
                options={"verify_exp": False, "verify_nbf": False},
            )
        except JWTError as e:
            raise TokenMalformed(context={"error": str(e), "kind": kind.value}) from e

        exp, nbf = payload.get("exp"), payload.get("nbf")
        if not isinstance(exp, int) or not isinstance(nbf, int):
            raise TokenMalformed(context={"error": "missing exp/nbf", "kind": kind.value})

        now = to_timestamp(self.clock())
        if now >= exp:
            raise TokenExpired(context={"kind": kind.value})
        if now < nbf:
            raise TokenNotYetValid(context={"kind": kind.value})
        return payload

    def verify_access_token(self, token: str) -> Claims:
        payload = self._decode(token, TokenType.ACCESS)
        try:
            return access_claims_adapter.validate_python(payload)
        except PydanticValidationError as e:
            raise TokenMalformed(context={"error": str(e), "kind": "access"}) from e

    def verify_refresh_token(self, token: str) -> RefreshClaims:
        payload = self._decode(token, TokenType.REFRESH)
        try:
            return RefreshClaims.model_validate(payload)
        except PydanticValidationError as e:
            raise TokenMalformed(context={"error": str(e), "kind": "refresh"}) from e

    def verify(self, token: str, kind: TokenType) -> Union[Claims, RefreshClaims]:
        if kind is TokenType.REFRESH:
            return self.verify_refresh_token(token)
        return self.verify_access_token(token)


__all__ = ["TokenType", "hash_token", "PasswordHasher", "TokenService", "Claims"]
