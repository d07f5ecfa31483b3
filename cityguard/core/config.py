# core/config.py
"""
Configuration settings for CityGuard.
"""
from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """
    Centralized application settings for CityGuard.
    All settings can be overridden by environment variables (see .env.example).
    Signing secrets have no defaults and must be supplied externally.
    """
    # --- Application ---
    APP_NAME: str = "CityGuard Auth"
    DEBUG: bool = False
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # --- Storage ---
    STORAGE_BACKEND: Literal["sql", "memory"] = "sql"
    DATABASE_URL: str = "sqlite+aiosqlite:///./cityguard.db"
    ECHO_SQL: bool = False
    STORAGE_TIMEOUT_SECONDS: float = 5.0

    # --- Tokens ---
    JWT_SECRET: str
    JWT_REFRESH_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "cityguardian-api"
    JWT_AUDIENCE: str = "cityguardian-frontend"
    JWT_REFRESH_AUDIENCE: str = "cityguardian-refresh"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # --- Passwords & lockout ---
    BCRYPT_ROUNDS: int = 12
    MAX_LOGIN_ATTEMPTS: int = 5
    ACCOUNT_LOCK_MINUTES: int = 30
    REQUIRE_EMAIL_VERIFICATION: bool = False

    # --- Sessions ---
    MAX_ACTIVE_SESSIONS: int = 5
    SESSION_RETENTION_DAYS: int = 30
    SESSION_SWEEP_INTERVAL_SECONDS: int = 3600

    # --- Rate limiting (per client IP, fixed window) ---
    RATE_LIMIT_ENABLED: bool = True
    AUTH_RATE_LIMIT_REQUESTS: int = 10
    REFRESH_RATE_LIMIT_REQUESTS: int = 20
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60

    # --- Server ---
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DOCS_ENABLED: bool = True

    # --- CORS ---
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:3001"

    @field_validator("JWT_SECRET", "JWT_REFRESH_SECRET")
    def validate_secret(cls, v):
        if len(v) < MIN_SECRET_LENGTH:
            raise ValueError(f"signing secrets must be at least {MIN_SECRET_LENGTH} characters")
        return v

    @field_validator("BCRYPT_ROUNDS")
    def validate_bcrypt_rounds(cls, v):
        if not 4 <= v <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return v

    @field_validator(
        "ACCESS_TOKEN_EXPIRE_MINUTES",
        "REFRESH_TOKEN_EXPIRE_DAYS",
        "MAX_LOGIN_ATTEMPTS",
        "ACCOUNT_LOCK_MINUTES",
        "MAX_ACTIVE_SESSIONS",
    )
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @model_validator(mode="after")
    def validate_distinct_secrets(self):
        if self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must differ")
        return self

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get application settings with caching."""
    return Settings()


__all__ = ["Settings", "get_settings"]
