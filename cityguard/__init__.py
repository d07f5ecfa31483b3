#main __init__.py
"""
CityGuard - authentication and session service for the city issue-reporting
platform, built on FastAPI.
"""

__version__ = "0.1.0"

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI

from .api import register_exception_handlers, router as api_router
from .auth.account_guard import AccountGuard
from .auth.audit import AuditService, InMemoryAuditLog, SQLAuditLog
from .auth.middleware import Authenticator
from .auth.rate_limiting import FixedWindowRateLimiter
from .auth.session_management import InMemorySessionStore, SQLSessionStore
from .auth.users import InMemoryUserStore, SQLUserStore
from .core.config import Settings, get_settings
from .core.security import PasswordHasher, TokenService
from .db import Database
from .middleware import MiddlewareManager, TimingMiddleware
from .schemas.responses import HealthResponse
from .services.auth import AuthService
from .tasks.background import SessionSweeper
from .utils.datetime import Clock, get_current_time

logger = logging.getLogger("cityguard")


class CityGuardAPI(FastAPI):
    """FastAPI application holding the auth components on ``app.state``."""

    def __init__(self, settings: Settings, clock: Clock = get_current_time, **kwargs):
        super().__init__(lifespan=self._lifespan, **kwargs)
        self.logger = logging.getLogger("cityguard.app")
        self.state.settings = settings
        self.state.clock = clock
        self.state.database = None
        self._setup_components(settings, clock)

    def _setup_components(self, settings: Settings, clock: Clock) -> None:
        """Build stores and services once; everything else gets them by reference."""
        timeout = settings.STORAGE_TIMEOUT_SECONDS
        retention = timedelta(days=settings.SESSION_RETENTION_DAYS)

        if settings.STORAGE_BACKEND == "memory":
            users = InMemoryUserStore(timeout=timeout)
            sessions = InMemorySessionStore(settings.MAX_ACTIVE_SESSIONS, retention, clock, timeout)
            audit_log = InMemoryAuditLog(timeout=timeout)
        else:
            database = Database(settings.DATABASE_URL, echo_sql=settings.ECHO_SQL)
            self.state.database = database
            users = SQLUserStore(database, timeout=timeout)
            sessions = SQLSessionStore(database, settings.MAX_ACTIVE_SESSIONS, retention, clock, timeout)
            audit_log = SQLAuditLog(database, timeout=timeout)

        tokens = TokenService(settings, clock=clock)
        guard = AccountGuard(
            users,
            max_attempts=settings.MAX_LOGIN_ATTEMPTS,
            lock_duration=timedelta(minutes=settings.ACCOUNT_LOCK_MINUTES),
            clock=clock,
        )
        audit = AuditService(audit_log, clock=clock)

        self.state.users = users
        self.state.sessions = sessions
        self.state.audit = audit
        self.state.tokens = tokens
        self.state.rate_limiter = FixedWindowRateLimiter()
        self.state.auth_service = AuthService(
            users, sessions, audit, tokens, PasswordHasher(settings.BCRYPT_ROUNDS), guard, clock
        )
        self.state.authenticator = Authenticator(
            tokens, users, sessions, guard,
            require_email_verification=settings.REQUIRE_EMAIL_VERIFICATION,
        )
        self.state.session_sweeper = SessionSweeper(
            sessions,
            interval=settings.SESSION_SWEEP_INTERVAL_SECONDS,
            rate_limiter=self.state.rate_limiter,
            rate_limit_window=settings.RATE_LIMIT_WINDOW_SECONDS,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.on_startup()
        try:
            yield
        finally:
            await self.on_shutdown()

    async def on_startup(self):
        self.logger.info(f"Starting {self.title} ({self.state.settings.STORAGE_BACKEND} storage)")
        database: Optional[Database] = self.state.database
        if database is not None:
            await database.create_tables()
        self.state.session_sweeper.start()

    async def on_shutdown(self):
        self.logger.info("Shutting down CityGuard application...")
        await self.state.session_sweeper.stop()
        if self.state.database is not None:
            await self.state.database.close()


def create_app(settings: Optional[Settings] = None, clock: Clock = get_current_time) -> CityGuardAPI:
    """
    Create and configure the CityGuard application.

    Args:
        settings: Application settings; loaded from the environment when omitted.
        clock: Source of "now" for tokens, sessions and lockout windows.

    Returns:
        CityGuardAPI: The configured application instance.
    """
    settings = settings or get_settings()

    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else settings.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(f"Creating {settings.APP_NAME} application (version: {__version__})")

    app = CityGuardAPI(
        settings,
        clock=clock,
        title=settings.APP_NAME,
        version=__version__,
        debug=settings.DEBUG,
        docs_url="/docs" if settings.DOCS_ENABLED else None,
        redoc_url="/redoc" if settings.DOCS_ENABLED else None,
        openapi_url="/openapi.json" if settings.DOCS_ENABLED else None,
    )

    middleware = MiddlewareManager()
    middleware.configure_logging(excluded_paths=["/health"])
    middleware.configure_cors(allow_origins=settings.allowed_origins)
    middleware.add_middleware(TimingMiddleware)
    middleware.apply_to_app(app)

    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check() -> HealthResponse:
        database: Optional[Database] = app.state.database
        if database is None:
            return HealthResponse(status="ok", storage="memory")
        healthy = await database.health_check()
        return HealthResponse(
            status="ok" if healthy else "degraded",
            storage="sql",
            database="connected" if healthy else "disconnected",
        )

    return app


__all__ = ["CityGuardAPI", "create_app", "__version__"]
