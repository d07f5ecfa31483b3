# middleware/__init__.py
"""
CityGuard middleware stack.

    LoggingMiddleware -> CORSMiddleware -> TimingMiddleware -> routes
"""
import logging as log
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from fastapi import FastAPI

from .base import CityGuardMiddleware
from .cors import CORSMiddleware
from .logging import LoggingMiddleware
from .timing import TimingMiddleware

logger = log.getLogger("cityguard.middleware")


class MiddlewareManager:
    """Collects middlewares in outermost-first order and installs them on an app."""

    def __init__(self):
        self.stack: List[Tuple[Type[CityGuardMiddleware], Dict[str, Any]]] = []

    def add_middleware(self, middleware_class: Type[CityGuardMiddleware], **options) -> "MiddlewareManager":
        self.stack.append((middleware_class, options))
        return self

    def configure_logging(
        self,
        log_methods: Optional[Iterable[str]] = None,
        excluded_paths: Iterable[str] = ("/health",),
    ) -> "MiddlewareManager":
        return self.add_middleware(
            LoggingMiddleware, log_methods=log_methods, excluded_paths=list(excluded_paths)
        )

    def configure_cors(self, allow_origins: Iterable[str], **options) -> "MiddlewareManager":
        origins = list(allow_origins)
        if not origins:
            logger.info("No allowed origins configured; CORS disabled")
            return self
        return self.add_middleware(CORSMiddleware, allow_origins=origins, **options)

    def apply_to_app(self, app: FastAPI) -> None:
        # Starlette wraps each new middleware around the previous ones
        for middleware_class, options in reversed(self.stack):
            app.add_middleware(middleware_class, **options)
            logger.debug(f"Added middleware: {middleware_class.__name__}")


__all__ = [
    "MiddlewareManager",
    "CityGuardMiddleware",
    "CORSMiddleware",
    "LoggingMiddleware",
    "TimingMiddleware",
]
