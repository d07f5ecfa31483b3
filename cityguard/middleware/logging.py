# middleware/logging.py
"""Request logging middleware. Never logs bodies, tokens or cookies."""
import logging
import time
from typing import Iterable, Optional, Set

from fastapi.requests import Request
from fastapi.responses import Response

from .base import REQUEST_ID_HEADER, CityGuardMiddleware

logger = logging.getLogger("cityguard.middleware.logging")


class LoggingMiddleware(CityGuardMiddleware):
    """One access-log line per request: method, path, status, duration, request id.

    Options:
        log_methods: only log these HTTP methods (all when omitted)
        excluded_paths: path prefixes that are never logged, e.g. ``/health``
    """

    def setup(self):
        methods: Optional[Iterable[str]] = self.config.get("log_methods")
        self.log_methods: Optional[Set[str]] = {m.upper() for m in methods} if methods else None
        self.excluded_paths = tuple(self.config.get("excluded_paths", ["/health"]))

    def should_log_request(self, method: str, path: str) -> bool:
        if self.log_methods is not None and method.upper() not in self.log_methods:
            return False
        return not path.startswith(self.excluded_paths)

    async def before_request(self, request: Request):
        request.state.log_started = time.perf_counter()

    async def after_response(self, request: Request, response: Response) -> Response:
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        if not self.should_log_request(request.method, request.url.path):
            return response

        duration_ms = (time.perf_counter() - request.state.log_started) * 1000
        logger.log(
            logging.WARNING if response.status_code >= 400 else logging.INFO,
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({duration_ms:.1f} ms) request_id={request.state.request_id}",
        )
        return response

    async def handle_exception(self, request: Request, exc: Exception) -> Response:
        logger.error(
            f"{request.method} {request.url.path} failed request_id={request.state.request_id}: {exc}"
        )
        raise exc
