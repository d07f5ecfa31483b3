# middleware/cors.py
"""CORS for the configured frontend origins."""
from typing import Callable, Dict, Optional

from fastapi.requests import Request
from fastapi.responses import JSONResponse, Response

from ..core.exceptions import PermissionDenied
from .base import CityGuardMiddleware

DEFAULT_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
DEFAULT_HEADERS = ("Authorization", "Content-Type", "X-Request-ID")


class CORSMiddleware(CityGuardMiddleware):
    """Echoes allowed origins back; answers preflights without reaching the routes."""

    def setup(self):
        self.origins = frozenset(self.config.get("allow_origins", ()))
        self.credentials = self.config.get("allow_credentials", True)
        self.preflight_headers = {
            "Access-Control-Allow-Methods": ", ".join(self.config.get("allow_methods", DEFAULT_METHODS)),
            "Access-Control-Allow-Headers": ", ".join(self.config.get("allow_headers", DEFAULT_HEADERS)),
            "Access-Control-Max-Age": str(self.config.get("max_age", 600)),
        }

    def origin_allowed(self, origin: Optional[str]) -> bool:
        return bool(origin) and ("*" in self.origins or origin in self.origins)

    def origin_headers(self, origin: str) -> Dict[str, str]:
        headers = {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
        if self.credentials:
            headers["Access-Control-Allow-Credentials"] = "true"
        return headers

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "OPTIONS" and "access-control-request-method" in request.headers:
            origin = request.headers.get("origin")
            if not self.origin_allowed(origin):
                denied = PermissionDenied("Disallowed CORS origin", reason="cors_origin", context={"origin": origin})
                return JSONResponse(denied.to_dict(), status_code=denied.status_code)
            return Response(status_code=200, headers={**self.origin_headers(origin), **self.preflight_headers})
        return await super().dispatch(request, call_next)

    async def after_response(self, request: Request, response: Response) -> Response:
        origin = request.headers.get("origin")
        if self.origin_allowed(origin):
            response.headers.update(self.origin_headers(origin))
        return response
