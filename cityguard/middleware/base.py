# middleware/base.py
"""Hook-style base class for the CityGuard HTTP middlewares."""
import re
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def ensure_request_id(request: Request) -> str:
    """Reuse a well-formed client request id, otherwise mint one."""
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _REQUEST_ID_PATTERN.match(incoming) else str(uuid.uuid4())
        request.state.request_id = request_id
    return request_id


class CityGuardMiddleware(BaseHTTPMiddleware):
    """
    Subclasses override ``setup``, ``before_request`` and ``after_response``
    instead of ``dispatch``. Keyword options given at registration are
    available as ``self.config``.
    """

    def __init__(self, app, **options):
        super().__init__(app)
        self.config = options
        self.setup()

    def setup(self) -> None:
        pass

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        ensure_request_id(request)
        request.state.start_time = time.perf_counter()
        await self.before_request(request)
        try:
            response = await call_next(request)
        except Exception as exc:
            return await self.handle_exception(request, exc)
        return await self.after_response(request, response)

    async def before_request(self, request: Request) -> None:
        pass

    async def after_response(self, request: Request, response: Response) -> Response:
        return response

    async def handle_exception(self, request: Request, exc: Exception) -> Response:
        """Exceptions that got past the app's handlers are re-raised by default."""
        raise exc
