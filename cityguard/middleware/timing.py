import time

from fastapi import Request, Response

from .base import CityGuardMiddleware


class TimingMiddleware(CityGuardMiddleware):
    """Reports how long the inner app took, in the ``X-Process-Time`` header."""

    def setup(self) -> None:
        self.header = self.config.get("header", "X-Process-Time")
        self.precision = self.config.get("precision", 4)

    async def after_response(self, request: Request, response: Response) -> Response:
        elapsed = time.perf_counter() - request.state.start_time
        response.headers[self.header] = f"{elapsed:.{self.precision}f} sec"
        return response
