from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp
import logging

logger = logging.getLogger(__name__)

SHUTDOWN_RETRY_AFTER_SECONDS = 30


class ShutdownGateMiddleware(BaseHTTPMiddleware):
    """Rejects new requests once shutdown begins. Exempt paths stay reachable."""
    _is_shutting_down = False

    def __init__(self, app: ASGIApp, exempt_paths: Iterable[str] = ("/health/live",)):
        super().__init__(app)
        self.exempt_paths = frozenset(exempt_paths)

    @classmethod
    def set_shutting_down(cls, value: bool):
        cls._is_shutting_down = value
        if value:
            logger.info("Shutdown gate closed: rejecting admin traffic")

    async def dispatch(self, request: Request, call_next):
        if not self._is_shutting_down or request.url.path in self.exempt_paths:
            return await call_next(request)

        return JSONResponse(
            status_code=503,
            content={"error": "Service Unavailable", "message": "Server is shutting down"},
            headers={"Retry-After": str(SHUTDOWN_RETRY_AFTER_SECONDS)},
        )
