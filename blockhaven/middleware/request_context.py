from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import uuid


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request id used by audit records and echoed to the client."""

    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = req_id
        request.state.identity = None

        response = await call_next(request)
        response.headers["X-Request-ID"] = req_id
        return response
