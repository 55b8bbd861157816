"""Request Gate: identity check + per-user rate limiting for protected paths.

Per request:
  1. classify the path (protected page, protected API, public)
  2. resolve the session; missing -> 401 JSON (API) or redirect (page)
  3. protected API only: rate limit on (identity, exact path)
  4. call downstream and merge the X-RateLimit-* headers onto its response

When no counter store is configured the limiter is skipped (fail open), and
likewise when the store errors at runtime.
"""
import logging
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse
from starlette.types import ASGIApp

import blockhaven.dependencies as deps
from blockhaven.core.rate_limiter import (
    CounterStoreError,
    RateLimiter,
    now_ms,
    rate_limit_error,
    rate_limit_exceeded_body,
    rate_limit_headers,
)
from blockhaven.domain.auth import SessionResolver

logger = logging.getLogger(__name__)


class PathKind(str, Enum):
    PROTECTED_PAGE = "protected_page"
    PROTECTED_API = "protected_api"
    PUBLIC = "public"


def starts_with_any(path: str, prefixes: Iterable[str]) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in prefixes)


def classify_path(path: str, page_prefixes: Iterable[str], api_prefixes: Iterable[str]) -> PathKind:
    if starts_with_any(path, api_prefixes):
        return PathKind.PROTECTED_API
    if starts_with_any(path, page_prefixes):
        return PathKind.PROTECTED_PAGE
    return PathKind.PUBLIC


def unauthorized_response() -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={
            "error": "Unauthorized",
            "message": "Authentication required to access this endpoint",
        },
    )


class RequestGateMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        page_prefixes: Optional[Iterable[str]] = None,
        api_prefixes: Optional[Iterable[str]] = None,
        login_path: Optional[str] = None,
        resolver_provider: Optional[Callable[[], SessionResolver]] = None,
        limiter_provider: Optional[Callable[[], Awaitable[Optional[RateLimiter]]]] = None,
    ):
        super().__init__(app)
        settings = deps.get_settings()
        self.page_prefixes = list(page_prefixes if page_prefixes is not None else settings.PROTECTED_PAGE_PREFIXES)
        self.api_prefixes = list(api_prefixes if api_prefixes is not None else settings.PROTECTED_API_PREFIXES)
        self.login_path = login_path or settings.LOGIN_PATH
        self._resolver_provider = resolver_provider or (lambda: deps.get_session_resolver())
        self._limiter_provider = limiter_provider or (lambda: deps.get_rate_limiter())

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        kind = classify_path(path, self.page_prefixes, self.api_prefixes)
        if kind is PathKind.PUBLIC:
            return await call_next(request)

        identity = await self._resolver_provider().resolve(request)
        if identity is None:
            if kind is PathKind.PROTECTED_API:
                return unauthorized_response()
            return RedirectResponse(url=self.login_path, status_code=302)

        request.state.identity = identity

        if kind is PathKind.PROTECTED_PAGE:
            return await call_next(request)

        limiter = await self._limiter_provider()
        if limiter is None:
            return await call_next(request)

        try:
            result = await limiter.check(identity.username or identity.user_id, path)
        except CounterStoreError as e:
            logger.error(f"Rate limiter unavailable, failing open: {e}")
            return await call_next(request)

        if not result.allowed:
            now = now_ms()
            error = rate_limit_error(result, now)
            return JSONResponse(
                status_code=error.status_code,
                content=rate_limit_exceeded_body(result, now),
                headers=rate_limit_headers(result, now),
            )

        response = await call_next(request)
        for k, v in rate_limit_headers(result).items():
            response.headers[k] = v
        return response
