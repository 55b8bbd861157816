"""Session endpoints.

The OAuth dance happens at the identity provider. The client posts the token
it received from the provider here and gets a signed session cookie back if
the user is on the admin allowlist.
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from blockhaven.dependencies import get_audit_logger, get_session_resolver
from blockhaven.domain.audit import AuditAction, AuditLogger
from blockhaven.domain.auth import Identity, SessionResolver
from blockhaven.errors import AuthError, UpstreamUnavailable

router = APIRouter()
logger = logging.getLogger(__name__)


class SessionRequest(BaseModel):
    token: str


@router.get("/session")
async def current_session(
    request: Request,
    resolver: SessionResolver = Depends(get_session_resolver),
):
    identity = await resolver.resolve(request)
    # Mirrors identity-provider convention: empty object means no session
    return identity.to_dict() if identity else {}


@router.post("/session")
async def create_session(
    request: Request,
    payload: SessionRequest,
    resolver: SessionResolver = Depends(get_session_resolver),
    audit: AuditLogger = Depends(get_audit_logger),
):
    try:
        # JWKS lookup may block on the network
        identity = await asyncio.to_thread(resolver.identity_from_provider_token, payload.token)
    except AuthError as e:
        await audit.log(AuditAction.LOGIN_FAILED, False, None, {"reason": e.message}, request)
        return JSONResponse(
            status_code=e.status_code,
            content={"error": "Unauthorized" if e.status_code == 401 else "Forbidden", "message": e.message},
        )
    except UpstreamUnavailable as e:
        await audit.log(AuditAction.LOGIN_FAILED, False, None, {"reason": e.message}, request)
        return JSONResponse(status_code=503, content={"error": "Service Unavailable", "message": e.message})

    await audit.log(AuditAction.LOGIN, True, identity, None, request)

    token = resolver.issue_session(identity)
    response = JSONResponse(content={"success": True, "user": identity.username})
    response.set_cookie(
        resolver.cookie_name,
        token,
        max_age=resolver.max_age_seconds,
        httponly=True,
        secure=request.url.scheme == "https",
        samesite="lax",
    )
    return response


@router.post("/logout")
async def logout(
    request: Request,
    resolver: SessionResolver = Depends(get_session_resolver),
    audit: AuditLogger = Depends(get_audit_logger),
):
    identity: Optional[Identity] = await resolver.resolve(request)
    if identity is not None:
        await audit.log(AuditAction.LOGOUT, True, identity, None, request)

    response = JSONResponse(content={"success": True})
    response.delete_cookie(resolver.cookie_name)
    return response
