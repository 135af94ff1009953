"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The access token is looked for in priority order:
  1. "access_token" cookie -- set by the HTTP gateway login flow.
  2. Authorization: Bearer <token> header -- service-to-service callers.

get_current_claims() verifies it statelessly and raises HTTP 401 on any
failure. require_admin() adds a read-through admin check and raises 403.

Layer rule: this module may import fastapi because it is part of the FastAPI
dependency injection system. No imports from api/ or core/.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.errors import InvalidCredentialsError, InvalidTokenError
from auth.models import TokenClaims
from auth.session import SessionManager
from auth.tokens import ACCESS_COOKIE

logger = logging.getLogger("linkauth.auth")


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.sessions


def _extract_access_token(request: Request) -> str | None:
    token = request.cookies.get(ACCESS_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def get_current_claims(request: Request) -> TokenClaims:
    """Require a valid access token. Raises HTTP 401 if missing or invalid.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: TokenClaims = Depends(get_current_claims)): ...
    """
    token = _extract_access_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    try:
        return get_session_manager(request).validate_token(token)
    except InvalidTokenError as exc:
        logger.debug("Rejected access token: %s", exc.message)
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        ) from exc


def require_admin(request: Request) -> TokenClaims:
    """Require an admin. 401 if unauthenticated, 403 if the subject is not an admin or no longer exists."""
    claims = get_current_claims(request)
    try:
        is_admin = get_session_manager(request).is_admin(claims.user_id)
    except InvalidCredentialsError:
        is_admin = False
    if not is_admin:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return claims
