"""
api/routes/v1/auth.py -- HTTP gateway for browser clients (cookie transport).

Routes:
  POST   /api/v1/auth/register    -- create an account; 201 {user_id}
  POST   /api/v1/auth/login       -- password login; sets both token cookies
  POST   /api/v1/auth/refresh     -- rotate the refresh_token cookie
  POST   /api/v1/auth/logout      -- revoke this session; clears cookies
  POST   /api/v1/auth/logout-all  -- revoke every session of the caller (requires auth)
  DELETE /api/v1/auth/account     -- delete the caller's account (requires a live refresh_token cookie)
  GET    /api/v1/auth/me          -- identity from the access token (requires auth)
  POST   /api/v1/auth/sweep       -- delete expired refresh tokens (admin only)

Cookies: access_token and refresh_token, httpOnly, SameSite=strict, max-age
equal to each token's TTL. Logout and account deletion overwrite both with a
negative max-age.

Errors raised by SessionManager are not caught here (except on login, which
needs Cache-Control on the failure too). The AuthError handler in api/main.py
maps them to status codes.

Security:
  Login, register and refresh are rate-limited per IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import credential_rate_limit, limiter
from api.models import (
    Credentials,
    LogoutResponse,
    MeResponse,
    RegisterRequest,
    RegisterResponse,
    SweepResponse,
    TokenExpiryResponse,
)
from auth.dependencies import get_current_claims, get_session_manager, require_admin
from auth.errors import InvalidCredentialsError
from auth.models import TokenClaims, TokenPair
from auth.session import SessionManager
from auth.tokens import REFRESH_COOKIE, clear_auth_cookies, set_auth_cookies
from core.config import get_settings

logger = logging.getLogger("linkauth.api.auth")

router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(credential_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(
    request: Request,
    body: RegisterRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """Create an account. A taken email is reported as 409 already_exists."""
    user_id = sessions.register(body.email, body.password)
    resp = JSONResponse(status_code=201, content=RegisterResponse(user_id=user_id).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(credential_rate_limit)
@router.post("/auth/login", response_model=TokenExpiryResponse)
def login(
    request: Request,
    body: Credentials,
    sessions: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """Authenticate with email and password; set both token cookies.

    Unknown email and wrong password produce the same 401 body so the
    response does not reveal which emails are registered.
    """
    try:
        pair = sessions.login(body.email, body.password)
    except InvalidCredentialsError:
        logger.warning("Invalid login attempt from %s", request.client.host if request.client else "unknown")
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "invalid_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp
    return _token_response(sessions, pair)


@limiter.limit(credential_rate_limit)
@router.post("/auth/refresh", response_model=TokenExpiryResponse)
def refresh(
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """Exchange the refresh_token cookie for a new pair. The old cookie value stops working."""
    pair = sessions.refresh_tokens(_require_refresh_cookie(request))
    return _token_response(sessions, pair)


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """Revoke the session behind the refresh_token cookie and clear both cookies.

    The access token stays valid until it expires -- validation is stateless.
    """
    sessions.logout(_require_refresh_cookie(request))
    resp = JSONResponse(content=LogoutResponse().model_dump())
    clear_auth_cookies(resp, secure=get_settings().secure_cookies)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout-all", response_model=LogoutResponse)
def logout_all(
    claims: TokenClaims = Depends(get_current_claims),
    sessions: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """Revoke every refresh token of the caller ("log out everywhere")."""
    sessions.logout_all(claims.user_id)
    resp = JSONResponse(content=LogoutResponse().model_dump())
    clear_auth_cookies(resp, secure=get_settings().secure_cookies)
    return resp


@router.delete("/auth/account", status_code=204)
def delete_account(
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
) -> Response:
    """Delete the caller's account and all of its sessions.

    Authorized by the refresh_token cookie, which must still be live in
    storage. The access token is not accepted here since it outlives logout.
    """
    sessions.delete_account(sessions.session_owner(_require_refresh_cookie(request)))
    resp = Response(status_code=204)
    clear_auth_cookies(resp, secure=get_settings().secure_cookies)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(claims: TokenClaims = Depends(get_current_claims)) -> MeResponse:
    return MeResponse(
        user_id=claims.user_id,
        email=claims.email,
        expires_at=int(claims.expires_at.timestamp()),
    )


@router.post("/auth/sweep", response_model=SweepResponse)
def sweep(
    claims: TokenClaims = Depends(require_admin),
    sessions: SessionManager = Depends(get_session_manager),
) -> SweepResponse:
    """Delete expired refresh tokens. Admin only; meant for an external scheduler."""
    return SweepResponse(removed=sessions.sweep_expired())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_refresh_cookie(request: Request) -> str:
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Refresh token required."},
        )
    return token


def _token_response(sessions: SessionManager, pair: TokenPair) -> JSONResponse:
    access_ttl = int(sessions.access_ttl.total_seconds())
    refresh_ttl = int(sessions.refresh_ttl.total_seconds())
    resp = JSONResponse(
        content=TokenExpiryResponse(
            access_token_expires_in=access_ttl,
            refresh_token_expires_in=refresh_ttl,
        ).model_dump()
    )
    set_auth_cookies(resp, pair, access_ttl, refresh_ttl, secure=get_settings().secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp
