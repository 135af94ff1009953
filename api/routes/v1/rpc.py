"""
api/routes/v1/rpc.py -- Remote-call surface for other services (JSON over HTTP).

Methods (all POST, mounted under /rpc/v1):
  register        {email, password}  -> {user_id}            | already_exists, internal
  login           {email, password}  -> {access_token, refresh_token} | invalid_credentials, internal
  refresh         {refresh_token}    -> {access_token, refresh_token} | unauthorized, internal
  logout          {refresh_token}    -> {success}            | unauthorized, internal
  is-admin        {user_id}          -> {is_admin}           | not_found, internal
  validate-token  {token}            -> {valid, user_id, email} | invalid_argument

Unlike the HTTP gateway, tokens travel in request and response bodies.
validate-token is stateless: it checks signature and expiry only and is the
method the link-shortening service calls on every authenticated request.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from api.limiter import credential_rate_limit, limiter
from api.models import (
    Credentials,
    IsAdminRequest,
    IsAdminResponse,
    LogoutResponse,
    RefreshTokenRequest,
    RegisterRequest,
    RegisterResponse,
    TokenPairResponse,
    ValidateTokenRequest,
    ValidateTokenResponse,
)
from auth.dependencies import get_session_manager
from auth.errors import InvalidCredentialsError, InvalidTokenError
from auth.session import SessionManager

logger = logging.getLogger("linkauth.api.rpc")

router = APIRouter()


@limiter.limit(credential_rate_limit)
@router.post("/register", response_model=RegisterResponse)
def register(
    request: Request,
    body: RegisterRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> RegisterResponse:
    return RegisterResponse(user_id=sessions.register(body.email, body.password))


@limiter.limit(credential_rate_limit)
@router.post("/login", response_model=TokenPairResponse)
def login(
    request: Request,
    body: Credentials,
    sessions: SessionManager = Depends(get_session_manager),
) -> TokenPairResponse:
    pair = sessions.login(body.email, body.password)
    return TokenPairResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@limiter.limit(credential_rate_limit)
@router.post("/refresh", response_model=TokenPairResponse)
def refresh(
    request: Request,
    body: RefreshTokenRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> TokenPairResponse:
    pair = sessions.refresh_tokens(body.refresh_token)
    return TokenPairResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post("/logout", response_model=LogoutResponse)
def logout(
    body: RefreshTokenRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> LogoutResponse:
    sessions.logout(body.refresh_token)
    return LogoutResponse(success=True)


@router.post("/is-admin", response_model=IsAdminResponse)
def is_admin(
    body: IsAdminRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> IsAdminResponse:
    """Report the admin flag. An unknown user is not_found on this surface."""
    try:
        return IsAdminResponse(is_admin=sessions.is_admin(body.user_id))
    except InvalidCredentialsError as exc:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        ) from exc


@router.post("/validate-token", response_model=ValidateTokenResponse)
def validate_token(
    body: ValidateTokenRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> ValidateTokenResponse:
    """Verify an access token without touching storage.

    Every failure reason (malformed, bad signature, expired, not yet valid,
    bad claims) is reported as the same invalid_argument error; the specific
    reason only goes to the debug log.
    """
    try:
        claims = sessions.validate_token(body.token)
    except InvalidTokenError as exc:
        logger.debug("Token validation failed: %s", exc.message)
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_argument", "message": "invalid token"},
        ) from exc
    return ValidateTokenResponse(valid=True, user_id=claims.subject, email=claims.email)
