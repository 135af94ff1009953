"""
api/main.py -- FastAPI application entry point for linkauth.

Run with:  uvicorn api.main:app --reload
           python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan is the composition root: it reads Settings once and builds the
engine, both stores, the password hasher, the token issuer/validator and the
SessionManager into app.state. Shutdown disposes the engine's pool.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.rpc import router as rpc_router
from auth.errors import (
    AuthError,
    InternalError,
    InvalidCredentialsError,
    InvalidTokenError,
    RefreshTokenError,
    UserExistsError,
    UserNotFoundError,
)
from auth.passwords import PasswordHasher
from auth.session import SessionManager
from auth.store import RefreshTokenStore, UserStore, create_db_engine
from auth.tokens import TokenIssuer, TokenValidator
from core.config import Settings, get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

_settings = get_settings()

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("linkauth.api")


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def build_session_manager(settings: Settings, users, refresh_tokens) -> SessionManager:
    """Wire a SessionManager from settings and two store implementations."""
    return SessionManager(
        users=users,
        refresh_tokens=refresh_tokens,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        issuer=TokenIssuer(settings.secret_key),
        validator=TokenValidator(settings.secret_key),
        access_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
        refresh_ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build storage and the SessionManager on startup; dispose the pool on shutdown."""
    settings = get_settings()
    logger.info("linkauth API starting up")
    engine = create_db_engine(settings.database_url, timeout=settings.db_timeout_seconds)
    app.state.user_store = UserStore(engine)
    app.state.refresh_store = RefreshTokenStore(engine)
    app.state.sessions = build_session_manager(settings, app.state.user_store, app.state.refresh_store)
    logger.info(
        "Auth initialized (access_ttl=%ds, refresh_ttl=%ds)",
        settings.access_token_ttl_seconds,
        settings.refresh_token_ttl_seconds,
    )

    yield

    engine.dispose()
    logger.info("linkauth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="linkauth",
    description="Credential and token service for the link shortener.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack -- registered in the order a request meets them.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(rpc_router, prefix="/rpc/v1", tags=["RPC"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope.
# ---------------------------------------------------------------------------

# Most specific first; the first isinstance match wins.
_AUTH_ERROR_STATUS: list[tuple[type[AuthError], int, str]] = [
    (InvalidCredentialsError, 401, "invalid_credentials"),
    (UserExistsError, 409, "already_exists"),
    (UserNotFoundError, 404, "not_found"),
    (RefreshTokenError, 401, "unauthorized"),
    (InvalidTokenError, 401, "unauthorized"),
    (InternalError, 500, "internal_error"),
]


def _auth_error_status(exc: AuthError) -> tuple[int, str]:
    for cls, status_code, code in _AUTH_ERROR_STATUS:
        if isinstance(exc, cls):
            return status_code, code
    return 500, "internal_error"


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map domain errors to status codes without re-deriving the classification.

    Internal errors get a generic message; their cause was already logged
    where it was classified.
    """
    status_code, code = _auth_error_status(exc)
    if status_code >= 500:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message)
        message = "An unexpected error occurred."
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, code)
        message = exc.message
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error and Retry-After."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for HTTP exceptions.

    Route handlers raise HTTPException with a dict detail; use it directly as
    the error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint -- no auth, no rate limit.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness plus a database round-trip check."""
    database_ok = request.app.state.user_store.ping()
    return HealthResponse(
        version=VERSION,
        components={"app": "ok", "database": "ok" if database_ok else "error"},
    )
