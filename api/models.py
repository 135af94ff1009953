"""
API request and response models for linkauth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
apart from the dataclasses in auth/models.py, which own the internal domain
representation; route handlers map between the two.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.passwords import MAX_PASSWORD_BYTES

# Loose shape check: one "@" and no whitespace.
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class Credentials(BaseModel):
    """Request body for register and login (both surfaces).

    Only the email is stripped; leading and trailing spaces are part of a
    password.
    """

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=MAX_PASSWORD_BYTES)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        value = value.strip()
        if not _EMAIL_RE.match(value):
            raise ValueError("invalid email address")
        return value

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        """bcrypt only sees the first 72 bytes; refuse anything longer."""
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class RegisterRequest(Credentials):
    password: str = Field(min_length=8, max_length=MAX_PASSWORD_BYTES)


class RefreshTokenRequest(BaseModel):
    """Body for the remote-call refresh and logout methods."""

    refresh_token: str = Field(min_length=1)


class IsAdminRequest(BaseModel):
    user_id: int = Field(gt=0)


class ValidateTokenRequest(BaseModel):
    token: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int


class TokenPairResponse(BaseModel):
    """Remote-call login/refresh result: both tokens in the body."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str


class TokenExpiryResponse(BaseModel):
    """HTTP gateway login/refresh result. The tokens themselves travel as cookies."""

    model_config = ConfigDict(frozen=True)

    access_token_expires_in: int
    refresh_token_expires_in: int


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True


class IsAdminResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_admin: bool


class ValidateTokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    user_id: str
    email: str


class MeResponse(BaseModel):
    """Identity carried by the caller's access token."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    expires_at: int


class SweepResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    removed: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
