"""
auth/models.py -- Domain dataclasses for authentication entities.

Pure data containers with no logic; stores, SessionManager and routes do the
work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """An account that can log in.

    password_hash is a bcrypt digest. The plaintext is never stored or kept
    on this object.
    """

    email: str
    password_hash: str
    id: int | None = None
    is_admin: bool = False
    created_at: datetime | None = None


@dataclass
class RefreshToken:
    """Server-side record of an issued refresh token.

    token_hash is SHA-256 of the raw token (see auth.tokens.hash_token); the
    raw token is the bearer credential and is never persisted. email is
    denormalized from the users table by a join at read time so rotation does
    not need a second user read to find the owner.
    """

    token_hash: str
    user_id: int
    email: str
    expires_at: datetime
    created_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried inside a signed token. Never persisted."""

    subject: str  # user id as a string (JWT "sub")
    email: str
    expires_at: datetime

    @property
    def user_id(self) -> int:
        return int(self.subject)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
