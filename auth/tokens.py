"""
auth/tokens.py -- JWT issuance and verification, refresh-token hashing, cookies.

Security design decisions:
  JWT: python-jose with HS256. The signing secret is passed to TokenIssuer and
       TokenValidator at construction; nothing here reads configuration. Tokens
       carry sub (user id), email, exp, iat and a random jti. The jti makes two
       tokens minted for the same user in the same second distinct, so their
       storage hashes never collide.

  Access vs refresh: both come out of TokenIssuer.issue() with different TTLs
       and are structurally identical. Only the refresh token is persisted (by
       hash), which is what makes it individually revocable. Access tokens are
       checked statelessly by TokenValidator and stay valid until they expire,
       even after logout -- validation never touches storage.

  Refresh-token storage: hash_token() is SHA-256 over the raw token. The raw
       token has ~300 bits of signed content, so a fast digest is enough and
       gives O(1) lookup by hash through the UNIQUE index.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JOSEError, JWTClaimsError

from auth.errors import (
    ExpiredTokenError,
    InternalError,
    InvalidSignatureError,
    MalformedTokenError,
    TokenClaimsError,
    TokenNotYetValidError,
    TokenProcessingError,
)
from auth.models import TokenClaims, TokenPair

logger = logging.getLogger("linkauth.tokens")

ALGORITHM = "HS256"

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


# ---------------------------------------------------------------------------
# Issue
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Create signed tokens from a user identity and a TTL."""

    def __init__(self, secret_key: str, algorithm: str = ALGORITHM) -> None:
        self._secret_key = secret_key
        self.algorithm = algorithm

    def issue(self, user_id: int | str, email: str, ttl: timedelta) -> str:
        """Return a signed token for (user_id, email) expiring ttl from now.

        Raises InternalError if signing fails.
        """
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "email": email,
            "exp": now + ttl,
            "iat": now,
            "jti": secrets.token_urlsafe(16),
        }
        try:
            return jwt.encode(claims, self._secret_key, algorithm=self.algorithm)
        except JOSEError as exc:
            logger.error("Token signing failed: %s", exc)
            raise InternalError("failed to generate token") from exc


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------


class TokenValidator:
    """Stateless verification of a signed token.

    Checks run in a fixed order so each failure maps to exactly one error:
    structure (MalformedTokenError), algorithm and signature
    (InvalidSignatureError), exp/nbf (ExpiredTokenError,
    TokenNotYetValidError), then the identity claims (TokenClaimsError).
    """

    def __init__(self, secret_key: str, algorithm: str = ALGORITHM) -> None:
        self._secret_key = secret_key
        self.algorithm = algorithm

    def verify(self, token: str) -> TokenClaims:
        if not token or token.count(".") != 2:
            raise MalformedTokenError()
        try:
            header = jwt.get_unverified_header(token)
            unverified = jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedTokenError() from exc

        if header.get("alg") != self.algorithm:
            raise InvalidSignatureError("unexpected signing method")
        if "exp" not in unverified:
            raise TokenClaimsError("missing exp claim")

        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"verify_aud": False},
            )
        except ExpiredSignatureError as exc:
            raise ExpiredTokenError() from exc
        except JWTClaimsError as exc:
            if "nbf" in str(exc):
                raise TokenNotYetValidError() from exc
            raise TokenClaimsError(f"couldn't handle this token: {exc}") from exc
        except JWTError as exc:
            # Structure and algorithm were checked above; what is left is a
            # signature mismatch.
            raise InvalidSignatureError() from exc

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject.isdigit():
            raise TokenClaimsError("invalid uid claim")
        email = payload.get("email")
        if not isinstance(email, str) or not email:
            raise TokenClaimsError("invalid email claim")
        return TokenClaims(
            subject=subject,
            email=email,
            expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
        )


# ---------------------------------------------------------------------------
# Refresh-token hashing
# ---------------------------------------------------------------------------


def hash_token(raw_token: str) -> str:
    """Return the SHA-256 hex digest used as the refresh-token storage key."""
    if not raw_token:
        raise TokenProcessingError("empty refresh token")
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookies(response, pair: TokenPair, access_ttl: int, refresh_ttl: int, secure: bool = False) -> None:
    """Write both tokens as httpOnly, SameSite=strict cookies.

    max_age matches each token's TTL so cookie and token expire together.
    """
    for name, value, max_age in (
        (ACCESS_COOKIE, pair.access_token, access_ttl),
        (REFRESH_COOKIE, pair.refresh_token, refresh_ttl),
    ):
        response.set_cookie(
            name,
            value=value,
            path="/",
            httponly=True,
            samesite="strict",
            secure=secure,
            max_age=max_age,
        )


def clear_auth_cookies(response, secure: bool = False) -> None:
    """Expire both auth cookies with a negative max-age."""
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.set_cookie(
            name,
            value="",
            path="/",
            httponly=True,
            samesite="strict",
            secure=secure,
            max_age=-1,
        )
