"""
auth/errors.py -- Domain exceptions for the credential and token lifecycle.

Storage adapters translate backend constraint violations into these classes
at the boundary. SessionManager lets them through unchanged, and the
transport layer (api/) maps each class to a status code without re-deriving
the classification.

Messages are safe to show to callers. Raw backend error text never goes into
a message -- it is logged where the error is classified.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error raised by the auth package."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class InvalidCredentialsError(AuthError):
    """Bad login, unknown email, or an operation on a user that does not exist."""

    def __init__(self, message: str = "invalid credentials") -> None:
        super().__init__(message)


class UserExistsError(AuthError):
    """Register was called with an email that is already taken."""

    def __init__(self, message: str = "user already exists") -> None:
        super().__init__(message)


class UserNotFoundError(AuthError):
    """A storage write referenced a user id that has no row (FK violation)."""

    def __init__(self, message: str = "user not found") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Refresh tokens (stateful path)
# ---------------------------------------------------------------------------


class RefreshTokenError(AuthError):
    """Base for refresh/logout failures. Transports report all of them as unauthorized."""


class TokenNotFoundError(RefreshTokenError):
    def __init__(self, message: str = "refresh token not found") -> None:
        super().__init__(message)


class TokenExpiredError(RefreshTokenError):
    def __init__(self, message: str = "refresh token expired") -> None:
        super().__init__(message)


class TokenProcessingError(RefreshTokenError):
    """The presented token could not be processed (empty value, owner gone)."""

    def __init__(self, message: str = "refresh token could not be processed") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Stateless validation
# ---------------------------------------------------------------------------


class InvalidTokenError(AuthError):
    """Base for signed-token verification failures.

    External consumers only ever see "invalid token"; the subclass is kept for
    logging and tests.
    """

    def __init__(self, message: str = "invalid token") -> None:
        super().__init__(message)


class MalformedTokenError(InvalidTokenError):
    def __init__(self, message: str = "malformed token") -> None:
        super().__init__(message)


class InvalidSignatureError(InvalidTokenError):
    def __init__(self, message: str = "invalid signature") -> None:
        super().__init__(message)


class ExpiredTokenError(InvalidTokenError):
    def __init__(self, message: str = "token expired") -> None:
        super().__init__(message)


class TokenNotYetValidError(InvalidTokenError):
    def __init__(self, message: str = "token not active yet") -> None:
        super().__init__(message)


class TokenClaimsError(InvalidTokenError):
    def __init__(self, message: str = "invalid token claims") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


class InternalError(AuthError):
    """Unexpected failure (signing, hashing, storage). Never user-surfaced in detail."""

    def __init__(self, message: str = "internal error") -> None:
        super().__init__(message)


class StorageError(InternalError):
    def __init__(self, message: str = "storage failure") -> None:
        super().__init__(message)
