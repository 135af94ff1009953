"""
auth/passwords.py -- One-way password hashing and comparison (bcrypt).

bcrypt is used directly rather than through passlib: passlib's wrap-bug probe
builds a password longer than 72 bytes, which bcrypt 4.x rejects outright.

The cost factor is fixed per process (Settings.bcrypt_rounds). Every hash()
call draws a fresh salt, so the same password never produces the same digest
twice, yet every digest verifies.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

import bcrypt

from auth.errors import InternalError

logger = logging.getLogger("linkauth.passwords")

DEFAULT_ROUNDS = 12

# bcrypt ignores (4.x) or rejects (5.x) input beyond this many bytes. The API
# layer refuses longer passwords before they get here.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Hash and verify passwords with a fixed bcrypt cost factor.

    Usage:
        hasher = PasswordHasher(rounds=12)
        digest = hasher.hash("secret123")
        hasher.verify("secret123", digest)   # True
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        # Unknown-email logins verify against this digest so they cost the same
        # as a wrong-password login.
        self._dummy_hash = self.hash("linkauth_timing_dummy")

    def hash(self, password: str) -> str:
        """Return a salted bcrypt digest of password.

        Raises InternalError on any hashing failure; the cause is logged, not
        surfaced.
        """
        try:
            return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except (ValueError, TypeError) as exc:
            logger.error("Password hashing failed: %s", exc)
            raise InternalError("failed to hash password") from exc

    def verify(self, password: str, digest: str) -> bool:
        """Return True only if password matches digest.

        Any mismatch -- wrong password, empty or malformed digest, oversized
        input -- is False, never an exception.
        """
        if not digest:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), digest.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def verify_dummy(self, password: str) -> None:
        """Burn one bcrypt comparison against a dummy digest (timing equalization)."""
        self.verify(password, self._dummy_hash)
