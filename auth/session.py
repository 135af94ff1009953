"""
auth/session.py -- SessionManager: register, login, rotate, revoke.

A logical session has no row of its own. Its state is implied by the refresh
token record:
  Active   -- a record exists and expires_at is in the future.
  Rotated  -- refresh_tokens() consumed the record and stored a successor;
              the old raw token is unusable from then on.
  Revoked  -- logout() removed the record, or logout_all()/delete_account()
              removed every record of the user. Terminal.
  Expired  -- now > expires_at. Detected lazily on validation; the row stays
              until the sweep deletes it. Terminal.

Rotation race:
  Two concurrent refresh_tokens() calls with the same raw token can both get
  past validation. The old record is therefore consumed with a conditional
  delete, and only the caller whose delete actually removed the row goes on
  to store a new record. The loser gets TokenNotFoundError and its freshly
  signed pair is dropped. Consume and store are still two statements: a crash
  between them leaves the user with no refresh token (forced re-login), never
  with two.

Access tokens are not touched by any of this. They are validated statelessly
and remain valid until their own exp, whatever happens to the session.

Layer rule: no imports from api/ or core/. Settings arrive as constructor
arguments.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from auth.errors import InvalidCredentialsError, TokenNotFoundError, TokenProcessingError
from auth.interfaces import RefreshTokenRepository, UserRepository
from auth.models import TokenClaims, TokenPair, User
from auth.passwords import PasswordHasher
from auth.tokens import TokenIssuer, TokenValidator, hash_token

logger = logging.getLogger("linkauth.session")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class SessionManager:
    """Compose the password hasher, token issuer/validator and both stores.

    Usage:
        sessions = SessionManager(users, refresh_tokens, PasswordHasher(), issuer, validator,
                                  access_ttl=timedelta(minutes=15), refresh_ttl=timedelta(days=7))
        uid = sessions.register("a@b.com", "secret123")
        pair = sessions.login("a@b.com", "secret123")
        pair = sessions.refresh_tokens(pair.refresh_token)
        sessions.logout(pair.refresh_token)
    """

    def __init__(
        self,
        users: UserRepository,
        refresh_tokens: RefreshTokenRepository,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        validator: TokenValidator,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
    ) -> None:
        self.users = users
        self.refresh_store = refresh_tokens
        self.hasher = hasher
        self.issuer = issuer
        self.validator = validator
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> int:
        """Create an account and return its id. Raises UserExistsError on a taken email."""
        email = normalize_email(email)
        password_hash = self.hasher.hash(password)
        user_id = self.users.create_user(email, password_hash)
        logger.info("Registered user id=%d", user_id)
        return user_id

    def login(self, email: str, password: str) -> TokenPair:
        """Check the password and open a new session.

        Unknown email and wrong password both raise InvalidCredentialsError
        after the same amount of bcrypt work. If the refresh record cannot be
        stored the error propagates and the already-signed tokens are dropped.
        """
        email = normalize_email(email)
        user = self.users.get_by_email(email)
        if user is None:
            self.hasher.verify_dummy(password)
            raise InvalidCredentialsError()
        if not self.hasher.verify(password, user.password_hash):
            raise InvalidCredentialsError()

        pair = self._issue_pair(user)
        self.refresh_store.store_refresh_token(user.id, pair.refresh_token, self._refresh_expiry())
        logger.info("User id=%d logged in", user.id)
        return pair

    def is_admin(self, user_id: int) -> bool:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise InvalidCredentialsError()
        return user.is_admin

    def delete_account(self, user_id: int) -> None:
        """Remove the user and every refresh token it owns, atomically."""
        if not self.users.delete_user(user_id):
            raise InvalidCredentialsError()
        logger.info("Deleted account id=%d", user_id)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def refresh_tokens(self, raw_refresh: str) -> TokenPair:
        """Exchange a live refresh token for a new access/refresh pair.

        Raises TokenNotFoundError (unknown, already rotated, or lost a
        concurrent rotation), TokenExpiredError, or TokenProcessingError
        (empty token, owner no longer exists).
        """
        record = self.refresh_store.validate_refresh_token(raw_refresh)
        user = self.users.get_by_email(record.email)
        if user is None or user.id != record.user_id:
            raise TokenProcessingError("refresh token owner not found")

        pair = self._issue_pair(user)
        if not self.refresh_store.delete_refresh_token(record.token_hash):
            logger.warning("Refresh token for user id=%d was rotated concurrently; rejecting", user.id)
            raise TokenNotFoundError()
        self.refresh_store.store_refresh_token(user.id, pair.refresh_token, self._refresh_expiry())
        logger.debug("Rotated refresh token for user id=%d", user.id)
        return pair

    def logout(self, raw_refresh: str) -> None:
        """Revoke one session. A second logout with the same token raises TokenNotFoundError."""
        if not self.refresh_store.delete_refresh_token(hash_token(raw_refresh)):
            raise TokenNotFoundError()

    def session_owner(self, raw_refresh: str) -> int:
        """Return the user id behind a live refresh token.

        Raises the same errors as refresh_tokens() for an unknown, rotated,
        revoked or expired token.
        """
        return self.refresh_store.validate_refresh_token(raw_refresh).user_id

    def logout_all(self, user_id: int) -> int:
        """Revoke every session of user_id. Returns how many were removed."""
        removed = self.refresh_store.delete_refresh_tokens_by_user_id(user_id)
        logger.info("Revoked %d session(s) for user id=%d", removed, user_id)
        return removed

    def sweep_expired(self) -> int:
        removed = self.refresh_store.delete_expired_refresh_tokens()
        logger.info("Swept %d expired refresh token(s)", removed)
        return removed

    # ------------------------------------------------------------------
    # Stateless validation
    # ------------------------------------------------------------------

    def validate_token(self, token: str) -> TokenClaims:
        """Verify signature and expiry only. No storage lookup."""
        return self.validator.verify(token)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_pair(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=self.issuer.issue(user.id, user.email, self.access_ttl),
            refresh_token=self.issuer.issue(user.id, user.email, self.refresh_ttl),
        )

    def _refresh_expiry(self) -> datetime:
        return datetime.now(timezone.utc) + self.refresh_ttl
