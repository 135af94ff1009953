"""Tests for auth/session.py -- the SessionManager lifecycle.

Runs once per storage backend (see the `stores` fixture in conftest.py).

Covers:
- register/login round trip and the claims carried by each token
- unknown email and wrong password are indistinguishable and leave no record
- rotation consumes the old refresh token
- logout, logout_all and delete_account revoke sessions but not access tokens
- expired refresh tokens are refused even before the sweep removes them
- a refresh record that cannot be stored means no tokens are handed out
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import (
    InvalidCredentialsError,
    InvalidTokenError,
    StorageError,
    TokenExpiredError,
    TokenNotFoundError,
    TokenProcessingError,
    UserExistsError,
)
from auth.session import SessionManager, normalize_email
from auth.tokens import hash_token

EMAIL = "user@example.com"
PASSWORD = "correct-horse"


@pytest.fixture
def registered(sessions: SessionManager) -> int:
    return sessions.register(EMAIL, PASSWORD)


def _record_count(sessions: SessionManager, user_id: int) -> int:
    """Destructive count: revokes every session of user_id and returns how many there were."""
    return sessions.refresh_store.delete_refresh_tokens_by_user_id(user_id)


class TestRegister:
    def test_returns_id(self, sessions: SessionManager) -> None:
        uid = sessions.register(EMAIL, PASSWORD)
        assert uid > 0
        user = sessions.users.get_by_id(uid)
        assert user.email == EMAIL
        assert user.password_hash != PASSWORD

    def test_duplicate_email(self, sessions: SessionManager, registered: int) -> None:
        with pytest.raises(UserExistsError):
            sessions.register(EMAIL, "another-password")
        # The original account is untouched and no second row was added.
        assert sessions.users.get_by_email(EMAIL).id == registered
        assert sessions.validate_token(sessions.login(EMAIL, PASSWORD).access_token).user_id == registered
        with pytest.raises(InvalidCredentialsError):
            sessions.login(EMAIL, "another-password")

    def test_email_is_normalized(self, sessions: SessionManager) -> None:
        uid = sessions.register("  User@Example.COM ", PASSWORD)
        assert sessions.users.get_by_email(EMAIL).id == uid
        with pytest.raises(UserExistsError):
            sessions.register(EMAIL, PASSWORD)

    def test_normalize_email(self) -> None:
        assert normalize_email(" A@B.Com ") == "a@b.com"


class TestLogin:
    def test_round_trip(self, sessions: SessionManager, registered: int) -> None:
        pair = sessions.login(EMAIL, PASSWORD)

        access = sessions.validate_token(pair.access_token)
        refresh = sessions.validate_token(pair.refresh_token)
        assert access.user_id == refresh.user_id == registered
        assert access.email == refresh.email == EMAIL

        now = datetime.now(timezone.utc)
        assert access.expires_at - now <= sessions.access_ttl
        assert refresh.expires_at - now > sessions.access_ttl
        assert refresh.expires_at - now <= sessions.refresh_ttl

    def test_refresh_record_is_stored_by_hash(self, sessions: SessionManager, registered: int) -> None:
        pair = sessions.login(EMAIL, PASSWORD)
        record = sessions.refresh_store.get_refresh_token(hash_token(pair.refresh_token))
        assert record is not None
        assert record.user_id == registered

    def test_each_login_is_a_separate_session(self, sessions: SessionManager, registered: int) -> None:
        first = sessions.login(EMAIL, PASSWORD)
        second = sessions.login(EMAIL, PASSWORD)
        assert first.refresh_token != second.refresh_token
        assert _record_count(sessions, registered) == 2

    def test_wrong_password(self, sessions: SessionManager, registered: int) -> None:
        with pytest.raises(InvalidCredentialsError):
            sessions.login(EMAIL, "wrong-password")
        assert _record_count(sessions, registered) == 0

    def test_unknown_email_looks_like_wrong_password(self, sessions: SessionManager, registered: int) -> None:
        with pytest.raises(InvalidCredentialsError) as unknown:
            sessions.login("nobody@example.com", PASSWORD)
        with pytest.raises(InvalidCredentialsError) as wrong:
            sessions.login(EMAIL, "wrong-password")
        assert unknown.value.message == wrong.value.message

    def test_storage_failure_returns_no_tokens(self, sessions: SessionManager, registered: int, monkeypatch) -> None:
        def broken_store(user_id, raw_token, expires_at):
            raise StorageError("failed to store refresh token")

        monkeypatch.setattr(sessions.refresh_store, "store_refresh_token", broken_store)
        with pytest.raises(StorageError):
            sessions.login(EMAIL, PASSWORD)


class TestRefresh:
    def test_rotation(self, sessions: SessionManager, registered: int) -> None:
        old = sessions.login(EMAIL, PASSWORD)
        new = sessions.refresh_tokens(old.refresh_token)

        assert new.refresh_token != old.refresh_token
        assert sessions.validate_token(new.access_token).user_id == registered
        with pytest.raises(TokenNotFoundError):
            sessions.refresh_tokens(old.refresh_token)
        # The successor is live and can rotate again.
        assert sessions.refresh_tokens(new.refresh_token).refresh_token != new.refresh_token

    def test_rotation_keeps_one_record(self, sessions: SessionManager, registered: int) -> None:
        pair = sessions.login(EMAIL, PASSWORD)
        sessions.refresh_tokens(pair.refresh_token)
        assert _record_count(sessions, registered) == 1

    def test_unknown_token(self, sessions: SessionManager, registered: int) -> None:
        with pytest.raises(TokenNotFoundError):
            sessions.refresh_tokens("not-a-stored-token")

    def test_empty_token(self, sessions: SessionManager) -> None:
        with pytest.raises(TokenProcessingError):
            sessions.refresh_tokens("")

    def test_expired_before_sweep(self, sessions: SessionManager, registered: int) -> None:
        raw = sessions.issuer.issue(registered, EMAIL, sessions.refresh_ttl)
        sessions.refresh_store.store_refresh_token(
            registered, raw, datetime.now(timezone.utc) - timedelta(seconds=5)
        )
        with pytest.raises(TokenExpiredError):
            sessions.refresh_tokens(raw)

    def test_sweep_then_not_found(self, sessions: SessionManager, registered: int) -> None:
        raw = sessions.issuer.issue(registered, EMAIL, sessions.refresh_ttl)
        sessions.refresh_store.store_refresh_token(
            registered, raw, datetime.now(timezone.utc) - timedelta(seconds=5)
        )
        assert sessions.sweep_expired() == 1
        with pytest.raises(TokenNotFoundError):
            sessions.refresh_tokens(raw)


class TestLogout:
    def test_logout_revokes_refresh(self, sessions: SessionManager, registered: int) -> None:
        pair = sessions.login(EMAIL, PASSWORD)
        sessions.logout(pair.refresh_token)
        with pytest.raises(TokenNotFoundError):
            sessions.refresh_tokens(pair.refresh_token)

    def test_second_logout_fails(self, sessions: SessionManager, registered: int) -> None:
        pair = sessions.login(EMAIL, PASSWORD)
        sessions.logout(pair.refresh_token)
        with pytest.raises(TokenNotFoundError):
            sessions.logout(pair.refresh_token)

    def test_logout_is_a_single_conditional_delete(
        self, sessions: SessionManager, registered: int, monkeypatch
    ) -> None:
        pair = sessions.login(EMAIL, PASSWORD)

        def no_reads(token_hash):
            raise AssertionError("logout must not read the record first")

        monkeypatch.setattr(sessions.refresh_store, "get_refresh_token", no_reads)
        sessions.logout(pair.refresh_token)
        with pytest.raises(TokenNotFoundError):
            sessions.logout(pair.refresh_token)

    def test_session_owner(self, sessions: SessionManager, registered: int) -> None:
        pair = sessions.login(EMAIL, PASSWORD)
        assert sessions.session_owner(pair.refresh_token) == registered
        sessions.logout(pair.refresh_token)
        with pytest.raises(TokenNotFoundError):
            sessions.session_owner(pair.refresh_token)

    def test_access_token_survives_logout(self, sessions: SessionManager, registered: int) -> None:
        pair = sessions.login(EMAIL, PASSWORD)
        sessions.logout(pair.refresh_token)
        assert sessions.validate_token(pair.access_token).user_id == registered

    def test_logout_leaves_other_sessions(self, sessions: SessionManager, registered: int) -> None:
        first = sessions.login(EMAIL, PASSWORD)
        second = sessions.login(EMAIL, PASSWORD)
        sessions.logout(first.refresh_token)
        assert sessions.refresh_tokens(second.refresh_token)

    def test_logout_all(self, sessions: SessionManager, registered: int) -> None:
        pairs = [sessions.login(EMAIL, PASSWORD) for _ in range(3)]
        assert sessions.logout_all(registered) == 3
        for pair in pairs:
            with pytest.raises(TokenNotFoundError):
                sessions.refresh_tokens(pair.refresh_token)
        assert sessions.logout_all(registered) == 0


class TestAccount:
    def test_is_admin(self, sessions: SessionManager, registered: int) -> None:
        assert sessions.is_admin(registered) is False
        sessions.users.set_admin(registered, True)
        assert sessions.is_admin(registered) is True

    def test_is_admin_unknown_user(self, sessions: SessionManager) -> None:
        with pytest.raises(InvalidCredentialsError):
            sessions.is_admin(9999)

    def test_delete_account(self, sessions: SessionManager, registered: int) -> None:
        pair = sessions.login(EMAIL, PASSWORD)
        sessions.delete_account(registered)

        with pytest.raises(InvalidCredentialsError):
            sessions.login(EMAIL, PASSWORD)
        with pytest.raises(TokenNotFoundError):
            sessions.refresh_tokens(pair.refresh_token)
        # Stateless validation does not notice the account is gone.
        assert sessions.validate_token(pair.access_token).user_id == registered

    def test_delete_unknown_account(self, sessions: SessionManager) -> None:
        with pytest.raises(InvalidCredentialsError):
            sessions.delete_account(9999)

    def test_email_reusable_after_delete(self, sessions: SessionManager, registered: int) -> None:
        sessions.delete_account(registered)
        assert sessions.register(EMAIL, PASSWORD) != registered

    def test_deleted_user_token_does_not_match_next_user(self, sessions: SessionManager, registered: int) -> None:
        """A leftover access token of a deleted account never names a newer account."""
        old_access = sessions.login(EMAIL, PASSWORD).access_token
        sessions.delete_account(registered)

        new_id = sessions.register("next@example.com", PASSWORD)
        sessions.users.set_admin(new_id, True)

        claims = sessions.validate_token(old_access)
        assert claims.user_id != new_id
        with pytest.raises(InvalidCredentialsError):
            sessions.is_admin(claims.user_id)


class TestValidateToken:
    def test_garbage(self, sessions: SessionManager) -> None:
        with pytest.raises(InvalidTokenError):
            sessions.validate_token("garbage")

    def test_expired_access_token(self, sessions: SessionManager, registered: int) -> None:
        token = sessions.issuer.issue(registered, EMAIL, timedelta(seconds=-1))
        with pytest.raises(InvalidTokenError):
            sessions.validate_token(token)
