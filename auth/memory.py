"""
auth/memory.py -- In-process implementations of the storage contracts.

MemoryUserStore and MemoryRefreshTokenStore share one MemoryDatabase, so the
cross-store rules of the SQL schema still hold: a refresh token cannot point
at a missing user, lookups join in the owner's email, and delete_user removes
a user's tokens together with the user under a single lock acquisition.

Used by the test suite and handy for local experiments; nothing survives a
restart.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Optional

from auth.errors import TokenExpiredError, TokenNotFoundError, UserExistsError, UserNotFoundError
from auth.models import RefreshToken, User
from auth.tokens import hash_token


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryDatabase:
    """Tables as dicts plus the lock every store method takes."""

    def __init__(self) -> None:
        self.users: Dict[int, User] = {}
        self.refresh_tokens: Dict[str, RefreshToken] = {}
        self._id_seq = 1
        self.lock = threading.RLock()

    def next_user_id(self) -> int:
        user_id = self._id_seq
        self._id_seq += 1
        return user_id


class MemoryUserStore:
    def __init__(self, db: MemoryDatabase) -> None:
        self.db = db

    def create_user(self, email: str, password_hash: str, is_admin: bool = False) -> int:
        with self.db.lock:
            if any(u.email == email for u in self.db.users.values()):
                raise UserExistsError()
            user_id = self.db.next_user_id()
            self.db.users[user_id] = User(
                id=user_id,
                email=email,
                password_hash=password_hash,
                is_admin=is_admin,
                created_at=_now(),
            )
            return user_id

    def get_by_email(self, email: str) -> Optional[User]:
        with self.db.lock:
            for user in self.db.users.values():
                if user.email == email:
                    return replace(user)
        return None

    def get_by_id(self, user_id: int) -> Optional[User]:
        with self.db.lock:
            user = self.db.users.get(user_id)
            return replace(user) if user is not None else None

    def set_admin(self, user_id: int, is_admin: bool) -> bool:
        with self.db.lock:
            user = self.db.users.get(user_id)
            if user is None:
                return False
            user.is_admin = is_admin
            return True

    def delete_user(self, user_id: int) -> bool:
        with self.db.lock:
            if user_id not in self.db.users:
                return False
            for token_hash in [h for h, rt in self.db.refresh_tokens.items() if rt.user_id == user_id]:
                del self.db.refresh_tokens[token_hash]
            del self.db.users[user_id]
            return True

    def ping(self) -> bool:
        return True


class MemoryRefreshTokenStore:
    def __init__(self, db: MemoryDatabase) -> None:
        self.db = db

    def store_refresh_token(self, user_id: int, raw_token: str, expires_at: datetime) -> None:
        token_hash = hash_token(raw_token)
        with self.db.lock:
            if user_id not in self.db.users:
                raise UserNotFoundError()
            if token_hash in self.db.refresh_tokens:
                return
            self.db.refresh_tokens[token_hash] = RefreshToken(
                token_hash=token_hash,
                user_id=user_id,
                email="",  # filled from the users table on read
                expires_at=expires_at,
                created_at=_now(),
            )

    def get_refresh_token(self, token_hash: str) -> Optional[RefreshToken]:
        with self.db.lock:
            record = self.db.refresh_tokens.get(token_hash)
            if record is None:
                return None
            owner = self.db.users.get(record.user_id)
            if owner is None:
                return None
            return replace(record, email=owner.email)

    def validate_refresh_token(self, raw_token: str) -> RefreshToken:
        record = self.get_refresh_token(hash_token(raw_token))
        if record is None:
            raise TokenNotFoundError()
        if _now() > record.expires_at:
            raise TokenExpiredError()
        return record

    def delete_refresh_token(self, token_hash: str) -> bool:
        with self.db.lock:
            return self.db.refresh_tokens.pop(token_hash, None) is not None

    def delete_refresh_tokens_by_user_id(self, user_id: int) -> int:
        with self.db.lock:
            doomed = [h for h, rt in self.db.refresh_tokens.items() if rt.user_id == user_id]
            for token_hash in doomed:
                del self.db.refresh_tokens[token_hash]
            return len(doomed)

    def delete_expired_refresh_tokens(self) -> int:
        now = _now()
        with self.db.lock:
            doomed = [h for h, rt in self.db.refresh_tokens.items() if rt.expires_at < now]
            for token_hash in doomed:
                del self.db.refresh_tokens[token_hash]
            return len(doomed)
