"""
auth/interfaces.py -- Storage contracts injected into SessionManager.

Two small capability interfaces instead of one storage object: SessionManager
only needs user identity from one and refresh-token state from the other.
auth/store.py implements both over SQLAlchemy Core; auth/memory.py implements
both in process for tests and local runs.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from auth.models import RefreshToken, User


class UserRepository(Protocol):
    def create_user(self, email: str, password_hash: str, is_admin: bool = False) -> int:
        """Insert a user and return its id. Raises UserExistsError on a duplicate email."""
        ...

    def get_by_email(self, email: str) -> Optional[User]: ...

    def get_by_id(self, user_id: int) -> Optional[User]: ...

    def set_admin(self, user_id: int, is_admin: bool) -> bool: ...

    def delete_user(self, user_id: int) -> bool:
        """Delete the user and all of its refresh tokens in one transaction."""
        ...


class RefreshTokenRepository(Protocol):
    def store_refresh_token(self, user_id: int, raw_token: str, expires_at: datetime) -> None:
        """Persist hash(raw_token). Duplicate hash is a no-op; unknown user raises UserNotFoundError."""
        ...

    def get_refresh_token(self, token_hash: str) -> Optional[RefreshToken]: ...

    def validate_refresh_token(self, raw_token: str) -> RefreshToken:
        """Return the live record or raise TokenNotFoundError / TokenExpiredError."""
        ...

    def delete_refresh_token(self, token_hash: str) -> bool:
        """Conditional delete. True only if this call removed the row."""
        ...

    def delete_refresh_tokens_by_user_id(self, user_id: int) -> int: ...

    def delete_expired_refresh_tokens(self) -> int: ...
