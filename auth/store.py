"""
auth/store.py -- SQLAlchemy Core persistence for users and refresh tokens.

Pattern: Repository + Data Mapper. UserStore and RefreshTokenStore are the
repositories; _row_to_user / _row_to_refresh_token are the mappers. Nothing
outside this module touches SQL.

Both stores share one Engine built by create_db_engine(). The engine's pool
is the only shared mutable resource and is internally synchronized, so the
stores are safe to call from FastAPI's threadpool.

Error boundary:
  IntegrityError is classified here -- unique violations and foreign-key
  violations become domain errors (UserExistsError, UserNotFoundError, or a
  silent no-op for a duplicate refresh-token hash). Every other SQLAlchemy
  error, timeouts included, is logged and re-raised as StorageError with a
  generic message. Backend error text never leaves this module.

Timestamps are stored as integer unix seconds (UTC) so expiry comparisons
are plain integer comparisons on every backend.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import Boolean, Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import StorageError, TokenExpiredError, TokenNotFoundError, UserExistsError, UserNotFoundError
from auth.models import RefreshToken, User
from auth.tokens import hash_token

logger = logging.getLogger("linkauth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("is_admin", Boolean, nullable=False, server_default="0"),
    Column("created_at", Integer, nullable=False),
    # Ids are never reused: a deleted user's access tokens outlive the row and
    # must not resolve to whoever registers next.
    sqlite_autoincrement=True,
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("token_hash", String(64), primary_key=True),  # SHA-256 hex
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("expires_at", Integer, nullable=False, index=True),
    Column("created_at", Integer, nullable=False),
)

# SQLSTATE codes reported by PostgreSQL drivers.
_UNIQUE_VIOLATION = "23505"
_FOREIGN_KEY_VIOLATION = "23503"


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign-key enforcement on every new SQLite connection.

    SQLite PRAGMAs are per-connection, and foreign keys are OFF by default --
    without this the refresh_tokens.user_id FK would never fire.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_db_engine(db_url: str, timeout: float = 5.0) -> Engine:
    """Build the shared Engine and create missing tables.

    timeout bounds every wait on the database: pool checkout and statement
    time on PostgreSQL, the lock wait on SQLite. A timed-out call raises an
    SQLAlchemy error, which the stores surface as StorageError.
    """
    connect_args: dict = {}
    engine_kwargs: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = timeout
    else:
        engine_kwargs["pool_timeout"] = timeout
        engine_kwargs["pool_pre_ping"] = True
        if db_url.startswith("postgresql"):
            connect_args["connect_timeout"] = max(1, int(timeout))
            connect_args["options"] = f"-c statement_timeout={int(timeout * 1000)}"
    engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_epoch(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def _from_epoch(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _constraint_kind(exc: IntegrityError) -> str | None:
    """Return "unique", "foreign_key" or None for an IntegrityError."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == _UNIQUE_VIOLATION:
        return "unique"
    if code == _FOREIGN_KEY_VIOLATION:
        return "foreign_key"
    message = str(orig).upper()
    if "FOREIGN KEY" in message:
        return "foreign_key"
    if "UNIQUE" in message or "PRIMARY KEY" in message:
        return "unique"
    return None


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Wrap any SQLAlchemy error escaping the block in a generic StorageError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Storage operation %r failed: %s", operation, exc)
        raise StorageError(f"failed to {operation}") from exc


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        engine = create_db_engine("sqlite:///linkauth.db")
        users = UserStore(engine)
        uid = users.create_user("a@b.com", hasher.hash("secret123"))
        users.get_by_email("a@b.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_user(self, email: str, password_hash: str, is_admin: bool = False) -> int:
        """Insert a new user and return its id. Raises UserExistsError on a duplicate email."""
        with _storage_errors("save user"):
            try:
                with self.engine.connect() as conn:
                    result = conn.execute(
                        _users.insert().values(
                            email=email,
                            password_hash=password_hash,
                            is_admin=is_admin,
                            created_at=_to_epoch(_now()),
                        )
                    )
                    conn.commit()
                    return result.inserted_primary_key[0]
            except IntegrityError as exc:
                if _constraint_kind(exc) == "unique":
                    raise UserExistsError() from exc
                raise

    def get_by_email(self, email: str) -> User | None:
        with _storage_errors("get user"):
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with _storage_errors("get user"):
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def set_admin(self, user_id: int, is_admin: bool) -> bool:
        """Set the admin flag. Returns False if user_id was not found."""
        with _storage_errors("update user"):
            with self.engine.connect() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(is_admin=is_admin))
                conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete the user's refresh tokens and the user row in one transaction.

        engine.begin() commits both statements together or rolls both back,
        so a failure cannot leave a user without its sessions or sessions
        without their user. Returns False if user_id was not found.
        """
        with _storage_errors("delete account"):
            with self.engine.begin() as conn:
                conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
                result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


class RefreshTokenStore:
    """Repository for refresh-token records, keyed by SHA-256 of the raw token.

    Records are never updated in place. Rotation deletes the old record with
    delete_refresh_token() -- whose boolean result tells the caller whether it
    won the row -- and inserts a new one.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def store_refresh_token(self, user_id: int, raw_token: str, expires_at: datetime) -> None:
        """Persist hash(raw_token) for user_id.

        A duplicate hash is an idempotent no-op. An unknown user_id trips the
        foreign key and raises UserNotFoundError.
        """
        token_hash = hash_token(raw_token)
        with _storage_errors("store refresh token"):
            try:
                with self.engine.connect() as conn:
                    conn.execute(
                        _refresh_tokens.insert().values(
                            token_hash=token_hash,
                            user_id=user_id,
                            expires_at=_to_epoch(expires_at),
                            created_at=_to_epoch(_now()),
                        )
                    )
                    conn.commit()
            except IntegrityError as exc:
                kind = _constraint_kind(exc)
                if kind == "foreign_key":
                    raise UserNotFoundError() from exc
                if kind == "unique":
                    logger.debug("Refresh token hash already stored; ignoring duplicate")
                    return
                raise

    def get_refresh_token(self, token_hash: str) -> RefreshToken | None:
        """Fetch a record by hash, joined with users for the owner's email."""
        stmt = (
            select(
                _refresh_tokens.c.token_hash,
                _refresh_tokens.c.user_id,
                _users.c.email,
                _refresh_tokens.c.expires_at,
                _refresh_tokens.c.created_at,
            )
            .select_from(_refresh_tokens.join(_users, _refresh_tokens.c.user_id == _users.c.id))
            .where(_refresh_tokens.c.token_hash == token_hash)
        )
        with _storage_errors("get refresh token"):
            with self.engine.connect() as conn:
                row = conn.execute(stmt).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def validate_refresh_token(self, raw_token: str) -> RefreshToken:
        """Return the live record for raw_token.

        Raises TokenNotFoundError if no record exists and TokenExpiredError if
        the record is past expires_at, even when the sweep has not removed it.
        """
        record = self.get_refresh_token(hash_token(raw_token))
        if record is None:
            raise TokenNotFoundError()
        if _now() > record.expires_at:
            raise TokenExpiredError()
        return record

    def delete_refresh_token(self, token_hash: str) -> bool:
        """Delete one record. True only if this call removed a row."""
        with _storage_errors("delete refresh token"):
            with self.engine.connect() as conn:
                result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token_hash == token_hash))
                conn.commit()
        return result.rowcount > 0

    def delete_refresh_tokens_by_user_id(self, user_id: int) -> int:
        """Delete every record owned by user_id. Returns the number removed."""
        with _storage_errors("delete refresh tokens by user ID"):
            with self.engine.connect() as conn:
                result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
                conn.commit()
        return result.rowcount

    def delete_expired_refresh_tokens(self) -> int:
        """Sweep records whose expires_at has passed. Safe to run repeatedly."""
        with _storage_errors("delete expired refresh tokens"):
            with self.engine.connect() as conn:
                result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at < _to_epoch(_now())))
                conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        is_admin=bool(row.is_admin),
        created_at=_from_epoch(row.created_at),
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        token_hash=row.token_hash,
        user_id=row.user_id,
        email=row.email,
        expires_at=_from_epoch(row.expires_at),
        created_at=_from_epoch(row.created_at),
    )
