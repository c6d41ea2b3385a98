"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as catalog/store.py).
UserStore is the repository for users, personal access tokens and browser
sessions; _row_to_* are the mappers. The gateway and route code never touch
SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Only hashes of tokens and session ids are stored. The raw values live with
  the client; a leaked database cannot be replayed without SECRET_KEY.

Concurrency:
  Every mutation is a single-row statement. Token revocation is a conditional
  UPDATE (WHERE revoked_at IS NULL), so two concurrent logouts of the same
  token cannot both report success and a revoked token can never be revived.

Availability:
  Connectivity failures (sqlalchemy.exc.OperationalError) are translated to
  auth.errors.Unavailable in _connect(). Callers can therefore never mistake
  an outage for "user not found" and report bad credentials.

Layer rule: no imports from api/, web/ or catalog/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError

from auth.errors import Unavailable
from auth.models import AccessToken, Session, User
from core.config import get_settings

logger = logging.getLogger("aitools.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(320), nullable=False, unique=True),  # lower-cased on write
    Column("hashed_password", Text),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("created_at", String(32), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

_tokens = Table(
    "personal_access_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("name", String(100), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("created_at", String(32), nullable=False),
    Column("last_used_at", String(32)),
    Column("revoked_at", String(32)),
)

_sessions = Table(
    "sessions",
    metadata,
    Column("key_hash", String(64), primary_key=True),  # HMAC-SHA256 hex of the cookie value
    Column("user_id", Integer, ForeignKey("users.id"), index=True),  # NULL = anonymous
    Column("csrf_token", String(64), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("last_activity", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup (case-insensitive identity)."""
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, AccessToken and Session entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(name="Ivan", email="ivan@company.com", role="owner",
                                     hashed_password=hash_password("secret")))
        user = store.get_by_email("IVAN@company.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except OperationalError as exc:
            logger.error("Auth store unavailable: %s", exc.orig or exc)
            raise Unavailable() from exc

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._connect() as conn:
                conn.execute(select(1))
        except Unavailable:
            return False
        return True

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self._connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists
        (compared case-insensitively, since emails are normalized on write).
        """
        with self._connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=normalize_email(user.email),
                    hashed_password=user.hashed_password,
                    role=user.role,
                    created_at=_now_iso(),
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self._connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self._connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        with self._connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: name, email, role, is_active, hashed_password.
        Returns True if a row was updated, False if user_id was not found.
        """
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        with self._connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Personal access tokens
    # ------------------------------------------------------------------

    def create_token(self, user_id: int, name: str, token_hash: str) -> AccessToken:
        """Insert a token record and return it with its assigned ID."""
        created_at = _now_iso()
        with self._connect() as conn:
            result = conn.execute(
                _tokens.insert().values(
                    user_id=user_id,
                    name=name,
                    token_hash=token_hash,
                    created_at=created_at,
                )
            )
            conn.commit()
            token_id = result.inserted_primary_key[0]
        return AccessToken(id=token_id, user_id=user_id, name=name, token_hash=token_hash, created_at=created_at)

    def get_token(self, token_id: int) -> AccessToken | None:
        """Fetch a token by primary key, revoked or not."""
        with self._connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.id == token_id)).fetchone()
        return _row_to_token(row) if row is not None else None

    def get_token_by_hash(self, token_hash: str) -> AccessToken | None:
        """Fetch a token by its HMAC hash. O(1) via UNIQUE index."""
        with self._connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_token(row) if row is not None else None

    def list_tokens(self, user_id: int, include_revoked: bool = False) -> list[AccessToken]:
        """Return a user's tokens, newest first."""
        query = _tokens.select().where(_tokens.c.user_id == user_id)
        if not include_revoked:
            query = query.where(_tokens.c.revoked_at.is_(None))
        with self._connect() as conn:
            rows = conn.execute(query.order_by(_tokens.c.id.desc())).fetchall()
        return [_row_to_token(r) for r in rows]

    def touch_token(self, token_id: int) -> None:
        """Stamp last_used_at after a successful authentication. created_at is never touched."""
        with self._connect() as conn:
            conn.execute(_tokens.update().where(_tokens.c.id == token_id).values(last_used_at=_now_iso()))
            conn.commit()

    def revoke_token(self, token_id: int) -> bool:
        """Mark one token revoked.

        Returns True only for the call that actually revoked it. A token that
        is already revoked (or does not exist) returns False.
        """
        with self._connect() as conn:
            result = conn.execute(
                _tokens.update()
                .where((_tokens.c.id == token_id) & (_tokens.c.revoked_at.is_(None)))
                .values(revoked_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def revoke_user_tokens(self, user_id: int) -> int:
        """Revoke every live token of a user. Returns the number revoked."""
        with self._connect() as conn:
            result = conn.execute(
                _tokens.update()
                .where((_tokens.c.user_id == user_id) & (_tokens.c.revoked_at.is_(None)))
                .values(revoked_at=_now_iso())
            )
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: Session) -> Session:
        now = _now_iso()
        with self._connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    key_hash=session.key_hash,
                    user_id=session.user_id,
                    csrf_token=session.csrf_token,
                    created_at=now,
                    last_activity=now,
                )
            )
            conn.commit()
        session.created_at = now
        session.last_activity = now
        return session

    def get_session(self, key_hash: str) -> Session | None:
        with self._connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.key_hash == key_hash)).fetchone()
        return _row_to_session(row) if row is not None else None

    def touch_session(self, key_hash: str) -> None:
        with self._connect() as conn:
            conn.execute(_sessions.update().where(_sessions.c.key_hash == key_hash).values(last_activity=_now_iso()))
            conn.commit()

    def delete_session(self, key_hash: str) -> bool:
        """Destroy a session. Returns True if a row was removed."""
        with self._connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.key_hash == key_hash))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        created_at=row.created_at,
        is_active=bool(row.is_active),
    )


def _row_to_token(row) -> AccessToken:
    return AccessToken(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        token_hash=row.token_hash,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
        revoked_at=row.revoked_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        key_hash=row.key_hash,
        user_id=row.user_id,
        csrf_token=row.csrf_token,
        created_at=row.created_at,
        last_activity=row.last_activity,
    )
