"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as worlds/store.py).
UserStore and VerificationTokenStore are the repositories; _row_to_user /
_row_to_token are the mappers. Services never touch SQL directly.

Both stores run on a shared core.db.Database so AuthService can group their
writes in one `db.transaction()`.

Soft delete:
  users.deleted_at marks a soft-deleted account. Every lookup here filters
  deleted_at IS NULL, so a deleted user is indistinguishable from one that
  never existed. Uniqueness of email and username is enforced by partial
  unique indexes over live rows only, which lets an address be re-registered
  after its previous owner was deleted.

Verification tokens are hard-deleted when superseded (ON DELETE CASCADE also
removes them with their user row).

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, worlds/, or notify/.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    func,
    select,
)

from auth.models import EmailVerificationToken, User, UserRole
from core.db import Database, as_utc, metadata, now_utc

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False),  # always lower-case
    Column("username", String(32), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(16), nullable=False, server_default=UserRole.USER.value),
    Column("email_verified", Boolean, nullable=False, server_default="0"),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("deleted_at", DateTime(timezone=True)),
)

Index(
    "uq_users_email_live",
    _users.c.email,
    unique=True,
    sqlite_where=_users.c.deleted_at.is_(None),
    postgresql_where=_users.c.deleted_at.is_(None),
)
Index(
    "uq_users_username_live",
    _users.c.username,
    unique=True,
    sqlite_where=_users.c.deleted_at.is_(None),
    postgresql_where=_users.c.deleted_at.is_(None),
)

_tokens = Table(
    "email_verification_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("verified_at", DateTime(timezone=True)),
)

_live_users = _users.c.deleted_at.is_(None)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records (the credential store).

    Usage:
        store = UserStore(db)
        user_id = store.create_user(User(email="a@x.com", username="alice", hashed_password=...))
        user = store.get_by_email("a@x.com")
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        metadata.create_all(db.engine)

    def exists_by_email(self, email: str) -> bool:
        """Return True if a live user holds this email (case-insensitive)."""
        with self.db.connect() as conn:
            count = conn.execute(
                select(func.count()).select_from(_users).where((_users.c.email == email.lower()) & _live_users)
            ).scalar()
        return (count or 0) > 0

    def exists_by_username(self, username: str) -> bool:
        """Return True if a live user holds this exact username."""
        with self.db.connect() as conn:
            count = conn.execute(
                select(func.count()).select_from(_users).where((_users.c.username == username) & _live_users)
            ).scalar()
        return (count or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if a live user already holds the
        email or username. AuthService checks first and treats the error as a
        lost race.
        """
        with self.db.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email.lower(),
                    username=user.username,
                    hashed_password=user.hashed_password,
                    role=user.role.value,
                    email_verified=user.email_verified,
                    created_at=user.created_at or now_utc(),
                )
            )
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> Optional[User]:
        """Look up a live user by email (case-insensitive). Returns None if not found."""
        with self.db.connect() as conn:
            row = conn.execute(_users.select().where((_users.c.email == email.lower()) & _live_users)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> Optional[User]:
        """Look up a live user by primary key. Returns None if not found or soft-deleted."""
        with self.db.connect() as conn:
            row = conn.execute(_users.select().where((_users.c.id == user_id) & _live_users)).fetchone()
        return _row_to_user(row) if row is not None else None

    def save(self, user: User) -> None:
        """Write the mutable fields of an existing user back to the database."""
        with self.db.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user.id)
                .values(
                    username=user.username,
                    hashed_password=user.hashed_password,
                    role=user.role.value,
                    email_verified=user.email_verified,
                    deleted_at=user.deleted_at,
                )
            )

    def soft_delete(self, user_id: int, when: Optional[datetime] = None) -> bool:
        """Mark a user deleted. Returns True if a live row was updated.

        Administrative operation; nothing in the request path calls it.
        """
        with self.db.connect() as conn:
            result = conn.execute(
                _users.update().where((_users.c.id == user_id) & _live_users).values(deleted_at=when or now_utc())
            )
        return result.rowcount > 0


class VerificationTokenStore:
    """Repository for EmailVerificationToken records."""

    def __init__(self, db: Database) -> None:
        self.db = db
        metadata.create_all(db.engine)

    def find_by_token(self, token: str) -> Optional[EmailVerificationToken]:
        """Exact lookup by the opaque token string. O(1) via UNIQUE index."""
        with self.db.connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.token == token)).fetchone()
        return _row_to_token(row) if row is not None else None

    def delete_all_for_user(self, user_id: int) -> int:
        """Hard-delete every token for the user. Returns the number of rows removed (0 is fine)."""
        with self.db.connect() as conn:
            result = conn.execute(_tokens.delete().where(_tokens.c.user_id == user_id))
        return result.rowcount

    def save(self, token: EmailVerificationToken) -> int:
        """Insert a new token (id is None) or persist verified_at on an existing one.

        Returns the token's database ID.
        """
        with self.db.connect() as conn:
            if token.id is None:
                result = conn.execute(
                    _tokens.insert().values(
                        token=token.token,
                        user_id=token.user_id,
                        expires_at=token.expires_at,
                        created_at=token.created_at or now_utc(),
                        verified_at=token.verified_at,
                    )
                )
                return result.inserted_primary_key[0]
            conn.execute(_tokens.update().where(_tokens.c.id == token.id).values(verified_at=token.verified_at))
            return token.id

    def mark_verified(self, token_id: int, when: datetime) -> bool:
        """Stamp verified_at if the token is still unused. Returns False if it was already used."""
        with self.db.connect() as conn:
            result = conn.execute(
                _tokens.update()
                .where((_tokens.c.id == token_id) & _tokens.c.verified_at.is_(None))
                .values(verified_at=when)
            )
        return result.rowcount > 0

    def list_for_user(self, user_id: int) -> list[EmailVerificationToken]:
        """Return all tokens for a user, newest first."""
        with self.db.connect() as conn:
            rows = conn.execute(
                _tokens.select().where(_tokens.c.user_id == user_id).order_by(_tokens.c.id.desc())
            ).fetchall()
        return [_row_to_token(r) for r in rows]

    def count_for_user(self, user_id: int) -> int:
        with self.db.connect() as conn:
            count = conn.execute(
                select(func.count()).select_from(_tokens).where(_tokens.c.user_id == user_id)
            ).scalar()
        return count or 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        hashed_password=row.hashed_password,
        role=UserRole(row.role),
        email_verified=bool(row.email_verified),
        created_at=as_utc(row.created_at),
        deleted_at=as_utc(row.deleted_at),
    )


def _row_to_token(row) -> EmailVerificationToken:
    return EmailVerificationToken(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        expires_at=as_utc(row.expires_at),
        created_at=as_utc(row.created_at),
        verified_at=as_utc(row.verified_at),
    )
