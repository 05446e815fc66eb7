"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Mirrors the
approach in worlds/models.py -- dataclasses own domain shape; stores and
services do the work. The only behaviour here is the handful of state
predicates (is_deleted, is_expired, is_verified) that every caller must agree on.

Layer rule: no imports from api/, worlds/, or notify/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


@dataclass
class User:
    """A registered account.

    email is stored lower-cased; username keeps the case it was registered
    with. deleted_at marks a soft delete -- stores filter those rows out of
    every lookup, so a deleted user behaves exactly like a missing one.

    id is None before the record is written to the database.
    """

    email: str
    username: str
    hashed_password: str
    role: UserRole = UserRole.USER
    email_verified: bool = False
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass
class EmailVerificationToken:
    """Single-use, store-backed proof that the user controls their inbox.

    token is an opaque random string delivered by email. verified_at is set
    exactly once, on successful verification, and never cleared. Superseded
    tokens are hard-deleted rather than marked.
    """

    token: str
    user_id: int
    expires_at: datetime
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        # A token whose expiry equals "now" is already expired.
        now = now or datetime.now(timezone.utc)
        return self.expires_at <= now

    def is_verified(self) -> bool:
        return self.verified_at is not None


@dataclass(frozen=True)
class PublicUser:
    """The only shape of a user that ever leaves the auth service.

    No password hash, no token ids, no timestamps.
    """

    id: int
    email: str
    username: str
    role: str
    email_verified: bool

    @classmethod
    def from_user(cls, user: User) -> "PublicUser":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            role=user.role.value,
            email_verified=user.email_verified,
        )


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, derived from a verified session token.

    Passed explicitly into every resource-service call; there is no
    process-wide "current user".
    """

    user_id: int
    email: str
    role: str


@dataclass(frozen=True)
class LoginResult:
    """Successful login: the signed session token plus the public user view.

    The HTTP layer attaches the token as a cookie; the service never touches
    the response.
    """

    access_token: str
    user: PublicUser
    expires_in: int
    token_type: str = "Bearer"  # noqa: S105 -- token type label, not a secret
