"""
auth/service.py -- AuthService: registration, login, verification, and resend.

Per-user state machine:

    Registered-Unverified --verify_email(token)--> Verified

The transition is one-way. Verifying again fails with AlreadyVerifiedError
rather than silently succeeding.

Invariants this module owns:
  - No session before verification. register() never issues a session token,
    and login() refuses an unverified account with EmailNotVerifiedError.
    That check runs only after the password checked out, so the error does
    not leak whether an address is registered.
  - Unknown email and wrong password raise the same InvalidCredentialsError
    (same message, same bcrypt cost via authenticate_user()).
  - At most one active verification token per user. Issuing a token deletes
    every earlier token for the user first, inside one transaction, under a
    per-user lock, so two concurrent resends cannot interleave delete/insert.
  - A token is single-use. The verified_at stamp is a conditional update
    (WHERE verified_at IS NULL), so two racing verifications cannot both win.
  - verify_email() checks existence -> already-verified -> expired, in that
    order: a used token always reports "already verified", never an expiry.

Transactions: register() and resend_verification() run the store writes and
the synchronous email dispatch in one db.transaction(). If the email
collaborator raises, the user row (for register) and the new token roll back
and the error propagates to the caller.

Layer rule: no imports from api/ or worlds/. The email collaborator is
injected; this module only knows the EmailSender protocol.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Optional, Protocol, Union

from sqlalchemy.exc import IntegrityError

from auth.models import EmailVerificationToken, LoginResult, PublicUser, User, UserRole
from auth.tokens import authenticate_user, create_access_token, generate_verification_token, hash_password
from core.config import Settings, get_settings
from core.db import Database, now_utc
from core.errors import (
    AlreadyVerifiedError,
    DuplicateEmailError,
    DuplicateUsernameError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidVerificationTokenError,
    UserNotFoundError,
    VerificationTokenExpiredError,
)
from core.logutil import log_event

logger = logging.getLogger("lorekeeper.auth")

# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


class CredentialStore(Protocol):
    def exists_by_email(self, email: str) -> bool: ...
    def exists_by_username(self, username: str) -> bool: ...
    def get_by_email(self, email: str) -> Optional[User]: ...
    def get_by_id(self, user_id: int) -> Optional[User]: ...
    def create_user(self, user: User) -> int: ...
    def save(self, user: User) -> None: ...


class VerificationTokenRepository(Protocol):
    def find_by_token(self, token: str) -> Optional[EmailVerificationToken]: ...
    def delete_all_for_user(self, user_id: int) -> int: ...
    def save(self, token: EmailVerificationToken) -> int: ...
    def mark_verified(self, token_id: int, when: datetime) -> bool: ...


class EmailSender(Protocol):
    def send_verification(self, to_email: str, display_name: str, token: str) -> None: ...


# ---------------------------------------------------------------------------
# Per-user serialization
# ---------------------------------------------------------------------------


class _KeyedLocks:
    """One threading.Lock per key, created on demand and dropped when idle."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: int) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, users + 1)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                lock, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)


class AuthService:
    """Orchestrates the credential store, token store, signer, and email sender.

    Invoked directly only by the auth routes. Every method either returns a
    PublicUser / LoginResult or raises a core.errors.LorekeeperError subclass.
    """

    def __init__(
        self,
        db: Database,
        users: CredentialStore,
        tokens: VerificationTokenRepository,
        email_sender: EmailSender,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.db = db
        self.users = users
        self.tokens = tokens
        self.email_sender = email_sender
        self.settings = settings or get_settings()
        self._clock = clock
        self._user_locks = _KeyedLocks()

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, email: str, username: str, password: str) -> PublicUser:
        """Create an unverified USER account and email it a verification link.

        Returns the public view. Deliberately issues no session token.
        """
        start = time.perf_counter()
        email = email.strip().lower()

        # Both duplicate checks complete before any write.
        if self.users.exists_by_email(email):
            log_event(logger, logging.INFO, "Registration rejected", reason="duplicate_email", duration_ms=_elapsed_ms(start))
            raise DuplicateEmailError()
        if self.users.exists_by_username(username):
            log_event(
                logger, logging.INFO, "Registration rejected", reason="duplicate_username", duration_ms=_elapsed_ms(start)
            )
            raise DuplicateUsernameError()

        hashed = hash_password(password)

        try:
            with self.db.transaction():
                user_id = self.users.create_user(
                    User(email=email, username=username, hashed_password=hashed, role=UserRole.USER)
                )
                user = self.users.get_by_id(user_id)
                self._issue_verification(user)
        except IntegrityError as exc:
            # A concurrent registration took the email or username between the
            # existence checks and the insert.
            log_event(logger, logging.INFO, "Registration rejected", reason="concurrent_duplicate")
            if self.users.exists_by_email(email):
                raise DuplicateEmailError() from exc
            raise DuplicateUsernameError() from exc

        log_event(logger, logging.INFO, "User registered", user_id=user.id, duration_ms=_elapsed_ms(start))
        return PublicUser.from_user(user)

    def login(self, email: str, password: str) -> LoginResult:
        """Check credentials and issue a session token for a verified user."""
        start = time.perf_counter()
        email = email.strip().lower()

        user = authenticate_user(self.users, email, password)
        if user is None:
            log_event(logger, logging.INFO, "Login failed", reason="invalid_credentials", duration_ms=_elapsed_ms(start))
            raise InvalidCredentialsError()

        if not user.email_verified:
            log_event(
                logger,
                logging.INFO,
                "Login failed",
                reason="email_not_verified",
                user_id=user.id,
                duration_ms=_elapsed_ms(start),
            )
            raise EmailNotVerifiedError()

        expires_in = self.settings.token_expire_seconds
        token = create_access_token(user.id, user.email, user.role.value, expire_seconds=expires_in)
        log_event(logger, logging.INFO, "Login succeeded", reason="ok", user_id=user.id, duration_ms=_elapsed_ms(start))
        return LoginResult(access_token=token, user=PublicUser.from_user(user), expires_in=expires_in)

    def get_current_user(self, user_id: int) -> PublicUser:
        """Return the public view of a live user. The session already proved identity."""
        user = self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError()
        return PublicUser.from_user(user)

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def verify_email(self, token: str) -> PublicUser:
        """Consume a verification token and mark its user's email verified."""
        record = self.tokens.find_by_token(token)
        if record is None:
            log_event(logger, logging.INFO, "Verification rejected", reason="invalid_token")
            raise InvalidVerificationTokenError()
        if record.is_verified():
            log_event(logger, logging.INFO, "Verification rejected", reason="already_verified", user_id=record.user_id)
            raise AlreadyVerifiedError()
        now = self._clock()
        if record.is_expired(now):
            log_event(logger, logging.INFO, "Verification rejected", reason="token_expired", user_id=record.user_id)
            raise VerificationTokenExpiredError()

        with self.db.transaction():
            user = self.users.get_by_id(record.user_id)
            if user is None:
                # Owner was soft-deleted after the token was issued.
                raise InvalidVerificationTokenError()
            if not self.tokens.mark_verified(record.id, now):
                raise AlreadyVerifiedError()
            user.email_verified = True
            self.users.save(user)

        log_event(logger, logging.INFO, "Email verified", user_id=user.id)
        return PublicUser.from_user(user)

    def resend_verification(self, identifier: Union[int, str]) -> None:
        """Replace the user's verification token and email the new one.

        identifier is a user id (int) or an email address (str, any case).
        """
        if isinstance(identifier, int):
            user = self.users.get_by_id(identifier)
        else:
            user = self.users.get_by_email(identifier.strip().lower())
        if user is None:
            raise UserNotFoundError()
        if user.email_verified:
            raise AlreadyVerifiedError()

        self._issue_verification(user)
        log_event(logger, logging.INFO, "Verification email resent", user_id=user.id)

    def _issue_verification(self, user: User) -> EmailVerificationToken:
        """Supersede all earlier tokens for the user, store a fresh one, and email it.

        Joins the caller's transaction when there is one (register), otherwise
        opens its own (resend).
        """
        with self._user_locks.hold(user.id), self.db.transaction():
            removed = self.tokens.delete_all_for_user(user.id)
            now = self._clock()
            record = EmailVerificationToken(
                token=generate_verification_token(),
                user_id=user.id,
                expires_at=now + timedelta(hours=self.settings.verification_token_hours),
                created_at=now,
            )
            record.id = self.tokens.save(record)
            self.email_sender.send_verification(user.email, user.username, record.token)

        log_event(logger, logging.DEBUG, "Verification token issued", user_id=user.id, superseded=removed)
        return record
