"""
auth/tokens.py -- Password hashing, session-token signing, and verification-token generation.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (user id), email, role, iat and exp. decode_access_token() lets
       jose check the signature and expiry before any claim is read, and
       raises InvalidSessionTokenError on any failure -- the dependency layer
       turns that into a 401. There is no revocation list: a token is valid
       purely by signature + expiry.

  Passwords: bcrypt directly (no passlib wrapper). Per-hash random salt is
       embedded in the output. A rejected input (None, over-long) raises
       PasswordHashingError; a wrong password is simply verify() == False.
       The _DUMMY_HASH constant enables timing equalization in
       authenticate_user() so response time does not reveal whether an
       email is registered.

  Verification tokens: secrets.token_urlsafe(32) -- 256 bits of entropy. The
       token is stored as-is; it is single-use and store-backed, so it needs
       no signature of its own.

  SECRET_KEY: sourced from core.config.get_settings(). The Settings class
       validates the key at startup, so a misconfigured signer stops the
       process before the first request.

Layer rule: no imports from api/, worlds/, or notify/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import Principal
from core.config import get_settings
from core.errors import InvalidSessionTokenError, PasswordHashingError

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("lorekeeper.auth.tokens")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: Optional[str]) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt only considers the first 72 bytes; the API layer caps passwords at
    72 characters and newer bcrypt releases reject longer input outright, which
    surfaces here as PasswordHashingError.
    """
    if plain is None:
        raise PasswordHashingError("Password must not be null.")
    try:
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
    except (TypeError, ValueError) as exc:
        raise PasswordHashingError(detail=str(exc)) from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (TypeError, ValueError):
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Always call verify_password() even when the
# email does not exist -- bcrypt's constant work factor equalizes timing.
_DUMMY_HASH: str = hash_password("lorekeeper_timing_dummy")


# ---------------------------------------------------------------------------
# Session tokens (JWT encode / decode)
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, email: str, role: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT with user identity and an absolute expiry.

    Args:
        user_id:        Numeric user ID, stored as the JWT subject claim.
        email:          Normalized (lower-case) email.
        role:           "USER" or "ADMIN".
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> Principal:
    """Verify a JWT and return the identity it carries.

    Signature and expiry are checked by jose before any claim is read. Raises
    InvalidSessionTokenError for bad signatures, expired tokens, wrong
    algorithms, and tokens missing sub/email/role.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise InvalidSessionTokenError("Session has expired.") from exc
    except JWTError as exc:
        raise InvalidSessionTokenError() from exc

    sub = payload.get("sub")
    if not sub or "email" not in payload or "role" not in payload:
        raise InvalidSessionTokenError()
    try:
        user_id = int(sub)
    except ValueError as exc:
        raise InvalidSessionTokenError() from exc
    return Principal(user_id=user_id, email=payload["email"], role=payload["role"])


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> Optional[User]:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure. The caller decides what
    to do about an unverified email -- that check happens only after the
    password has been proven.
    """
    user = store.get_by_email(email)
    if user is None:
        # Equalize timing -- do NOT return early before running bcrypt
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Email verification tokens
# ---------------------------------------------------------------------------


def generate_verification_token() -> str:
    """Return a fresh URL-safe opaque token (256 bits of entropy)."""
    return secrets.token_urlsafe(32)
