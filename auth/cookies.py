"""
auth/cookies.py -- Session transport: the session token travels in one cookie.

attach_session_cookie() / clear_session_cookie() only write a Set-Cookie
header; extract_session_token() only reads the Cookie header. None of them
touch persistent state.

Cookie attributes:
  httponly=True       JS cannot read the cookie (XSS mitigation). Always on.
  samesite="strict"   never sent on cross-site requests (CSRF mitigation).
  secure              Settings.secure_cookies -- off in development, on in
                      production unless overridden.
  path="/"            sent to every API route.
  max_age             matches the JWT lifetime so both expire together.

Layer rule: no imports from api/, worlds/, or notify/. Works with any
Starlette-compatible request/response object.
"""

from __future__ import annotations

from typing import Optional

from core.config import get_settings

_settings = get_settings()

SESSION_COOKIE_NAME: str = _settings.session_cookie_name


def attach_session_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the session token as an HttpOnly, SameSite=Strict cookie on the response.

    Args:
        response:       FastAPI/Starlette response object.
        token:          Encoded JWT string.
        expire_seconds: Cookie max_age in seconds. If 0 (default), uses
                        Settings.token_expire_seconds. Pass the same value
                        used in create_access_token() to keep cookie and
                        token expiry in sync.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value=token,
        max_age=duration,
        path="/",
        httponly=True,
        samesite="strict",
        secure=bool(_settings.secure_cookies),
    )


def extract_session_token(request) -> Optional[str]:
    """Return the session token from the request cookies, or None when absent.

    An empty cookie value (what clear_session_cookie() leaves behind on
    clients that keep it) counts as absent.
    """
    token = request.cookies.get(SESSION_COOKIE_NAME)
    return token or None


def clear_session_cookie(response) -> None:
    """Overwrite the session cookie with an empty value and Max-Age=0.

    Same name, path and security attributes as attach_session_cookie() so the
    browser matches and drops the existing cookie immediately.
    """
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value="",
        max_age=0,
        path="/",
        httponly=True,
        samesite="strict",
        secure=bool(_settings.secure_cookies),
    )
