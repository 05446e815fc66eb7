"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two places a session token can come from, checked in priority order:
  1. Session cookie (Settings.session_cookie_name) -- set by POST /auth/login.
  2. Authorization: Bearer <token> header -- API clients that keep the token
     returned in the login response body themselves.

Both converge on a Principal (user id, email, role) decoded from the token.
The user the token names must still exist: a soft-deleted account loses
access immediately, not when its token expires.

get_optional_principal() is the soft variant (returns None when there is no
token at all). get_current_principal() raises HTTP 401 when unauthenticated.
A token that is present but fails verification is always an error, never
treated as anonymous.

Layer rule: no imports from api/, worlds/, or notify/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from auth.cookies import extract_session_token
from auth.models import Principal
from auth.tokens import decode_access_token
from core.errors import InvalidSessionTokenError


def _token_from_request(request: Request) -> Optional[str]:
    token = extract_session_token(request)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_optional_principal(request: Request) -> Optional[Principal]:
    """Return the caller's Principal, or None when the request carries no token.

    Raises InvalidSessionTokenError (mapped to 401 by api/main.py) when a
    token is present but its signature, claims, or expiry do not check out,
    or when the user it names no longer exists.
    """
    token = _token_from_request(request)
    if token is None:
        return None
    principal = decode_access_token(token)
    if request.app.state.user_store.get_by_id(principal.user_id) is None:
        raise InvalidSessionTokenError(detail="user no longer exists")
    return principal


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = get_optional_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return principal
