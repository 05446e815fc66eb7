"""
api/routes/v1/auth.py -- Registration, login, and email verification endpoints.

Routes:
  POST /api/v1/auth/register                    -- create account; 201, no session
  POST /api/v1/auth/login                       -- password login; sets session cookie
  POST /api/v1/auth/logout                      -- clears session cookie; 204
  GET  /api/v1/auth/me                          -- current user (requires session)
  POST /api/v1/auth/verify-email?token=...      -- consume verification token
  POST /api/v1/auth/resend-verification?email=  -- issue a fresh token; 204

Security:
  POST /login is rate-limited per IP (Settings.login_rate_limit).
  AuthService.login() gives the same error for unknown email and wrong password.
  Cache-Control: no-store on login responses.

Handlers only translate HTTP <-> service calls. Every failure is a
LorekeeperError raised by AuthService and rendered by api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, RegisterRequest, UserResponse
from auth.cookies import attach_session_cookie, clear_session_cookie
from auth.dependencies import get_current_principal
from auth.models import Principal
from auth.service import AuthService
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:            public
# - POST /api/v1/auth/login:               public, rate-limited
# - POST /api/v1/auth/logout:              public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:                  requires session (get_current_principal)
# - POST /api/v1/auth/verify-email:        public -- the token is the credential
# - POST /api/v1/auth/resend-verification: public
router = APIRouter()


def _auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(body: RegisterRequest, service: AuthService = Depends(_auth_service)) -> UserResponse:
    """Create an unverified account and send the verification email.

    No session cookie is set: the account cannot log in until verified.
    """
    user = service.register(body.email, body.username, body.password)
    return UserResponse.from_public(user)


@limiter.limit(get_settings().login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the session cookie."""
    result = _auth_service(request).login(body.email, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.access_token,
            token_type=result.token_type,
            expires_in=result.expires_in,
            user=UserResponse.from_public(result.user),
        ).model_dump(),
    )
    attach_session_cookie(resp, result.access_token, expire_seconds=result.expires_in)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", status_code=204)
def logout() -> Response:
    """Clear the session cookie. The token itself stays valid until it expires."""
    resp = Response(status_code=204)
    clear_session_cookie(resp)
    return resp


@router.get("/auth/me", response_model=UserResponse)
def me(
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(_auth_service),
) -> UserResponse:
    """Return the currently authenticated user."""
    return UserResponse.from_public(service.get_current_user(principal.user_id))


@router.post("/auth/verify-email", response_model=UserResponse)
def verify_email(
    token: str = Query(min_length=1, max_length=128),
    service: AuthService = Depends(_auth_service),
) -> UserResponse:
    """Mark the token's user as verified. Each token works exactly once."""
    return UserResponse.from_public(service.verify_email(token))


@router.post("/auth/resend-verification", status_code=204)
def resend_verification(
    email: str = Query(min_length=1, max_length=255),
    service: AuthService = Depends(_auth_service),
) -> Response:
    """Replace the user's verification token and email the new one.

    Every earlier token for the user stops working.
    """
    service.resend_verification(email)
    return Response(status_code=204)
