"""
api/main.py -- FastAPI application entry point for Lorekeeper.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests       -- one access-log line per request
  2. CORSMiddleware     -- CORS headers for the configured frontend origins,
                           credentials allowed so the session cookie travels
  3. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan builds the shared Database, the stores, the email sender and the
services, and parks them on app.state for the route dependencies. Shutdown
disposes the engine.

Error mapping: services raise core.errors.LorekeeperError subclasses. The one
handler below turns each error code into its HTTP status and the shared
ErrorResponse envelope. core/ stays free of FastAPI.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.entities import router as entities_router
from api.routes.v1.projects import router as projects_router
from auth.service import AuthService, EmailSender
from auth.store import UserStore, VerificationTokenStore
from core.config import Settings, get_settings
from core.db import Database
from core.errors import LorekeeperError
from notify.email import build_email_sender
from worlds.service import EntityService, ProjectService
from worlds.store import WorldStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("lorekeeper.api")

# ---------------------------------------------------------------------------
# Error code -> HTTP status
# ---------------------------------------------------------------------------

_STATUS_BY_CODE: dict[str, int] = {
    "duplicate_email": 409,
    "duplicate_username": 409,
    "invalid_credentials": 401,
    "email_not_verified": 403,
    "user_not_found": 404,
    "invalid_token": 400,
    "token_expired": 400,
    "already_verified": 409,
    "access_denied": 403,
    "not_found": 404,
    "project_has_entities": 409,
    "invalid_session": 401,
    "hashing_error": 500,
    "email_delivery_failed": 502,
}


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def init_app_state(
    app: FastAPI,
    db: Database,
    email_sender: Optional[EmailSender] = None,
    settings: Optional[Settings] = None,
) -> None:
    """Build stores and services on top of db and attach them to app.state.

    Shared by the real lifespan and the test fixtures, which pass their own
    in-memory Database and a recording email sender.
    """
    settings = settings or get_settings()
    app.state.db = db
    app.state.user_store = UserStore(db)
    app.state.token_store = VerificationTokenStore(db)
    app.state.world_store = WorldStore(db)
    app.state.email_sender = email_sender or build_email_sender(settings)
    app.state.auth_service = AuthService(
        db,
        app.state.user_store,
        app.state.token_store,
        app.state.email_sender,
        settings,
    )
    app.state.project_service = ProjectService(app.state.world_store)
    app.state.entity_service = EntityService(app.state.world_store)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the database and build the services on startup; dispose the engine on shutdown."""
    settings = get_settings()
    logger.info("Lorekeeper API starting up (debug=%s)", settings.debug)
    db = Database(settings.database_url)
    init_app_state(app, db, settings=settings)
    logger.info("Email sender: %s", type(app.state.email_sender).__name__)

    yield

    db.close()
    logger.info("Lorekeeper API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Lorekeeper API",
    description="Worldbuilding projects and entities behind verified, cookie-based sessions.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette makes the LAST added middleware the outermost, so register from
# the inside out: SlowAPI, then CORS. log_requests is added after both and
# wraps them.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(projects_router, prefix="/api/v1", tags=["Projects"])
app.include_router(entities_router, prefix="/api/v1", tags=["Entities"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(LorekeeperError)
async def domain_error_handler(request: Request, exc: LorekeeperError) -> JSONResponse:
    """Render a service-layer error with the status its code maps to."""
    status = _STATUS_BY_CODE.get(exc.code, 400)
    if status >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.detail or exc.message)
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                # Internal detail of server-side failures stays in the log.
                detail=exc.detail if status < 500 else None,
            )
        ).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Dependencies raise HTTPException with a dict detail ({"code", "message"});
    use it directly as the error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The traceback goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit and no authentication.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    db: Optional[Database] = getattr(request.app.state, "db", None)
    database = "ok" if db is not None and db.ping() else "error"
    return HealthResponse(version=VERSION, database=database)
