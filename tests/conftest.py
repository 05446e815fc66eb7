"""
tests/conftest.py -- Shared test fixtures for Lorekeeper unit and integration tests.

This module provides:
  - RecordingEmailSender: captures verification emails instead of sending them
  - FakeClock: a settable clock for expiry-boundary tests
  - db / stores / auth_service / world services: fresh in-memory state per test
  - api_client: TestClient over the real app with a patched lifespan
  - register_and_verify() / login(): helpers for integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
TestClient because route handlers run in a thread pool. Plain :memory: DBs are
per-connection and would present a blank schema to each worker thread. The
named URI format (file:name?mode=memory&cache=shared&uri=true) shares one
in-memory instance across all connections in the same process. Unit tests run
on one thread and use plain :memory:.

DEBUG must be set before any auth/core import so get_settings() auto-generates
SECRET_KEY in dev mode rather than raising ValueError. The login rate limit is
raised so the suite's many logins never trip it.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

# CRITICAL: Set these before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, init_app_state
from auth.service import AuthService
from auth.store import UserStore, VerificationTokenStore
from core.config import get_settings
from core.db import Database
from core.errors import EmailDeliveryError
from worlds.service import EntityService, ProjectService
from worlds.store import WorldStore

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@dataclass
class SentEmail:
    to_email: str
    display_name: str
    token: str


class RecordingEmailSender:
    """EmailSender that keeps every message in memory.

    Set fail=True to make the next sends raise EmailDeliveryError, the same
    error the SMTP sender raises when delivery fails.
    """

    def __init__(self) -> None:
        self.sent: list[SentEmail] = []
        self.fail = False

    def send_verification(self, to_email: str, display_name: str, token: str) -> None:
        if self.fail:
            raise EmailDeliveryError(detail="recording sender set to fail")
        self.sent.append(SentEmail(to_email, display_name, token))

    def last_token_for(self, email: str) -> str:
        for message in reversed(self.sent):
            if message.to_email == email:
                return message.token
        raise AssertionError(f"no verification email sent to {email}")


class FakeClock:
    """Callable clock; starts at a fixed instant and only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit-test fixtures (function scoped, fresh DB each test)
# ---------------------------------------------------------------------------


@pytest.fixture
def db() -> Generator[Database, None, None]:
    database = Database("sqlite:///:memory:")
    yield database
    database.close()


@pytest.fixture
def user_store(db: Database) -> UserStore:
    return UserStore(db)


@pytest.fixture
def token_store(db: Database) -> VerificationTokenStore:
    return VerificationTokenStore(db)


@pytest.fixture
def world_store(db: Database, user_store: UserStore) -> WorldStore:
    return WorldStore(db)


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def auth_service(
    db: Database,
    user_store: UserStore,
    token_store: VerificationTokenStore,
    email_sender: RecordingEmailSender,
    clock: FakeClock,
) -> AuthService:
    return AuthService(db, user_store, token_store, email_sender, get_settings(), clock=clock)


@pytest.fixture
def project_service(world_store: WorldStore) -> ProjectService:
    return ProjectService(world_store)


@pytest.fixture
def entity_service(world_store: WorldStore) -> EntityService:
    return EntityService(world_store)


# ---------------------------------------------------------------------------
# Integration fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(db: Database, email_sender: RecordingEmailSender):
    """Return an async context manager that replaces the real lifespan.

    Wires an isolated in-memory Database and the recording email sender into
    app.state so routes never touch the real database or SMTP.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_app_state(app, db, email_sender=email_sender)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, RecordingEmailSender], None, None]:
    """Yield (client, email_sender) backed by a module-private in-memory DB."""
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    database = Database(f"sqlite:///file:lorekeeper_{suffix}?mode=memory&cache=shared&uri=true")
    sender = RecordingEmailSender()
    app.router.lifespan_context = _patch_lifespan(database, sender)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, sender

    database.close()


def register_and_verify(
    client: TestClient,
    sender: RecordingEmailSender,
    email: str,
    username: str,
    password: str = "correct-horse-1",
) -> dict:
    """Register through the API and consume the emailed token. Returns the verified user JSON."""
    resp = client.post("/api/v1/auth/register", json={"email": email, "username": username, "password": password})
    assert resp.status_code == 201, resp.text
    token = sender.last_token_for(email.lower())
    resp = client.post("/api/v1/auth/verify-email", params={"token": token})
    assert resp.status_code == 200, resp.text
    return resp.json()


def login(client: TestClient, email: str, password: str = "correct-horse-1") -> dict[str, str]:
    """Log in and return Bearer headers for the session.

    The cookie jar is cleared afterwards: the cookie takes priority over the
    header, and tests that switch between users must not inherit one.
    """
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
