"""
tests/conftest.py -- Shared test fixtures for the admin auth service.

This module provides:
  - RecordingNotifier / RecordingEvents: fakes that capture dispatches
  - make_context(): an AuthContext over an isolated in-memory database
  - make_user(): inserts a user with a known password
  - ctx: AuthContext fixture for unit tests of the flows
  - api: (TestClient, AuthContext) with the lifespan patched to use ctx

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because the identity provider runs bcrypt in a worker thread and TestClient
runs sync route handlers in a thread pool. Plain :memory: DBs are
per-connection and would present a blank schema to each worker thread. Each
context gets a unique name so tests never share state.

The DEBUG env var must be set before any api/ import so get_settings()
auto-generates SECRET_KEY in dev mode.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of refusing to start.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.context import AuthContext
from auth.identity import LocalIdentityProvider
from auth.models import User
from auth.sessions import PendingSessionStore
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import Settings, get_settings
from core.events import Telemetry

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"
PASSWORD = "Passw0rdOK"

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class RecordingNotifier:
    def __init__(self) -> None:
        self.mfa_emails: list[dict] = []
        self.reset_emails: list[dict] = []

    async def send_multi_factor_authentication_email(self, user: dict, code: str) -> None:
        self.mfa_emails.append({"user": user, "code": code})

    async def send_forgot_password_email(self, user: dict, token: str) -> None:
        self.reset_emails.append({"user": user, "token": token})


class RecordingEvents:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def emit(self, name: str, payload: dict) -> None:
        self.events.append((name, payload))

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.events if n == name)

    def payloads(self, name: str) -> list[dict]:
        return [p for n, p in self.events if n == name]


class RecordingTelemetry(Telemetry):
    def __init__(self) -> None:
        self.sent: list[str] = []
        super().__init__(transport=self.sent.append)


# ---------------------------------------------------------------------------
# Context helpers
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> Settings:
    values = {"debug": True, "secret_key": TEST_SECRET}
    values.update(overrides)
    return Settings(**values)


def make_context(settings: Settings | None = None, seed_roles: bool = True) -> AuthContext:
    """Build an AuthContext over a fresh named shared-memory database."""
    settings = settings or make_settings()
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    users = UserStore(db_url)
    if seed_roles:
        users.ensure_default_roles()
    ctx = AuthContext(
        settings=settings,
        users=users,
        identity=LocalIdentityProvider(users),
        notifier=RecordingNotifier(),
        pending=PendingSessionStore(db_url, ttl=settings.mfa_session_ttl_seconds),
        events=RecordingEvents(),
        telemetry=RecordingTelemetry(),
    )
    return ctx


def close_context(ctx: AuthContext) -> None:
    ctx.pending.close()
    ctx.users.close()


def make_user(
    ctx: AuthContext,
    email: str = "admin@x.com",
    password: str = PASSWORD,
    is_active: bool = True,
    blocked: bool = False,
    role_code: str | None = "strapi-super-admin",
) -> User:
    role_ids = [ctx.users.get_role_by_code(role_code).id] if role_code else []
    return ctx.users.create_user(
        User(
            email=email,
            firstname="Ada",
            lastname="Admin",
            hashed_password=hash_password(password),
            is_active=is_active,
            blocked=blocked,
        ),
        role_ids=role_ids,
    )


def run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ctx() -> Generator[AuthContext, None, None]:
    context = make_context()
    yield context
    close_context(context)


def _patch_lifespan(context: AuthContext):
    """Return an async context manager that replaces the real lifespan.

    Wires the test AuthContext into app.state so TestClient routes see an
    isolated database and the recording fakes.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth = context
        yield

    return test_lifespan


@pytest.fixture
def api() -> Generator[tuple[TestClient, AuthContext], None, None]:
    """Yield (client, ctx) for HTTP integration tests.

    The context uses get_settings() so tokens are signed with the same
    settings the app was built with. base_url uses localhost to satisfy
    TrustedHostMiddleware.
    """
    context = make_context(settings=get_settings())
    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(context)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, context

    close_context(context)
