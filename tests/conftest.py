"""
tests/conftest.py -- Shared test fixtures for TodoVault integration tests.

This module provides:
  - make_stores(): isolated named shared-memory DBs for users + todos
  - build_app(): create_app() wired with test Settings and those stores
  - register() / bearer(): create an account directly in the store and mint
    an Authorization header for it, without going through the HTTP routes
  - api_client: development-mode TestClient (errors carry a debug block)
  - prod_client: production-mode TestClient with raise_server_exceptions=False
    so 500 responses can be asserted on instead of re-raised
  - account: a fresh user and its headers, per test

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each
build gets a uuid-suffixed name so modules never see each other's rows.

The DEBUG env var must be set before any core import so a bare Settings()
(asgi.py, get_settings()) auto-generates SECRET_KEY instead of raising.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import create_app
from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password, sign
from core.config import Settings
from todos.store import TodoStore

SECRET_KEY = "test-secret-key-0123456789abcdef0123456789abcdef"
PASSWORD = "correct-horse-battery"

# ---------------------------------------------------------------------------
# Store and app helpers
# ---------------------------------------------------------------------------


def memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_stores(prefix: str) -> tuple[UserStore, TodoStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        prefix: Readable part of the DB name (e.g. 'api', 'prod').
    """
    return UserStore(memory_url(f"users_{prefix}")), TodoStore(memory_url(f"todos_{prefix}"))


def _boom() -> None:
    raise RuntimeError("database password is hunter2")


def build_app(
    prefix: str,
    *,
    debug: bool = True,
    rate_limit_enabled: bool = False,
) -> tuple[FastAPI, UserStore, TodoStore]:
    """Return (app, user_store, todo_store) for a fully wired test app.

    The app carries one extra route, GET /api/v1/_boom, that raises an
    unexpected exception so the non-operational path can be exercised.
    """
    user_store, todo_store = make_stores(prefix)
    settings = Settings(
        debug=debug,
        secret_key=SECRET_KEY,
        cors_origins=["http://localhost:3000"],
        rate_limit_enabled=rate_limit_enabled,
    )
    app = create_app(settings, user_store=user_store, todo_store=todo_store)
    app.add_api_route("/api/v1/_boom", _boom, methods=["GET"])
    return app, user_store, todo_store


def register(user_store: UserStore, name: str = "Ada Lovelace", password: str = PASSWORD) -> User:
    """Create a user with a unique email straight through the store."""
    email = f"user-{uuid.uuid4().hex[:12]}@example.com"
    user_id = user_store.create_user(User(name=name, email=email), hash_password(password))
    user = user_store.get_by_id(user_id)
    assert user is not None
    return user


def bearer(user_id: str, ttl_seconds: int = 3600) -> dict[str, str]:
    return {"Authorization": f"Bearer {sign(user_id, SECRET_KEY, ttl_seconds)}"}


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, UserStore, TodoStore], None, None]:
    """Yield (client, user_store, todo_store) for a development-mode app.

    Rate limiting is disabled so the many signup/login calls across a module
    do not trip the auth budget; tests/test_rate_limit.py covers it.
    """
    app, user_store, todo_store = build_app("api")
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store, todo_store
    user_store.close()
    todo_store.close()


@pytest.fixture(scope="module")
def prod_client() -> Generator[tuple[TestClient, UserStore, TodoStore], None, None]:
    """Yield (client, user_store, todo_store) for a production-mode app."""
    app, user_store, todo_store = build_app("prod", debug=False)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, user_store, todo_store
    user_store.close()
    todo_store.close()


@pytest.fixture
def limited_client() -> Generator[TestClient, None, None]:
    """TestClient for an app with rate limiting on, counters reset around it.

    The limiter is a process-wide singleton, so it is switched back off on
    teardown before any other fixture's client sends a request.
    """
    app, user_store, todo_store = build_app("limited", rate_limit_enabled=True)
    limiter.reset()
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client
    limiter.reset()
    limiter.enabled = False
    user_store.close()
    todo_store.close()


@pytest.fixture
def account(api_client: tuple[TestClient, UserStore, TodoStore]) -> tuple[User, dict[str, str]]:
    """A fresh user in the api_client app and its Authorization header."""
    _client, user_store, _todos = api_client
    user = register(user_store)
    return user, bearer(user.id)
