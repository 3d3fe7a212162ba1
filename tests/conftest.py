"""
tests/conftest.py -- Shared test fixtures for TodoManager.

This module provides:
  - _make_test_stores(): isolated shared-memory DBs for identity + tasks
  - _patch_lifespan(): wires test stores and services into app.state,
    bypassing the real startup (which would open the on-disk database)
  - api_client: module-scoped TestClient against the real app
  - register_and_login: factory that creates a user over HTTP and returns
    bearer headers for it
  - user_store / task_store / task_service: unit-level fixtures on plain
    sqlite:///:memory:

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient fixtures because sync route handlers run in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread. Unit fixtures stay on one thread, so :memory: is fine.

DEBUG and RATE_LIMIT_ENABLED must be set before any api/auth/core import:
get_settings() is cached on first call and api.limiter reads it at import.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any app import so get_settings() auto-generates
# SECRET_KEY in dev mode and the shared limiter starts disabled.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import RoleName, User
from auth.seed import seed_defaults
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService, hash_password
from core.config import Settings, get_settings
from todo.service import TaskService
from todo.store import TaskStore

TEST_PASSWORD = "Secret#123"
ADMIN_PASSWORD = "Adm1n#Pass"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, TaskStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (the calling module's name).
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    todo_url = f"sqlite:///file:test_todo_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), TaskStore(db_url=todo_url)


def _test_settings() -> Settings:
    # Same signing key as the running app; only the seeded admin differs.
    return get_settings().model_copy(update={"admin_password": ADMIN_PASSWORD})


def _patch_lifespan(user_store: UserStore, task_store: TaskStore):
    """Return an async context manager that replaces the real lifespan.

    Seeds roles plus an admin account (password ADMIN_PASSWORD) so the
    registration path has its User role and login tests have a known user.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = _test_settings()
        seed_defaults(user_store, settings)
        app.state.user_store = user_store
        app.state.task_store = task_store
        app.state.token_service = TokenService(settings)
        app.state.auth_service = AuthService(user_store, app.state.token_service)
        app.state.task_service = TaskService(task_store, user_store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with isolated in-memory stores."""
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, task_store = _make_test_stores(suffix)

    app.router.lifespan_context = _patch_lifespan(user_store, task_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    task_store.close()
    user_store.close()


@pytest.fixture(scope="module")
def register_and_login(api_client: TestClient) -> Callable[..., dict[str, str]]:
    """Return a function that registers a user and returns its bearer headers.

    Usernames must be unique within a test module; the DB lives for the
    whole module.
    """

    def _register_and_login(username: str, password: str = TEST_PASSWORD) -> dict[str, str]:
        body = {
            "userName": username,
            "firstName": username.capitalize(),
            "lastName": "Tester",
            "email": f"{username}@example.com",
            "password": password,
            "confirmPassword": password,
        }
        resp = api_client.post("/api/auth/register", json=body)
        assert resp.status_code == 200, resp.text
        resp = api_client.post("/api/auth/login", json={"userName": username, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['data']['token']}"}

    return _register_and_login


# ---------------------------------------------------------------------------
# Unit fixtures -- plain in-memory SQLite, single thread
# ---------------------------------------------------------------------------


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore(db_url="sqlite:///:memory:")
    for role in RoleName:
        store.ensure_role(role.value)
    yield store
    store.close()


@pytest.fixture
def task_store() -> Generator[TaskStore, None, None]:
    store = TaskStore(db_url="sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def task_service(user_store: UserStore, task_store: TaskStore) -> TaskService:
    """TaskService with two identities, alice and bob, already present."""
    for name in ("alice", "bob"):
        user_id = user_store.create_user(User(username=name, hashed_password=hash_password(TEST_PASSWORD)))
        user_store.add_to_role(user_id, RoleName.USER.value)
    return TaskService(task_store, user_store)


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(Settings(secret_key="k" * 40, debug=False))
