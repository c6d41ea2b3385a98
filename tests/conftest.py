"""
tests/conftest.py -- Shared test fixtures for AI Tools Platform tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for auth + catalog
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient over the full app (asgi.app: API + web routes) with seeded users
  - web_client: same, with follow_redirects=False for browser flow tests
  - login: helper fixture that performs an API login and returns the token
  - user_store: standalone in-memory store for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import itertools
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DATABASE_URL", "sqlite:///file:aitools_test_default?mode=memory&cache=shared&uri=true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from asgi import app
from auth.gateway import AuthGateway
from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password
from catalog.store import CatalogStore

PASSWORD = "password"

# (name, email, role, is_active)
SEED_USERS = [
    ("Test User", "test@example.com", "owner", True),
    ("Frontend Dev", "frontend@example.com", "frontend", True),
    ("Project Manager", "pm@example.com", "pm", True),
    ("Basic User", "basic@example.com", "user", True),
    ("Disabled Dev", "disabled@example.com", "backend", False),
]

_db_counter = itertools.count()


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _memory_url(name: str) -> str:
    return f"sqlite:///file:{name}_{next(_db_counter)}?mode=memory&cache=shared&uri=true"


def _make_test_stores(db_suffix: str) -> tuple[UserStore, CatalogStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string in the DB name so test modules don't share
                   state (e.g. 'api', 'web').
    """
    user_store = UserStore(db_url=_memory_url(f"test_auth_{db_suffix}"))
    catalog = CatalogStore(db_url=_memory_url(f"test_catalog_{db_suffix}"))
    return user_store, catalog


def _seed_users(store: UserStore) -> dict[str, int]:
    ids = {}
    hashed = hash_password(PASSWORD)
    for name, email, role, is_active in SEED_USERS:
        ids[email] = store.create_user(
            User(name=name, email=email, role=role, hashed_password=hashed, is_active=is_active)
        )
    return ids


def _patch_lifespan(user_store: UserStore, catalog: CatalogStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the production database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.gateway = AuthGateway(user_store)
        app.state.catalog = catalog
        yield

    return test_lifespan


@dataclass
class AppHarness:
    client: TestClient
    user_store: UserStore
    catalog: CatalogStore
    user_ids: dict[str, int]


def _harness(db_suffix: str, **client_kwargs) -> Generator[AppHarness, None, None]:
    user_store, catalog = _make_test_stores(db_suffix)
    user_ids = _seed_users(user_store)
    app.router.lifespan_context = _patch_lifespan(user_store, catalog)
    with TestClient(app, raise_server_exceptions=True, **client_kwargs) as client:
        yield AppHarness(client=client, user_store=user_store, catalog=catalog, user_ids=user_ids)
    catalog.close()
    user_store.close()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """Login is rate-limited per IP; every test starts with a fresh budget."""
    limiter.reset()


@pytest.fixture(scope="module")
def api_client() -> Generator[AppHarness, None, None]:
    """Full app over isolated stores, seeded with one user per SEED_USERS row."""
    yield from _harness("api")


@pytest.fixture(scope="module")
def web_client() -> Generator[AppHarness, None, None]:
    """Like api_client, but redirects are returned instead of followed.

    Browser flow tests assert on redirect Location headers and Set-Cookie
    values, which are invisible once the client follows the redirect.
    """
    yield from _harness("web", follow_redirects=False)


@pytest.fixture
def login(api_client: AppHarness) -> Callable[..., str]:
    """Return a function that logs in over the API and returns the bearer token."""

    def _login(email: str = "test@example.com", password: str = PASSWORD) -> str:
        resp = api_client.client.post("/api/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()["token"]

    return _login


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    """Standalone store with the seed users, for unit tests below the HTTP layer."""
    store = UserStore(db_url=_memory_url("test_unit_auth"))
    _seed_users(store)
    yield store
    store.close()


@pytest.fixture
def catalog() -> Generator[CatalogStore, None, None]:
    store = CatalogStore(db_url=_memory_url("test_unit_catalog"))
    yield store
    store.close()
