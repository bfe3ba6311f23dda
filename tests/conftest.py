"""
tests/conftest.py -- Shared test fixtures for pkgfeed.

This module provides:
  - user_store / registry: isolated in-memory stores, one pair per test
  - github: a fake GitHub OAuth client with scripted code -> identity answers
  - client: TestClient over the real app with a patched lifespan that wires
    the three fixtures above into app.state
  - make_user: helper that reconciles a user straight through the store

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. Each test gets a uuid-suffixed name so state never leaks between
tests.

The DEBUG env var must be set before any core/auth import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import ExternalIdentity, User
from auth.oauth import OAuthExchangeError
from auth.store import UserStore
from registry.store import RegistryStore

# ---------------------------------------------------------------------------
# Fake OAuth provider
# ---------------------------------------------------------------------------


class FakeGitHub:
    """Stands in for auth.oauth.GitHubOAuth. No network.

    Register the identity a code should resolve to in `identities`; any other
    code fails the way GitHub fails a bad or reused code. `exchanged` records
    every code that reached the provider.
    """

    def __init__(self) -> None:
        self.identities: dict[str, ExternalIdentity] = {}
        self.exchanged: list[str] = []

    def authorization_url(self, state: str) -> str:
        return f"https://github.com/login/oauth/authorize?client_id=test-client&scope=read%3Aorg&state={state}"

    async def exchange_code(self, code: str) -> ExternalIdentity:
        self.exchanged.append(code)
        try:
            return self.identities[code]
        except KeyError:
            raise OAuthExchangeError("bad_verification_code") from None


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


def _shared_memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore(db_url=_shared_memory_url("test_auth"))
    yield store
    store.close()


@pytest.fixture
def registry() -> Generator[RegistryStore, None, None]:
    store = RegistryStore(db_url=_shared_memory_url("test_registry"))
    yield store
    store.close()


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def make_user(user_store: UserStore) -> Callable[..., User]:
    """Return a factory: make_user("foo") reconciles a user with login foo.

    gh_id is derived from a counter so every call creates a distinct account.
    """
    counter = {"gh_id": 1000}

    def _make(login: str, email: str | None = None) -> User:
        counter["gh_id"] += 1
        return user_store.reconcile(counter["gh_id"], login, email, None, None, f"gho_{login}")

    return _make


# ---------------------------------------------------------------------------
# App fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, registry: RegistryStore, github: FakeGitHub):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores and the fake provider into app.state so
    TestClient routes see isolated test DBs and never call GitHub.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.registry = registry
        app.state.oauth = github
        yield

    return test_lifespan


@pytest.fixture
def client(
    user_store: UserStore, registry: RegistryStore, github: FakeGitHub
) -> Generator[TestClient, None, None]:
    """TestClient over the real app, backed by this test's stores."""
    app.router.lifespan_context = _patch_lifespan(user_store, registry, github)
    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client
