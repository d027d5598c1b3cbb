"""
tests/conftest.py -- Shared test fixtures for Blazing.

This module provides:
  - settings: an isolated Settings value (debug mode, fixed secret)
  - engine: a migrated SQLite database in tmp_path
  - github_profile / github_transport / provider: a GitHubProvider whose HTTP
    calls are answered by httpx.MockTransport instead of GitHub
  - web_client: TestClient with follow_redirects=False and a patched lifespan

Design: each test gets its own database file under tmp_path and its own
TestClient. TestClient keeps a cookie jar, so sharing one client across
tests would leak session and state cookies between them.

DEBUG and LOGIN_RATE_LIMIT are set before any project import so
get_settings() (used by the rate limiter) never raises and never throttles.
"""

from __future__ import annotations

import json
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace

# CRITICAL: set before any api/auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.limiter import limiter
from api.main import init_app_state
from asgi import app
from auth.oauth import GitHubProvider
from auth.session import SessionManager
from core.config import Settings, load_settings
from core.db import create_db_engine, sqlite_url
from core.migrations import apply_migrations

TEST_SECRET = "test-secret-key-that-is-long-enough"
TEST_CLIENT_ID = "test-client-id"
TEST_CLIENT_SECRET = "test-client-secret"
TEST_REDIRECT_URL = "http://testserver/auth/github/callback"


# ---------------------------------------------------------------------------
# Request doubles
# ---------------------------------------------------------------------------


def fake_request(cookies: dict | None = None, query: dict | None = None) -> SimpleNamespace:
    """Minimal stand-in for a Starlette Request: .cookies and .query_params mappings."""
    return SimpleNamespace(cookies=cookies or {}, query_params=query or {})


# ---------------------------------------------------------------------------
# Settings and storage
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path) -> Settings:
    return load_settings(
        debug=True,
        session_secret=TEST_SECRET,
        github_client_id=TEST_CLIENT_ID,
        github_client_secret=TEST_CLIENT_SECRET,
        github_redirect_url=TEST_REDIRECT_URL,
        db_path=str(tmp_path / "blazing.db"),
    )


@pytest.fixture
def engine(settings: Settings) -> Generator[Engine, None, None]:
    """A SQLite file database with the shipped migrations applied."""
    eng = create_db_engine(sqlite_url(settings.db_path))
    apply_migrations(eng, settings.migrations_dir)
    yield eng
    eng.dispose()


@pytest.fixture
def sessions() -> SessionManager:
    return SessionManager(TEST_SECRET)


# ---------------------------------------------------------------------------
# Fake GitHub
# ---------------------------------------------------------------------------


@pytest.fixture
def github_profile() -> dict:
    """The GET /user body the mock GitHub returns. Tests mutate it between logins."""
    return {"id": 12345, "login": "alice", "avatar_url": "https://x/a.png"}


@pytest.fixture
def github_transport(github_profile: dict) -> httpx.MockTransport:
    """Answer the token exchange and GET /user the way GitHub does.

    A code of "bad-code" makes the token endpoint answer with an OAuth error.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/login/oauth/access_token":
            if b"code=bad-code" in request.content:
                return httpx.Response(
                    400,
                    json={"error": "bad_verification_code", "error_description": "The code is incorrect."},
                )
            return httpx.Response(200, json={"access_token": "gho_test", "token_type": "bearer", "scope": "user:email"})
        if request.url.path == "/user":
            if request.headers.get("Authorization") != "Bearer gho_test":
                return httpx.Response(401, json={"message": "Requires authentication"})
            return httpx.Response(200, content=json.dumps(github_profile))
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest.fixture
def provider(github_transport: httpx.MockTransport) -> GitHubProvider:
    return GitHubProvider(
        client_id=TEST_CLIENT_ID,
        client_secret=TEST_CLIENT_SECRET,
        redirect_url=TEST_REDIRECT_URL,
        transport=github_transport,
    )


# ---------------------------------------------------------------------------
# App client
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, engine: Engine, provider: GitHubProvider):
    """Return a lifespan that wires test components into app.state.

    The engine fixture has already applied migrations, mirroring the order
    the real lifespan enforces.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_app_state(app, settings, engine, provider=provider)
        yield

    return test_lifespan


@pytest.fixture
def web_client(settings: Settings, engine: Engine, provider: GitHubProvider) -> Generator[TestClient, None, None]:
    """TestClient over the full app (API + web routes) with isolated storage.

    follow_redirects=False so tests can assert on Location and Set-Cookie of
    each redirect. Rate-limit counters are reset so every test starts with
    a fresh login budget.
    """
    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(settings, engine, provider)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client
