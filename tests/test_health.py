"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against the migrated database
  - components.database reports 'error' when the query fails
  - No authentication required
  - an unexpected exception becomes the generic internal_error envelope
"""

from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError


def test_health_returns_200_with_components(web_client):
    """Health endpoint returns 200 with status, version, and components."""
    resp = web_client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_reports_database_error(web_client, monkeypatch):
    """A failing database query is reported in components, not raised."""

    def _broken_count():
        raise OperationalError("SELECT count(*) FROM users", {}, Exception("unable to open database file"))

    monkeypatch.setattr(web_client.app.state.user_store, "count_users", _broken_count)
    resp = web_client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["components"]["database"] == "error"


def test_health_no_auth_required(web_client):
    """Health endpoint is accessible without any session cookie."""
    web_client.cookies.clear()
    resp = web_client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_unexpected_error_returns_generic_500(web_client, monkeypatch):
    """A non-database exception reaches the catch-all handler; its message never leaks.

    A second client with raise_server_exceptions=False shares the app.state the
    web_client lifespan already wired, so the response is observable instead of
    re-raised into the test.
    """

    def _explode():
        raise RuntimeError("secret internal detail")

    monkeypatch.setattr(web_client.app.state.user_store, "count_users", _explode)
    client = TestClient(web_client.app, raise_server_exceptions=False)
    resp = client.get("/api/v1/health")
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "internal_error"
    assert "secret internal detail" not in resp.text
