"""
tests/test_dependencies.py -- Unit tests for auth/dependencies.py.

Request doubles carry only what the dependencies read: app.state.sessions,
cookies, url.path, client and a request.state namespace.

Covers:
  - valid cookie -> Principal, attached at request.state.principal
  - absent and forged cookies -> None (soft) / HTTP 401 (hard), indistinguishable
  - current_principal() reads what a previous dependency attached
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from auth.dependencies import current_principal, require_principal, try_get_principal
from auth.models import Principal
from auth.session import SESSION_COOKIE, SessionManager

ALICE = Principal(id=1, github_uid=12345, login="alice", avatar_url="")


def _request(sessions: SessionManager, cookies: dict | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        app=SimpleNamespace(state=SimpleNamespace(sessions=sessions)),
        cookies=cookies or {},
        url=SimpleNamespace(path="/api/v1/auth/me"),
        client=SimpleNamespace(host="127.0.0.1"),
        state=SimpleNamespace(),
    )


class TestTryGetPrincipal:
    """try_get_principal() never raises."""

    def test_valid_cookie_attaches_principal(self, sessions: SessionManager) -> None:
        """A valid cookie returns the Principal and stores it on request.state."""
        request = _request(sessions, {SESSION_COOKIE: sessions.issue(ALICE)})
        assert try_get_principal(request) == ALICE
        assert request.state.principal == ALICE

    def test_absent_cookie_is_none(self, sessions: SessionManager) -> None:
        """No cookie returns None."""
        request = _request(sessions)
        assert try_get_principal(request) is None
        assert current_principal(request) is None

    def test_forged_cookie_is_none_and_logged(self, sessions: SessionManager, caplog) -> None:
        """A forged cookie returns None and logs a warning."""
        forged = SessionManager("x" * 40).issue(ALICE)
        request = _request(sessions, {SESSION_COOKIE: forged})
        with caplog.at_level("WARNING", logger="blazing.auth"):
            assert try_get_principal(request) is None
        assert "Rejected session cookie" in caplog.text
        assert current_principal(request) is None


class TestRequirePrincipal:
    """require_principal() turns a missing session into 401."""

    def test_returns_principal(self, sessions: SessionManager) -> None:
        """A valid cookie returns the Principal and current_principal() sees it."""
        request = _request(sessions, {SESSION_COOKIE: sessions.issue(ALICE)})
        assert require_principal(request) == ALICE
        assert current_principal(request) == ALICE

    @pytest.mark.parametrize("cookies", [{}, {SESSION_COOKIE: "not.valid"}], ids=["absent", "forged"])
    def test_unauthenticated_is_401(self, sessions: SessionManager, cookies: dict) -> None:
        """Absent and forged cookies produce the same 401 body."""
        with pytest.raises(HTTPException) as exc_info:
            require_principal(_request(sessions, cookies))
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == {"code": "unauthorized", "message": "Authentication required."}
