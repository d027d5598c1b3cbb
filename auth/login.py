"""
auth/login.py -- The three-step GitHub login flow.

States:
    unauthenticated --begin_login()--> pending (state cookie set, redirected)
    pending --complete_login()--> authenticated (session cookie issued)
    any failure --> unauthenticated (caller redirects to /)

CSRF protection:
  begin_login() generates 32 random bytes of url-safe state, returns it for the
  oauth_state cookie (10 minutes, HttpOnly, SameSite=Lax) and embeds it in
  the GitHub authorize URL. complete_login() accepts the callback only when
  the cookie and the ?state= parameter are both present and equal
  (hmac.compare_digest). The caller clears the state cookie on EVERY callback
  response, success or failure, so a state value is single-use.

Persistence:
  The user upsert runs in a worker thread bounded by persistence_timeout
  (5 seconds). A timeout or database error raises PersistenceError and no
  session is issued. asyncio.wait_for() cannot stop a worker thread: on a
  timeout the upsert keeps running in the background and may still commit.
  The next login for that account then finds the record and updates it.

  Two concurrent first logins for the same GitHub account race on INSERT.
  The UNIQUE(github_uid) constraint picks the winner; the loser retries once
  as lookup + update.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import secrets
from dataclasses import dataclass

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import GitHubIdentity, Principal, User
from auth.oauth import GitHubProvider
from auth.session import SessionManager
from auth.store import UserStore
from core.errors import ConfigurationError, CSRFMismatch, PersistenceError, ProviderError

logger = logging.getLogger("blazing.auth.login")

STATE_COOKIE = "oauth_state"
STATE_MAX_AGE = 600  # 10 minutes
PERSISTENCE_TIMEOUT = 5.0


def generate_state() -> str:
    """Return a fresh CSRF state token: 32 random bytes, base64url-encoded."""
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class LoginRedirect:
    """Result of begin_login(): where to send the browser, and the state to set."""

    url: str
    state: str


@dataclass(frozen=True)
class LoginResult:
    """Result of complete_login(): the canonical principal and its signed cookie value."""

    principal: Principal
    session_token: str


class LoginFlow:
    """Drive the GitHub authorization-code login.

    Holds no per-login state; one instance serves every request.
    """

    def __init__(
        self,
        sessions: SessionManager,
        provider: GitHubProvider,
        user_store: UserStore,
        secure_cookies: bool = False,
        persistence_timeout: float = PERSISTENCE_TIMEOUT,
    ) -> None:
        self.sessions = sessions
        self.provider = provider
        self.user_store = user_store
        self.secure_cookies = secure_cookies
        self.persistence_timeout = persistence_timeout

    # ------------------------------------------------------------------
    # Step 1 -- redirect to GitHub
    # ------------------------------------------------------------------

    def begin_login(self) -> LoginRedirect:
        """Generate CSRF state and build the GitHub authorize URL.

        Raises ConfigurationError when GitHub client credentials are absent.
        """
        if not self.provider.configured:
            raise ConfigurationError(
                "GitHub OAuth not configured. Set GITHUB_CLIENT_ID and GITHUB_CLIENT_SECRET."
            )
        state = generate_state()
        return LoginRedirect(url=self.provider.authorization_url(state), state=state)

    def state_cookie_kwargs(self, state: str) -> dict:
        """Keyword arguments for Response.set_cookie() carrying the CSRF state."""
        return {
            "key": STATE_COOKIE,
            "value": state,
            "max_age": STATE_MAX_AGE,
            "path": "/",
            "httponly": True,
            "secure": self.secure_cookies,
            "samesite": "lax",
        }

    def clear_state_cookie_kwargs(self) -> dict:
        """Keyword arguments for Response.set_cookie() that clear the CSRF state."""
        return {**self.state_cookie_kwargs(""), "max_age": 0}

    # ------------------------------------------------------------------
    # Steps 2-5 -- callback
    # ------------------------------------------------------------------

    def verify_state(self, request) -> None:
        """Raise CSRFMismatch unless the state cookie and ?state= are present and equal."""
        cookie_state = request.cookies.get(STATE_COOKIE, "")
        query_state = request.query_params.get("state", "")
        if not cookie_state or not query_state:
            raise CSRFMismatch("OAuth state missing")
        if not hmac.compare_digest(cookie_state.encode("utf-8"), query_state.encode("utf-8")):
            raise CSRFMismatch("OAuth state mismatch")

    async def complete_login(self, request) -> LoginResult:
        """Verify the callback, fetch the GitHub identity, upsert the user, issue a session.

        Raises:
            CSRFMismatch:     state cookie / query param absent or unequal.
            ProviderError:    no ?code=, or GitHub exchange / user fetch failed.
            PersistenceError: the user record could not be created or updated.
        """
        self.verify_state(request)

        code = request.query_params.get("code", "")
        if not code:
            raise ProviderError("no authorization code in callback")

        identity = await self.provider.fetch_identity(code)

        try:
            user = await asyncio.wait_for(
                run_in_threadpool(self.upsert_user, identity),
                timeout=self.persistence_timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("User upsert timed out after %.1fs (github_uid=%d)", self.persistence_timeout, identity.id)
            raise PersistenceError("user upsert timed out") from exc

        principal = user.to_principal()
        token = self.sessions.issue(principal)
        logger.info("Login complete (user_id=%d, github_uid=%d)", principal.id, principal.github_uid)
        return LoginResult(principal=principal, session_token=token)

    def upsert_user(self, identity: GitHubIdentity) -> User:
        """Create or refresh the local record for identity. Returns the canonical User.

        Blocking; complete_login() runs it in a worker thread.
        Raises PersistenceError on any database failure.
        """
        try:
            user = self.user_store.get_by_github_uid(identity.id)
            if user is None:
                try:
                    created = self.user_store.create_user(
                        User(github_uid=identity.id, login=identity.login, avatar_url=identity.avatar_url)
                    )
                    logger.info("Created user %d for github_uid=%d", created.id, identity.id)
                    return created
                except IntegrityError:
                    # Lost the race with a concurrent first login for this account.
                    logger.info("Concurrent create for github_uid=%d; retrying as update", identity.id)
                    user = self.user_store.get_by_github_uid(identity.id)
                    if user is None:
                        raise
            return self._refresh_user(user, identity)
        except SQLAlchemyError as exc:
            logger.error("Failed to create/update user (github_uid=%d): %s", identity.id, exc)
            raise PersistenceError("failed to create or update user") from exc

    def _refresh_user(self, user: User, identity: GitHubIdentity) -> User:
        if user.login == identity.login and (user.avatar_url or "") == identity.avatar_url:
            return user
        if not self.user_store.update_user(user.id, identity.login, identity.avatar_url):
            raise PersistenceError(f"user {user.id} disappeared during update")
        logger.info("Updated profile for user %d (github_uid=%d)", user.id, identity.id)
        user.login = identity.login
        user.avatar_url = identity.avatar_url or None
        return user

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self) -> dict:
        """Return the session-clearing cookie directive. Touches neither GitHub nor the database."""
        return self.sessions.revoke()
