"""
auth/oauth.py -- GitHub OAuth 2.0 client (authorization-code grant).

Built on authlib's AsyncOAuth2Client, which is an httpx.AsyncClient with the
OAuth 2.0 token handling added. One short-lived client is opened per
callback; nothing is shared between concurrent logins.

CSRF state is NOT managed here. Unlike authlib's Starlette integration, which
keeps the state in a server-side session, Blazing carries the state in its
own short-lived cookie (see auth/login.py) so no session middleware is
needed. authorization_url() therefore takes the state as an argument.

Failure policy: every transport, HTTP-status, OAuth protocol or decoding
failure raises ProviderError. The caller redirects the user back to the
unauthenticated entry point.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client

from auth.models import GitHubIdentity
from core.errors import ProviderError

logger = logging.getLogger("blazing.auth.oauth")

AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"  # noqa: S105 -- URL, not a password
USER_API_URL = "https://api.github.com/user"
SCOPE = "user:email"

_DEFAULT_TIMEOUT = 5.0


class GitHubProvider:
    """Talks to GitHub's OAuth and REST endpoints for one OAuth app.

    transport is an httpx transport override. Production leaves it None;
    tests pass httpx.MockTransport to answer the token and /user calls.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _client(self) -> AsyncOAuth2Client:
        kwargs: dict = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_url,
            "scope": SCOPE,
            "timeout": self.timeout,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return AsyncOAuth2Client(**kwargs)

    def authorization_url(self, state: str) -> str:
        """Return the GitHub authorize URL with state embedded."""
        client = self._client()
        url, _ = client.create_authorization_url(AUTHORIZE_URL, state=state)
        return url

    async def fetch_identity(self, code: str) -> GitHubIdentity:
        """Exchange code for an access token and fetch the GitHub user.

        Raises ProviderError on any failure.
        """
        try:
            async with self._client() as client:
                token = await client.fetch_token(ACCESS_TOKEN_URL, code=code)
                if not token.get("access_token"):
                    raise ProviderError("token response carried no access_token")
                resp = await client.get(USER_API_URL, headers={"Accept": "application/vnd.github+json"})
                resp.raise_for_status()
                profile = resp.json()
        except ProviderError:
            raise
        except (AuthlibBaseError, httpx.HTTPError) as exc:
            logger.warning("GitHub OAuth exchange failed: %s", exc)
            raise ProviderError(f"GitHub OAuth exchange failed: {exc}") from exc
        except (TypeError, ValueError) as exc:
            logger.warning("GitHub returned an undecodable response: %s", exc)
            raise ProviderError("GitHub returned an undecodable response") from exc
        return _identity_from_profile(profile)


def _identity_from_profile(profile: object) -> GitHubIdentity:
    """Normalize GET /user into a GitHubIdentity. Raises ProviderError on bad shape."""
    if not isinstance(profile, dict):
        raise ProviderError("GitHub user response is not an object")
    uid = profile.get("id")
    login = profile.get("login")
    if not isinstance(uid, int) or isinstance(uid, bool) or not isinstance(login, str) or not login:
        raise ProviderError("GitHub user response is missing id or login")
    avatar_url = profile.get("avatar_url") or ""
    if not isinstance(avatar_url, str):
        raise ProviderError("GitHub user response has a non-string avatar_url")
    return GitHubIdentity(id=uid, login=login, avatar_url=avatar_url)
