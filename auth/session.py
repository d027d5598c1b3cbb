"""
auth/session.py -- Stateless signed session cookies.

Token format:
    <payload>.<signature>
    payload   = base64url(json(principal))
    signature = base64url(HMAC-SHA256(secret_key, payload))

The HMAC is computed over the exact ASCII bytes of the encoded payload, so
verification never has to re-serialize anything. Both segments use the
padded URL-safe base64 alphabet, which contains no "." -- the first dot is
always the separator.

Security design decisions:
  No server-side store. resolve() is a pure function of the cookie and the
      key; it never touches the database. The cost is that a single still-
      valid cookie cannot be revoked server-side before its max-age elapses.

  No expiry inside the payload. The cookie max-age (7 days) governs lifetime.
      Someone who can stretch a cookie's lifetime still cannot forge a
      different identity without the key.

  Signature first, decode second. The payload is only base64-decoded and
      parsed after hmac.compare_digest() accepts the signature, so malformed
      attacker input never reaches json.loads().

  Key rotation invalidates every issued session. There is no multi-key
      grace period.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
from dataclasses import asdict

from auth.models import Principal
from core.config import MIN_SECRET_LENGTH
from core.errors import ConfigurationError, InvalidSession, NoSession

logger = logging.getLogger("blazing.auth.session")

SESSION_COOKIE = "blazing_session"
SESSION_MAX_AGE = 7 * 24 * 60 * 60  # 7 days, in seconds

_SEPARATOR = "."


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii")


def _b64decode(data: str) -> bytes:
    # validate=True is not available on urlsafe_b64decode; translate to the
    # standard alphabet so b64decode can reject stray characters.
    standard = data.replace("-", "+").replace("_", "/")
    return base64.b64decode(standard, validate=True)


def _principal_from_payload(data: object) -> Principal:
    """Build a Principal from a decoded JSON object, or raise InvalidSession.

    bool is a subclass of int in Python; reject it explicitly so
    {"id": true} does not pass as user 1.
    """
    if not isinstance(data, dict):
        raise InvalidSession("payload is not an object")
    user_id = data.get("id")
    github_uid = data.get("github_uid")
    login = data.get("login")
    avatar_url = data.get("avatar_url", "")
    for value in (user_id, github_uid):
        if not isinstance(value, int) or isinstance(value, bool):
            raise InvalidSession("payload ids must be integers")
    if not isinstance(login, str) or not isinstance(avatar_url, str):
        raise InvalidSession("payload login/avatar_url must be strings")
    return Principal(id=user_id, github_uid=github_uid, login=login, avatar_url=avatar_url)


class SessionManager:
    """Issue, verify and revoke signed session cookies.

    Created once at startup. Holds only the signing key and cookie
    attributes, so a single instance is safe for unsynchronized use by
    every request thread.

    Usage:
        sessions = SessionManager(settings.session_secret, secure=settings.secure_cookies)
        token = sessions.issue(principal)
        principal = sessions.resolve(request)      # NoSession / InvalidSession
        response.set_cookie(**sessions.revoke())
    """

    def __init__(self, secret_key: str, secure: bool = False, max_age: int = SESSION_MAX_AGE) -> None:
        if not secret_key:
            raise ConfigurationError("session secret is required")
        if len(secret_key) < MIN_SECRET_LENGTH:
            raise ConfigurationError(f"session secret must be at least {MIN_SECRET_LENGTH} characters")
        self._key = secret_key.encode("utf-8")
        self.secure = secure
        self.max_age = max_age

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def _sign(self, payload: str) -> str:
        digest = hmac.new(self._key, payload.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    def issue(self, principal: Principal) -> str:
        """Serialize and sign principal. Returns the cookie value."""
        raw = json.dumps(asdict(principal), separators=(",", ":")).encode("utf-8")
        payload = _b64encode(raw)
        return f"{payload}{_SEPARATOR}{self._sign(payload)}"

    def verify(self, token: str) -> Principal:
        """Return the principal carried by token, or raise InvalidSession."""
        payload, sep, signature = token.partition(_SEPARATOR)
        if not sep or not payload or not signature:
            raise InvalidSession("missing separator")

        try:
            expected = self._sign(payload)
        except UnicodeEncodeError as exc:
            raise InvalidSession("payload is not ASCII") from exc
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            raise InvalidSession("signature mismatch")

        try:
            data = json.loads(_b64decode(payload))
        except (binascii.Error, ValueError) as exc:
            logger.error("Signed session payload failed to decode: %s", exc)
            raise InvalidSession("payload not decodable") from exc
        return _principal_from_payload(data)

    def resolve(self, request) -> Principal:
        """Return the principal for request.

        Raises NoSession when the cookie is absent and InvalidSession when it
        is present but does not verify. Accepts any object with a .cookies
        mapping (Starlette Request, httpx-style test doubles).
        """
        token = request.cookies.get(SESSION_COOKIE)
        if not token:
            raise NoSession("no session cookie")
        return self.verify(token)

    # ------------------------------------------------------------------
    # Cookie directives
    # ------------------------------------------------------------------

    def cookie_kwargs(self, token: str) -> dict:
        """Keyword arguments for Response.set_cookie() carrying token.

        httponly=True: JS cannot read the cookie (XSS mitigation).
        samesite="lax": sent on top-level navigations, which the OAuth
            callback redirect needs, but not on cross-site POSTs.
        secure: only sent over HTTPS in production.
        """
        return {
            "key": SESSION_COOKIE,
            "value": token,
            "max_age": self.max_age,
            "path": "/",
            "httponly": True,
            "secure": self.secure,
            "samesite": "lax",
        }

    def set_cookie(self, response, principal: Principal) -> str:
        """Issue a token for principal and attach it to response. Returns the token."""
        token = self.issue(principal)
        response.set_cookie(**self.cookie_kwargs(token))
        return token

    def revoke(self) -> dict:
        """Keyword arguments for Response.set_cookie() that clear the session cookie."""
        return {
            "key": SESSION_COOKIE,
            "value": "",
            "max_age": 0,
            "path": "/",
            "httponly": True,
            "secure": self.secure,
            "samesite": "lax",
        }
