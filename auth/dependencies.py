"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session cookie is the only auth method. The resolved Principal is
attached to request.state.principal -- the single well-known key handlers
read the identity from. No database round-trip is made.

try_get_principal() is the soft variant (returns None on failure).
require_principal() wraps it and raises HTTP 401 if unauthenticated.
current_principal() reads what a previous dependency already attached.

NoSession and InvalidSession are treated identically: the caller never learns
whether a cookie was absent or forged. InvalidSession is logged at WARNING
since it means someone presented a cookie this process did not sign (or one
signed under a rotated key).

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. No imports from api/ or web/.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import HTTPException, Request

from auth.models import Principal
from auth.session import SessionManager
from core.errors import InvalidSession, NoSession

logger = logging.getLogger("blazing.auth")

PRINCIPAL_STATE_KEY = "principal"


def try_get_principal(request: Request) -> Optional[Principal]:
    """Resolve the session cookie to a Principal, or None.

    Never raises for session problems -- callers that need a hard 401 should
    use require_principal().
    """
    sessions: SessionManager = request.app.state.sessions
    try:
        principal = sessions.resolve(request)
    except NoSession:
        return None
    except InvalidSession as exc:
        logger.warning(
            "Rejected session cookie on %s (%s) from %s",
            request.url.path,
            exc,
            request.client.host if request.client else "unknown",
        )
        return None
    setattr(request.state, PRINCIPAL_STATE_KEY, principal)
    return principal


def require_principal(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(require_principal)): ...
    """
    principal = try_get_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return principal


def current_principal(request: Request) -> Optional[Principal]:
    """Return the Principal a dependency already attached to this request, if any."""
    return getattr(request.state, PRINCIPAL_STATE_KEY, None)
