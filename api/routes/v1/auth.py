"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  GET  /api/v1/auth/me      -- identity carried by the session cookie (requires auth)
  POST /api/v1/auth/logout  -- clears the session cookie; 200

The browser login itself (GET /auth/github, GET /auth/github/callback) lives
in web/routes.py because it answers with redirects, not JSON.

Auth policy:
  - GET  /api/v1/auth/me:     requires auth (require_principal)
  - POST /api/v1/auth/logout: public -- clearing a cookie needs no prior auth
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import MeResponse
from auth.dependencies import current_principal, require_principal
from auth.login import LoginFlow
from auth.models import Principal

router = APIRouter()


@router.get("/auth/me", response_model=MeResponse, dependencies=[Depends(require_principal)])
def me(request: Request) -> MeResponse:
    """Return the identity in the caller's session cookie. No database round-trip."""
    principal: Principal = current_principal(request)
    return MeResponse(
        id=principal.id,
        github_uid=principal.github_uid,
        login=principal.login,
        avatar_url=principal.avatar_url,
    )


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Clear the session cookie. Neither GitHub nor the database is contacted."""
    flow: LoginFlow = request.app.state.login_flow
    resp = JSONResponse({"status": "logged_out"})
    resp.set_cookie(**flow.logout())
    return resp
