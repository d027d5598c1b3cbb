"""
web/routes.py -- Browser-facing routes: GitHub login redirects and the dashboard.

These routes answer with redirects and server-rendered HTML. They share
app.state with the API routes (same SessionManager, LoginFlow, UserStore).

Routes:
  GET      /                       -- dashboard when signed in, login page otherwise
  GET      /auth/github            -- set oauth_state cookie, 307 to GitHub (rate limited)
  GET      /auth/github/callback   -- verify state, upsert user, set session, 307 to /
  GET|POST /logout                 -- clear session cookie, 307 to /

Failure mapping for the callback:
  CSRFMismatch / ProviderError  -> 307 /             (restart the flow)
  PersistenceError              -> 500 generic page  (no session issued)
The oauth_state cookie is cleared on every callback response.
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from api.limiter import limiter, login_rate_limit
from auth.dependencies import try_get_principal
from auth.login import LoginFlow
from core.errors import ConfigurationError, LoginError, PersistenceError

logger = logging.getLogger("blazing.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

_GENERIC_ERROR = "Something went wrong while signing you in. Please try again later."


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def dashboard(request: Request) -> HTMLResponse:
    """Render the dashboard, or the login page for anyone without a valid session.

    NoSession and InvalidSession render the same page.
    """
    principal = try_get_principal(request)
    if principal is None:
        return templates.TemplateResponse(request, "login.html", {})
    return templates.TemplateResponse(request, "dashboard.html", {"user": principal})


# ---------------------------------------------------------------------------
# GitHub OAuth
# ---------------------------------------------------------------------------


@router.get("/auth/github")
@limiter.limit(login_rate_limit)
def github_login(request: Request) -> Response:
    """Redirect the browser to GitHub's authorize page with a fresh CSRF state."""
    flow: LoginFlow = request.app.state.login_flow
    try:
        target = flow.begin_login()
    except ConfigurationError:
        logger.error("GitHub OAuth not configured")
        return PlainTextResponse(
            "GitHub sign-in is not configured on this server.",
            status_code=500,
        )
    resp = RedirectResponse(target.url, status_code=307)
    resp.set_cookie(**flow.state_cookie_kwargs(target.state))
    return resp


@router.get("/auth/github/callback", name="github_callback")
async def github_callback(request: Request) -> Response:
    """Complete the login and issue the session cookie.

    The state cookie is single-use: it is cleared whatever the outcome.
    """
    flow: LoginFlow = request.app.state.login_flow
    try:
        result = await flow.complete_login(request)
    except LoginError as exc:
        logger.warning(
            "OAuth callback rejected (%s): %s",
            type(exc).__name__,
            exc,
        )
        resp: Response = RedirectResponse("/", status_code=307)
    except PersistenceError:
        logger.exception("OAuth callback failed to persist user")
        resp = PlainTextResponse(_GENERIC_ERROR, status_code=500)
    else:
        resp = RedirectResponse("/", status_code=307)
        resp.set_cookie(**flow.sessions.cookie_kwargs(result.session_token))
        resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**flow.clear_state_cookie_kwargs())
    return resp


@router.api_route("/logout", methods=["GET", "POST"])
def logout(request: Request) -> RedirectResponse:
    """Clear the session cookie and return to the login page."""
    flow: LoginFlow = request.app.state.login_flow
    resp = RedirectResponse("/", status_code=307)
    resp.set_cookie(**flow.logout())
    return resp
