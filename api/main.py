"""
api/main.py -- FastAPI application entry point for Blazing.

Run with:      python main.py
               uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. request logging -- method, path, status, latency, client
  2. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter

Lifespan handles startup in a fixed order and refuses to serve traffic if any
step fails:
  1. Settings         -- ConfigurationError on missing/short secret or creds
  2. Engine           -- SQLite file created on demand
  3. Migrations       -- MigrationError on any script failure; nothing else
                         touches the database before this completes
  4. UserStore, SessionManager, GitHubProvider, LoginFlow -> app.state
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.login import LoginFlow
from auth.oauth import GitHubProvider
from auth.session import SessionManager
from auth.store import UserStore
from core.config import Settings, get_settings
from core.db import create_db_engine, sqlite_url
from core.migrations import apply_migrations

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("blazing.api")


# ---------------------------------------------------------------------------
# App state wiring
# ---------------------------------------------------------------------------


def init_app_state(
    app: FastAPI,
    settings: Settings,
    engine: Engine,
    provider: Optional[GitHubProvider] = None,
) -> None:
    """Attach the auth components to app.state.

    Must only be called after migrations have been applied to engine.
    provider defaults to a GitHubProvider built from settings; tests pass a
    provider backed by httpx.MockTransport.
    """
    if provider is None:
        provider = GitHubProvider(
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
            redirect_url=settings.github_redirect_url,
        )
    sessions = SessionManager(settings.session_secret, secure=settings.secure_cookies)
    user_store = UserStore(engine)
    app.state.settings = settings
    app.state.sessions = sessions
    app.state.user_store = user_store
    app.state.login_flow = LoginFlow(
        sessions=sessions,
        provider=provider,
        user_store=user_store,
        secure_cookies=settings.secure_cookies,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run migrations, then wire the auth components; dispose the engine on shutdown.

    Any exception raised before yield (ConfigurationError, MigrationError)
    propagates to the ASGI server, which aborts startup.
    """
    logger.info("Blazing starting up")
    settings = get_settings()
    engine = create_db_engine(sqlite_url(settings.db_path))
    applied = apply_migrations(engine, settings.migrations_dir)
    logger.info("Migrations complete (%d applied this run)", len(applied))

    init_app_state(app, settings, engine)
    logger.info(
        "Auth initialized (github_configured=%s, secure_cookies=%s)",
        settings.github_configured,
        settings.secure_cookies,
    )

    yield

    app.state.user_store.close()
    logger.info("Blazing shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Blazing",
    description="GitHub sign-in with signed session cookies.",
    version=VERSION,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
# Web router (login redirects, dashboard) is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability."""
    database = "ok"
    try:
        request.app.state.user_store.count_users()
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
