"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount as middleware) and web/routes.py (to limit
GET /auth/github with @limiter.limit()).

A single shared instance keeps one in-memory counter store for all routes.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Rate limit string for the login redirect, read from Settings (LOGIN_RATE_LIMIT)."""
    return get_settings().login_rate_limit
