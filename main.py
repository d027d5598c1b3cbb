#!/usr/bin/env python3
"""
Blazing -- GitHub sign-in with signed session cookies.

Usage:
  python main.py                  # validate config, apply migrations, serve
  python main.py --migrate-only   # apply pending migrations and exit
  python main.py --port 9000

Environment variables (see core/config.py for the full list):
  SESSION_SECRET        Cookie signing key, at least 32 characters.
  GITHUB_CLIENT_ID      GitHub OAuth app client id.
  GITHUB_CLIENT_SECRET  GitHub OAuth app client secret.
  GITHUB_REDIRECT_URL   Callback URL (default http://localhost:8080/auth/github/callback).
  DB_PATH               SQLite database file (default /data/chat.db).
  ENVIRONMENT           "production" turns on Secure cookies.
  DEBUG                 "true" allows a generated secret and missing GitHub credentials.

Exit status 1 when configuration is invalid or a migration fails; the server
never starts against a half-applied schema.
"""

import argparse
import logging
import sys

import uvicorn

from core.config import get_settings
from core.db import create_db_engine, sqlite_url
from core.errors import ConfigurationError, MigrationError
from core.migrations import apply_migrations

logger = logging.getLogger("blazing.main")


def main() -> int:
    parser = argparse.ArgumentParser(description="Blazing web server")
    parser.add_argument("--migrate-only", action="store_true", help="apply pending migrations and exit")
    parser.add_argument("--host", default="0.0.0.0", help="bind address (default 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="listen port (default PORT or 8080)")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        settings = get_settings()
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    if args.migrate_only:
        engine = create_db_engine(sqlite_url(settings.db_path))
        try:
            applied = apply_migrations(engine, settings.migrations_dir)
        except MigrationError as exc:
            logger.error("Migration failed: %s", exc)
            return 1
        finally:
            engine.dispose()
        logger.info("%d migration(s) applied", len(applied))
        return 0

    port = args.port or settings.port
    logger.info("Server starting on port %d", port)
    # The lifespan applies migrations before the first request; uvicorn exits
    # non-zero if it raises.
    uvicorn.run("asgi:app", host=args.host, port=port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
