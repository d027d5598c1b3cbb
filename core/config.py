"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Blazing happen here. No module should
call os.getenv() or os.environ.get() directly -- the Settings value is built
once at startup and handed to the SessionManager, LoginFlow and lifespan as
a constructor argument.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. session_secret -> SESSION_SECRET).

  frozen=True: the Settings instance is immutable after construction.
      Components hold a reference, never a private copy that could drift.

Startup policy:
  SESSION_SECRET shorter than 32 chars is always rejected. In production mode
  (DEBUG not set or false) a missing SESSION_SECRET or missing GitHub client
  credentials is a hard startup failure. In debug mode a random secret is
  generated with a warning and missing GitHub credentials only disable the
  login button (GET /auth/github answers 500).

  Validation failures are re-raised from get_settings() as ConfigurationError
  so the entry point has a single fatal error type to catch.

Layer rule: core/ is the kernel. This module may not import from api/, web/
or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigurationError

logger = logging.getLogger("blazing.config")

MIN_SECRET_LENGTH = 32

_DEFAULT_MIGRATIONS_DIR = str(Path(__file__).resolve().parent.parent / "migrations")
_DEFAULT_REDIRECT_URL = "http://localhost:8080/auth/github/callback"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings(debug=True) can be instantiated in
    test environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # "production" turns on the Secure cookie attribute.
    environment: str = "development"
    port: int = 8080

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    # Empty string is the "not configured" sentinel. The validator below
    # either generates a dev key or raises, so callers never see "".
    session_secret: str = Field(default="", validate_default=True)

    # ------------------------------------------------------------------
    # GitHub OAuth
    # ------------------------------------------------------------------

    github_client_id: str = ""
    github_client_secret: str = ""
    github_redirect_url: str = _DEFAULT_REDIRECT_URL

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    db_path: str = "/data/chat.db"
    migrations_dir: str = _DEFAULT_MIGRATIONS_DIR

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def secure_cookies(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def github_configured(self) -> bool:
        return bool(self.github_client_id and self.github_client_secret)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("session_secret")
    @classmethod
    def validate_session_secret(cls, value: str, info: ValidationInfo) -> str:
        """Enforce the SESSION_SECRET policy.

        Dev mode (DEBUG=true): a missing secret is replaced by a random one.
            Sessions will not survive a restart -- acceptable for local dev.

        Production mode: a missing secret refuses startup.

        Both modes: secrets shorter than 32 characters are rejected.
        """
        if not value:
            if info.data.get("debug"):
                logger.warning("Using auto-generated SESSION_SECRET. Sessions will not persist across restarts.")
                return secrets.token_hex(32)
            raise ValueError(
                "SESSION_SECRET is required in production mode. "
                "Set SESSION_SECRET in your environment or .env file. "
                "To run in development mode, set DEBUG=true."
            )
        if len(value) < MIN_SECRET_LENGTH:
            raise ValueError(f"SESSION_SECRET must be at least {MIN_SECRET_LENGTH} characters.")
        return value

    @model_validator(mode="after")
    def validate_github_credentials(self) -> "Settings":
        """Require GitHub client credentials outside debug mode."""
        if not self.debug and not self.github_configured:
            raise ValueError(
                "GITHUB_CLIENT_ID and GITHUB_CLIENT_SECRET are required in production mode. "
                "Create a GitHub OAuth app and set both values."
            )
        return self


def load_settings(**overrides) -> Settings:
    """Build a Settings value, converting validation failures to ConfigurationError.

    Keyword overrides take precedence over the environment; tests use them to
    build isolated settings without touching os.environ.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return load_settings()
