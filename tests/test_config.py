"""
tests/test_config.py -- Unit tests for core/config.py.

Covers:
  - debug mode: missing SESSION_SECRET replaced by a generated key
  - production mode: missing SESSION_SECRET or GitHub credentials refuses startup
  - short secrets rejected in every mode
  - environment variables map to fields
  - derived values: secure_cookies, github_configured
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import MIN_SECRET_LENGTH, Settings, load_settings
from core.errors import ConfigurationError

GOOD_SECRET = "s" * MIN_SECRET_LENGTH


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("SESSION_SECRET", "GITHUB_CLIENT_ID", "GITHUB_CLIENT_SECRET", "ENVIRONMENT", "DB_PATH"):
        monkeypatch.delenv(name, raising=False)


class TestSessionSecret:
    """SESSION_SECRET handling across debug and production."""

    def test_debug_generates_secret(self) -> None:
        """Debug mode fills a missing secret with a generated key."""
        settings = load_settings(debug=True)
        assert len(settings.session_secret) >= MIN_SECRET_LENGTH

    def test_debug_generated_secret_differs_per_load(self) -> None:
        """Each debug load generates a fresh key."""
        assert load_settings(debug=True).session_secret != load_settings(debug=True).session_secret

    def test_production_requires_secret(self) -> None:
        """Production refuses to start without SESSION_SECRET."""
        with pytest.raises(ConfigurationError, match="SESSION_SECRET"):
            load_settings(debug=False, github_client_id="id", github_client_secret="secret")

    @pytest.mark.parametrize("debug", [True, False])
    def test_short_secret_rejected(self, debug: bool) -> None:
        """A key shorter than the minimum is rejected in every mode."""
        with pytest.raises(ConfigurationError, match="at least"):
            load_settings(
                debug=debug,
                session_secret="x" * (MIN_SECRET_LENGTH - 1),
                github_client_id="id",
                github_client_secret="secret",
            )

    def test_explicit_secret_kept(self) -> None:
        """An explicit secret is used as given."""
        assert load_settings(debug=True, session_secret=GOOD_SECRET).session_secret == GOOD_SECRET


class TestGitHubCredentials:
    """GitHub OAuth client credentials."""

    def test_production_requires_credentials(self) -> None:
        """Production refuses to start without GitHub credentials."""
        with pytest.raises(ConfigurationError, match="GITHUB_CLIENT_ID"):
            load_settings(debug=False, session_secret=GOOD_SECRET)

    def test_debug_tolerates_missing_credentials(self) -> None:
        """Debug mode starts with login disabled."""
        settings = load_settings(debug=True)
        assert settings.github_configured is False

    def test_production_with_everything_set(self) -> None:
        """All values present loads a configured Settings."""
        settings = load_settings(
            debug=False,
            session_secret=GOOD_SECRET,
            github_client_id="id",
            github_client_secret="secret",
        )
        assert settings.github_configured is True


class TestEnvironment:
    """Environment mapping, derived values and defaults."""

    def test_env_vars_map_to_fields(self, monkeypatch) -> None:
        """Upper-case environment variables populate the fields."""
        monkeypatch.setenv("SESSION_SECRET", GOOD_SECRET)
        monkeypatch.setenv("GITHUB_CLIENT_ID", "env-id")
        monkeypatch.setenv("GITHUB_CLIENT_SECRET", "env-secret")
        monkeypatch.setenv("DB_PATH", "/tmp/blazing-test.db")
        settings = load_settings(debug=False)
        assert settings.session_secret == GOOD_SECRET
        assert settings.github_client_id == "env-id"
        assert settings.db_path == "/tmp/blazing-test.db"

    @pytest.mark.parametrize("environment,secure", [("production", True), ("PRODUCTION", True), ("development", False)])
    def test_secure_cookies_follow_environment(self, environment: str, secure: bool) -> None:
        """Secure cookies only when ENVIRONMENT is production."""
        assert load_settings(debug=True, environment=environment).secure_cookies is secure

    def test_settings_are_frozen(self) -> None:
        """Settings cannot be mutated after load."""
        settings = load_settings(debug=True)
        with pytest.raises(ValidationError):
            settings.port = 9999

    def test_defaults(self) -> None:
        """Port, database path, rate limit and migrations dir defaults."""
        settings = load_settings(debug=True)
        assert settings.port == 8080
        assert settings.db_path == "/data/chat.db"
        assert Settings.model_fields["login_rate_limit"].default == "10/minute"
        assert Settings.model_fields["migrations_dir"].default.endswith("migrations")
