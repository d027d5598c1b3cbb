"""
core/errors.py -- Error taxonomy for Blazing.

Every failure mode the auth and bootstrap layers can produce is a subclass of
BlazingError. Callers discriminate with except clauses or isinstance(), never
by comparing against shared error instances.

  BlazingError
    SessionError
      NoSession           -- no session cookie presented
      InvalidSession      -- cookie present but malformed or forged
    LoginError
      CSRFMismatch        -- OAuth state cookie / query param absent or unequal
      ProviderError       -- transport or decoding failure talking to GitHub
    PersistenceError      -- creating/updating the local user record failed
    ConfigurationError    -- missing/short secret, missing OAuth credentials
    MigrationError        -- a schema script failed to execute or record

Recoverable: SessionError and LoginError subclasses. Callers log them and
redirect (or render the unauthenticated view). NoSession and InvalidSession
must never be distinguished to the end user.

Internal: PersistenceError becomes a generic 5xx response.

Fatal: ConfigurationError and MigrationError abort startup.

Layer rule: core/ is the kernel. This module imports nothing from the project.
"""

from __future__ import annotations

from typing import Optional


class BlazingError(Exception):
    """Base class for all application errors."""


class SessionError(BlazingError):
    """The request carries no usable session."""


class NoSession(SessionError):
    """No session cookie was presented."""


class InvalidSession(SessionError):
    """A session cookie was presented but failed decoding or verification."""


class LoginError(BlazingError):
    """The OAuth callback could not be completed. Restart the login flow."""


class CSRFMismatch(LoginError):
    """The OAuth state cookie and the callback state parameter do not match."""


class ProviderError(LoginError):
    """The identity provider could not be reached or returned unusable data."""


class PersistenceError(BlazingError):
    """The local user record could not be created or updated."""


class ConfigurationError(BlazingError):
    """Required configuration is missing or invalid."""


class MigrationError(BlazingError):
    """A migration script failed to execute or could not be recorded."""

    def __init__(self, message: str, filename: Optional[str] = None) -> None:
        super().__init__(message)
        self.filename = filename
