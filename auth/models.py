"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the session
manager and routes do the work.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """The authenticated identity carried inside a session cookie.

    Immutable for the lifetime of the cookie that carries it. A fresh
    Principal is issued on every successful login, so a changed GitHub login
    or avatar shows up on the next sign-in, not mid-session.

    The JSON keys of the cookie payload are exactly these field names.
    """

    id: int  # local users.id
    github_uid: int  # GitHub's numeric account id
    login: str
    avatar_url: str = ""


@dataclass
class User:
    """A row of the users table.

    github_uid is UNIQUE at the database level; that constraint is the
    authority when two first logins for the same account race.
    avatar_url is None when GitHub reported no avatar.
    """

    github_uid: int
    login: str
    avatar_url: str | None = None
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_principal(self) -> Principal:
        return Principal(
            id=self.id,
            github_uid=self.github_uid,
            login=self.login,
            avatar_url=self.avatar_url or "",
        )


@dataclass(frozen=True)
class GitHubIdentity:
    """The subset of GET https://api.github.com/user that Blazing stores."""

    id: int
    login: str
    avatar_url: str = ""
