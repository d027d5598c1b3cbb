"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Route and flow code
never touches SQL directly.

Schema ownership: the users table is created by migrations/001_create_users.sql,
not by this module. The Table object below only describes the columns for
query building; UserStore never calls create_all(). The lifespan constructs
UserStore after the MigrationRunner has finished.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(github_uid) is enforced in SQL. create_user() lets IntegrityError
  propagate so the login flow can tell "lost a race with a concurrent first
  login" apart from other database failures.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from auth.models import User

# ---------------------------------------------------------------------------
# Schema (mirrors migrations/001_create_users.sql)
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("github_uid", Integer, nullable=False, unique=True),
    Column("login", Text, nullable=False),
    Column("avatar_url", Text),  # NULL when GitHub reports no avatar
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _nullable(value: str | None) -> str | None:
    return value or None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(engine)
        user = store.create_user(User(github_uid=12345, login="alice"))
        same = store.get_by_github_uid(12345)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get_by_github_uid(self, github_uid: int) -> User | None:
        """Look up a user by GitHub account id. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.github_uid == github_uid)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create_user(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps filled in.

        Raises sqlalchemy.exc.IntegrityError if github_uid already exists.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    github_uid=user.github_uid,
                    login=user.login,
                    avatar_url=_nullable(user.avatar_url),
                    created_at=now,
                    updated_at=now,
                )
            )
            new_id = result.inserted_primary_key[0]
        return User(
            id=new_id,
            github_uid=user.github_uid,
            login=user.login,
            avatar_url=_nullable(user.avatar_url),
            created_at=now,
            updated_at=now,
        )

    def update_user(self, user_id: int, login: str, avatar_url: str | None) -> bool:
        """Refresh the mutable profile fields of an existing user.

        Returns True if a row was updated, False if user_id was not found.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(login=login, avatar_url=_nullable(avatar_url), updated_at=_now_iso())
            )
        return result.rowcount > 0

    def count_users(self) -> int:
        """Return the number of user records. Used by the health check and tests."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        github_uid=row.github_uid,
        login=row.login,
        avatar_url=row.avatar_url,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
