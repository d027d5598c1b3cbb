"""
core/db.py -- SQLAlchemy engine construction for the SQLite database.

One Engine is created per process in the API lifespan. The MigrationRunner
receives it first; the UserStore only gets it after migrations complete.

Connection settings:
  WAL journal mode   -- readers proceed without blocking during writes.
  foreign_keys=ON    -- SQLite leaves FK enforcement off by default.
  timeout=5          -- busy timeout (seconds) when another writer holds the lock.

PRAGMAs are applied per connection because SQLite does not inherit them
across pooled connections.

Layer rule: core/ is the kernel. No imports from api/, web/ or auth/.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

_BUSY_TIMEOUT_SECONDS = 5


def sqlite_url(db_path: str) -> str:
    """Return a SQLAlchemy URL for db_path, creating its directory if needed.

    In-memory databases (":memory:" or a "file:...mode=memory" URI) are
    passed through without touching the filesystem.
    """
    if db_path == ":memory:":
        return "sqlite://"
    if db_path.startswith("file:"):
        return f"sqlite:///{db_path}"
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Create the process-wide Engine for db_url.

    check_same_thread=False is required because FastAPI runs sync work in a
    thread pool and the login flow offloads user upserts to worker threads.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = _BUSY_TIMEOUT_SECONDS
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine
