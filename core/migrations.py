"""
core/migrations.py -- Forward-only SQL schema migration runner.

Applies *.sql files from the migrations directory in filename order,
tracking which have already been applied in the schema_migrations table.

Contract for migration authors:
  - Filenames are the total order AND the identity key. Use numeric prefixes
    (001_init.sql, 002_add_users.sql). No checksum or header is consulted.
  - A script's execution and its schema_migrations row are one unit for
    failure reporting, but not one transaction: if recording fails after the
    script succeeds, the script runs again on the next start. Write DDL that
    tolerates at-least-once execution (CREATE TABLE IF NOT EXISTS, etc.).
  - There is no rollback. A failing script stops the run; scripts applied
    earlier in the same run stay applied and recorded.

Concurrency: single writer at startup is a deployment constraint. Two
processes racing on a fresh database will both try to record the same
filename; the loser's INSERT violates the primary key, raises MigrationError
and that process refuses to start. A restart then finds the script recorded
and converges.

Layer rule: core/ is the kernel. No imports from api/, web/ or auth/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, MetaData, String, Table, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.errors import MigrationError

logger = logging.getLogger("blazing.migrations")

MIGRATIONS_TABLE = "schema_migrations"

_metadata = MetaData()

_schema_migrations = Table(
    MIGRATIONS_TABLE,
    _metadata,
    Column("filename", String(255), primary_key=True),
    Column("applied_at", String(32), nullable=False),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MigrationRunner:
    """Discover and apply pending migration scripts against an Engine.

    Usage:
        runner = MigrationRunner(engine, "migrations")
        applied_now = runner.apply()
    """

    def __init__(self, engine: Engine, directory: str | Path, extension: str = ".sql") -> None:
        self.engine = engine
        self.directory = Path(directory)
        self.extension = extension

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def applied(self) -> set[str]:
        """Return the applied-set. Empty when schema_migrations does not exist yet."""
        try:
            if not inspect(self.engine).has_table(MIGRATIONS_TABLE):
                return set()
            with self.engine.connect() as conn:
                rows = conn.execute(_schema_migrations.select()).fetchall()
        except SQLAlchemyError as exc:
            raise MigrationError(f"failed to read applied migrations: {exc}") from exc
        return {row.filename for row in rows}

    def discover(self) -> list[str]:
        """Return migration filenames sorted lexicographically.

        Filesystem enumeration order is never trusted; sorted() is the order.
        """
        if not self.directory.is_dir():
            raise MigrationError(f"migrations directory not found: {self.directory}")
        return sorted(
            entry.name
            for entry in self.directory.iterdir()
            if entry.is_file() and entry.name.endswith(self.extension)
        )

    def pending(self) -> list[str]:
        """Return discovered filenames not yet in the applied-set, in apply order."""
        done = self.applied()
        return [name for name in self.discover() if name not in done]

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(self) -> list[str]:
        """Apply every pending script in order and return the filenames applied.

        Raises MigrationError on the first failure. Running apply() again after
        a fully-applied state is a no-op and returns [].
        """
        pending = self.pending()
        self._ensure_table()

        for filename in pending:
            logger.info("Running migration: %s", filename)
            try:
                self._execute_script(self.directory / filename)
            except Exception as exc:  # DBAPI errors are driver-specific; all are fatal here
                raise MigrationError(f"failed to run migration {filename}: {exc}", filename=filename) from exc
            try:
                self._record(filename)
            except SQLAlchemyError as exc:
                raise MigrationError(f"failed to record migration {filename}: {exc}", filename=filename) from exc
            logger.info("Migration completed: %s", filename)

        if pending:
            logger.info("All migrations completed (%d applied)", len(pending))
        else:
            logger.info("Schema up to date; no migrations to apply")
        return pending

    def _ensure_table(self) -> None:
        try:
            _metadata.create_all(self.engine, tables=[_schema_migrations])
        except SQLAlchemyError as exc:
            raise MigrationError(f"failed to create {MIGRATIONS_TABLE}: {exc}") from exc

    def _execute_script(self, path: Path) -> None:
        """Execute the full contents of one script.

        Scripts may hold several statements. SQLAlchemy's execute() accepts one
        statement at a time, so the script goes straight to the DBAPI
        connection: sqlite3 exposes executescript(); other drivers accept
        multi-statement strings through a plain cursor.
        """
        sql = path.read_text(encoding="utf-8")
        raw = self.engine.raw_connection()
        try:
            driver = raw.driver_connection
            if hasattr(driver, "executescript"):
                driver.executescript(sql)
            else:
                cursor = raw.cursor()
                try:
                    cursor.execute(sql)
                finally:
                    cursor.close()
            raw.commit()
        finally:
            raw.close()

    def _record(self, filename: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(_schema_migrations.insert().values(filename=filename, applied_at=_now_iso()))


def apply_migrations(engine: Engine, directory: str | Path) -> list[str]:
    """Run all pending migrations in directory. Called once from the lifespan."""
    return MigrationRunner(engine, directory).apply()
