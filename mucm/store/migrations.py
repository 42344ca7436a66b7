"""
Schema versioning for the SQLite backend.

``_metadata.schema_version`` holds a monotone integer. On open the migrator
compares it with ``CURRENT_SCHEMA_VERSION``:

- absent (0): the store is new and every step runs
- lower: the missing numbered steps run in order
- higher: the store was written by a newer tool and is refused

Each step runs in its own transaction together with the version bump, so a
failing step leaves the store at the last successful version. Steps only
use ``IF NOT EXISTS`` DDL and can be re-run safely.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Iterator

from mucm.errors import MigrationError, PersistenceError
from mucm.models import utc_now

logger = logging.getLogger(__name__)

SCHEMA_VERSION_KEY = "schema_version"

MIGRATIONS: dict[int, tuple[str, ...]] = {
    1: (
        """CREATE TABLE IF NOT EXISTS _metadata (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT
        )""",
        """CREATE TABLE IF NOT EXISTS use_cases (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            category TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            priority TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            extra_json TEXT NOT NULL DEFAULT '{}'
        )""",
        """CREATE TABLE IF NOT EXISTS use_case_preconditions (
            use_case_id TEXT NOT NULL REFERENCES use_cases(id) ON DELETE CASCADE,
            seq INTEGER NOT NULL,
            text TEXT NOT NULL,
            target_type TEXT,
            target_id TEXT,
            relationship TEXT,
            PRIMARY KEY (use_case_id, seq)
        )""",
        """CREATE TABLE IF NOT EXISTS use_case_postconditions (
            use_case_id TEXT NOT NULL REFERENCES use_cases(id) ON DELETE CASCADE,
            seq INTEGER NOT NULL,
            text TEXT NOT NULL,
            target_type TEXT,
            target_id TEXT,
            relationship TEXT,
            PRIMARY KEY (use_case_id, seq)
        )""",
        """CREATE TABLE IF NOT EXISTS use_case_references (
            use_case_id TEXT NOT NULL REFERENCES use_cases(id) ON DELETE CASCADE,
            seq INTEGER NOT NULL,
            target_id TEXT NOT NULL,
            relationship TEXT NOT NULL,
            description TEXT,
            PRIMARY KEY (use_case_id, seq)
        )""",
        """CREATE TABLE IF NOT EXISTS scenarios (
            id TEXT PRIMARY KEY,
            use_case_id TEXT NOT NULL REFERENCES use_cases(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            type TEXT NOT NULL,
            status TEXT NOT NULL,
            persona TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            extra_json TEXT NOT NULL DEFAULT '{}'
        )""",
        """CREATE TABLE IF NOT EXISTS scenario_steps (
            scenario_id TEXT NOT NULL REFERENCES scenarios(id) ON DELETE CASCADE,
            step_order INTEGER NOT NULL,
            actor TEXT NOT NULL,
            receiver TEXT,
            action TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            notes TEXT,
            PRIMARY KEY (scenario_id, step_order)
        )""",
        """CREATE TABLE IF NOT EXISTS scenario_references (
            scenario_id TEXT NOT NULL REFERENCES scenarios(id) ON DELETE CASCADE,
            seq INTEGER NOT NULL,
            ref_type TEXT NOT NULL,
            target_id TEXT NOT NULL,
            relationship TEXT NOT NULL,
            description TEXT,
            PRIMARY KEY (scenario_id, seq)
        )""",
        """CREATE TABLE IF NOT EXISTS methodology_views (
            use_case_id TEXT NOT NULL REFERENCES use_cases(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            methodology TEXT NOT NULL,
            level TEXT NOT NULL,
            enabled INTEGER NOT NULL DEFAULT 1,
            PRIMARY KEY (use_case_id, methodology, level)
        )""",
        """CREATE TABLE IF NOT EXISTS methodology_fields (
            use_case_id TEXT NOT NULL REFERENCES use_cases(id) ON DELETE CASCADE,
            methodology TEXT NOT NULL,
            field_name TEXT NOT NULL,
            value_json TEXT NOT NULL,
            PRIMARY KEY (use_case_id, methodology, field_name)
        )""",
        "CREATE INDEX IF NOT EXISTS idx_use_cases_category ON use_cases(category)",
        "CREATE INDEX IF NOT EXISTS idx_scenarios_use_case ON scenarios(use_case_id)",
        "CREATE INDEX IF NOT EXISTS idx_scenarios_persona ON scenarios(persona)",
    ),
    2: (
        """CREATE TABLE IF NOT EXISTS scenario_tombstones (
            use_case_id TEXT NOT NULL REFERENCES use_cases(id) ON DELETE CASCADE,
            scenario_id TEXT NOT NULL,
            PRIMARY KEY (use_case_id, scenario_id)
        )""",
        # methodologies with no field values still need a row to round-trip
        """CREATE TABLE IF NOT EXISTS methodology_field_groups (
            use_case_id TEXT NOT NULL REFERENCES use_cases(id) ON DELETE CASCADE,
            methodology TEXT NOT NULL,
            PRIMARY KEY (use_case_id, methodology)
        )""",
    ),
}

CURRENT_SCHEMA_VERSION = max(MIGRATIONS)


def connect(db_path: Path) -> sqlite3.Connection:
    """Open a connection in autocommit mode with foreign keys enforced.

    Transactions are opened explicitly through ``transaction``.
    """
    try:
        conn = sqlite3.connect(str(db_path), isolation_level=None)
    except sqlite3.Error as exc:
        raise PersistenceError(f"Cannot open database {db_path}: {exc}") from exc
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


class Migrator:
    """Bring a SQLite store up to ``CURRENT_SCHEMA_VERSION``.

    Usage:
        version = Migrator(db_path).migrate()
    """

    def __init__(self, db_path: Path, migrations: dict[int, tuple[str, ...]] | None = None):
        self.db_path = Path(db_path)
        self.migrations = migrations if migrations is not None else MIGRATIONS
        self.target_version = max(self.migrations)

    @staticmethod
    def read_version(conn: sqlite3.Connection) -> int:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = '_metadata'"
        ).fetchone()
        if row is None:
            return 0
        row = conn.execute(
            "SELECT value FROM _metadata WHERE key = ?", (SCHEMA_VERSION_KEY,)
        ).fetchone()
        return int(row["value"]) if row else 0

    def current_version(self) -> int:
        if not self.db_path.exists():
            return 0
        with closing(connect(self.db_path)) as conn:
            return self.read_version(conn)

    def migrate(self) -> int:
        """Apply pending steps and return the resulting schema version."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(connect(self.db_path)) as conn:
            version = self.read_version(conn)
            if version > self.target_version:
                raise MigrationError(
                    f"Database {self.db_path} has schema version {version}, "
                    f"newer than the supported version {self.target_version}",
                    hint="Upgrade mucm to open this project",
                )
            if version == 0:
                logger.info("Initializing database schema in %s", self.db_path)
            for step in range(version + 1, self.target_version + 1):
                self._apply(conn, step)
            return self.read_version(conn)

    def _apply(self, conn: sqlite3.Connection, step: int) -> None:
        logger.info("Applying schema migration %d", step)
        try:
            with transaction(conn):
                for statement in self.migrations[step]:
                    conn.execute(statement)
                conn.execute(
                    "INSERT OR REPLACE INTO _metadata (key, value, updated_at) VALUES (?, ?, ?)",
                    (SCHEMA_VERSION_KEY, str(step), utc_now().isoformat()),
                )
        except sqlite3.Error as exc:
            raise MigrationError(f"Schema migration {step} failed: {exc}") from exc
