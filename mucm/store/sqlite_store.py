"""
Relational backend on SQLite.

Aggregates are normalized over the tables created by ``migrations``. A save
deletes the use case row (children go with it through ``ON DELETE CASCADE``)
and inserts the whole aggregate again inside one transaction. Unknown
attributes travel in the ``extra_json`` columns.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Optional

from mucm.errors import MucmError, PersistenceError
from mucm.models import (
    Condition,
    Metadata,
    MethodologyView,
    Scenario,
    ScenarioReference,
    ScenarioStep,
    UseCase,
    UseCaseReference,
    validate_use_case_id,
)
from mucm.store.base import UseCaseRepository
from mucm.store.migrations import Migrator, connect, transaction

logger = logging.getLogger(__name__)


def _metadata_from_row(row: sqlite3.Row) -> Metadata:
    return Metadata.from_dict({"created_at": row["created_at"], "updated_at": row["updated_at"]})


class SqliteRepository(UseCaseRepository):
    """Use cases in a SQLite database; rendered views still go to files.

    The schema is migrated once when the repository is constructed. Every
    public call opens and closes its own connection.
    """

    name = "sqlite"

    def __init__(self, db_path: Path, use_case_dir: Path):
        super().__init__(use_case_dir)
        self.db_path = Path(db_path)
        self.schema_version = Migrator(self.db_path).migrate()

    # -- writes ------------------------------------------------------------------

    def save(self, use_case: UseCase) -> None:
        use_case.validate()
        try:
            with closing(connect(self.db_path)) as conn, transaction(conn):
                conn.execute("DELETE FROM use_cases WHERE id = ?", (use_case.id,))
                self._insert(conn, use_case)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to save use case '{use_case.id}': {exc}") from exc
        logger.debug("Saved %s to %s", use_case.id, self.db_path)

    def _insert(self, conn: sqlite3.Connection, uc: UseCase) -> None:
        meta = uc.metadata.to_dict()
        conn.execute(
            "INSERT INTO use_cases (id, title, category, description, priority, created_at, updated_at, extra_json) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (uc.id, uc.title, uc.category, uc.description, uc.priority.value,
             meta["created_at"], meta["updated_at"], json.dumps(uc.extra)),
        )
        for table, conditions in (
            ("use_case_preconditions", uc.preconditions),
            ("use_case_postconditions", uc.postconditions),
        ):
            conn.executemany(
                f"INSERT INTO {table} (use_case_id, seq, text, target_type, target_id, relationship) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (uc.id, seq, c.text, c.target_type.value if c.target_type else None,
                     c.target_id, c.relationship)
                    for seq, c in enumerate(conditions)
                ],
            )
        conn.executemany(
            "INSERT INTO use_case_references (use_case_id, seq, target_id, relationship, description) "
            "VALUES (?, ?, ?, ?, ?)",
            [(uc.id, seq, r.target_id, r.relationship, r.description) for seq, r in enumerate(uc.references)],
        )
        conn.executemany(
            "INSERT INTO methodology_views (use_case_id, position, methodology, level, enabled) "
            "VALUES (?, ?, ?, ?, ?)",
            [(uc.id, pos, v.methodology, v.level, int(v.enabled)) for pos, v in enumerate(uc.views)],
        )
        conn.executemany(
            "INSERT INTO methodology_field_groups (use_case_id, methodology) VALUES (?, ?)",
            [(uc.id, m) for m in uc.methodology_fields],
        )
        conn.executemany(
            "INSERT INTO methodology_fields (use_case_id, methodology, field_name, value_json) "
            "VALUES (?, ?, ?, ?)",
            [
                (uc.id, m, name, json.dumps(value))
                for m, values in uc.methodology_fields.items()
                for name, value in values.items()
            ],
        )
        conn.executemany(
            "INSERT INTO scenario_tombstones (use_case_id, scenario_id) VALUES (?, ?)",
            [(uc.id, sid) for sid in uc.retired_scenario_ids],
        )
        for pos, scenario in enumerate(uc.scenarios):
            self._insert_scenario(conn, uc.id, pos, scenario)

    def _insert_scenario(self, conn: sqlite3.Connection, use_case_id: str, pos: int, s: Scenario) -> None:
        meta = s.metadata.to_dict()
        conn.execute(
            "INSERT INTO scenarios (id, use_case_id, position, title, description, type, status, persona, "
            "created_at, updated_at, extra_json) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (s.id, use_case_id, pos, s.title, s.description, s.scenario_type.value, s.status.value,
             s.persona, meta["created_at"], meta["updated_at"], json.dumps(s.extra)),
        )
        conn.executemany(
            "INSERT INTO scenario_steps (scenario_id, step_order, actor, receiver, action, description, notes) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                (s.id, step.order, step.actor.name, step.receiver.name if step.receiver else None,
                 step.action, step.description, step.notes)
                for step in s.steps
            ],
        )
        conn.executemany(
            "INSERT INTO scenario_references (scenario_id, seq, ref_type, target_id, relationship, description) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            [
                (s.id, seq, r.ref_type.value, r.target_id, r.relationship, r.description)
                for seq, r in enumerate(s.references)
            ],
        )

    def _delete_record(self, use_case: UseCase) -> None:
        try:
            with closing(connect(self.db_path)) as conn, transaction(conn):
                conn.execute("DELETE FROM use_cases WHERE id = ?", (use_case.id,))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to delete use case '{use_case.id}': {exc}") from exc

    # -- reads -------------------------------------------------------------------

    def load_by_id(self, use_case_id: str) -> Optional[UseCase]:
        validate_use_case_id(use_case_id)
        try:
            with closing(connect(self.db_path)) as conn:
                return self._assemble(conn, use_case_id)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to load use case '{use_case_id}': {exc}") from exc

    def load_all(self) -> list[UseCase]:
        try:
            with closing(connect(self.db_path)) as conn:
                ids = [row["id"] for row in conn.execute("SELECT id FROM use_cases ORDER BY id")]
                return [self._assemble(conn, uc_id) for uc_id in ids]
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to load use cases: {exc}") from exc

    def existing_ids(self) -> set[str]:
        with closing(connect(self.db_path)) as conn:
            return {row["id"] for row in conn.execute("SELECT id FROM use_cases")}

    def _conditions(self, conn: sqlite3.Connection, table: str, use_case_id: str) -> list[Condition]:
        rows = conn.execute(
            f"SELECT text, target_type, target_id, relationship FROM {table} WHERE use_case_id = ? ORDER BY seq",
            (use_case_id,),
        )
        return [
            Condition(text=r["text"], target_type=r["target_type"], target_id=r["target_id"],
                      relationship=r["relationship"])
            for r in rows
        ]

    def _assemble(self, conn: sqlite3.Connection, use_case_id: str) -> Optional[UseCase]:
        row = conn.execute("SELECT * FROM use_cases WHERE id = ?", (use_case_id,)).fetchone()
        if row is None:
            return None
        try:
            fields: dict[str, dict] = {
                r["methodology"]: {}
                for r in conn.execute(
                    "SELECT methodology FROM methodology_field_groups WHERE use_case_id = ? ORDER BY rowid",
                    (use_case_id,),
                )
            }
            for r in conn.execute(
                "SELECT methodology, field_name, value_json FROM methodology_fields "
                "WHERE use_case_id = ? ORDER BY rowid",
                (use_case_id,),
            ):
                fields.setdefault(r["methodology"], {})[r["field_name"]] = json.loads(r["value_json"])

            return UseCase(
                id=row["id"],
                title=row["title"],
                category=row["category"],
                description=row["description"],
                priority=row["priority"],
                scenarios=self._scenarios(conn, use_case_id),
                preconditions=self._conditions(conn, "use_case_preconditions", use_case_id),
                postconditions=self._conditions(conn, "use_case_postconditions", use_case_id),
                references=[
                    UseCaseReference(target_id=r["target_id"], relationship=r["relationship"],
                                     description=r["description"])
                    for r in conn.execute(
                        "SELECT * FROM use_case_references WHERE use_case_id = ? ORDER BY seq", (use_case_id,)
                    )
                ],
                views=[
                    MethodologyView(methodology=r["methodology"], level=r["level"], enabled=bool(r["enabled"]))
                    for r in conn.execute(
                        "SELECT * FROM methodology_views WHERE use_case_id = ? ORDER BY position", (use_case_id,)
                    )
                ],
                methodology_fields=fields,
                metadata=_metadata_from_row(row),
                extra=json.loads(row["extra_json"] or "{}"),
                retired_scenario_ids=[
                    r["scenario_id"]
                    for r in conn.execute(
                        "SELECT scenario_id FROM scenario_tombstones WHERE use_case_id = ? ORDER BY rowid",
                        (use_case_id,),
                    )
                ],
            )
        except (MucmError, ValueError) as exc:
            raise PersistenceError(f"Invalid use case data for '{use_case_id}': {exc}") from exc

    def _scenarios(self, conn: sqlite3.Connection, use_case_id: str) -> list[Scenario]:
        scenarios = []
        for row in conn.execute(
            "SELECT * FROM scenarios WHERE use_case_id = ? ORDER BY position", (use_case_id,)
        ).fetchall():
            steps = [
                ScenarioStep(order=r["step_order"], actor=r["actor"], action=r["action"],
                             description=r["description"], receiver=r["receiver"], notes=r["notes"])
                for r in conn.execute(
                    "SELECT * FROM scenario_steps WHERE scenario_id = ? ORDER BY step_order", (row["id"],)
                )
            ]
            references = [
                ScenarioReference(ref_type=r["ref_type"], target_id=r["target_id"],
                                  relationship=r["relationship"], description=r["description"])
                for r in conn.execute(
                    "SELECT * FROM scenario_references WHERE scenario_id = ? ORDER BY seq", (row["id"],)
                )
            ]
            scenarios.append(Scenario(
                id=row["id"],
                title=row["title"],
                description=row["description"],
                scenario_type=row["type"],
                status=row["status"],
                persona=row["persona"],
                steps=steps,
                references=references,
                metadata=_metadata_from_row(row),
                extra=json.loads(row["extra_json"] or "{}"),
            ))
        return scenarios
