"""
Simple migration engine executing DDL operations with version tracking.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, List, Sequence

from ..core.model import ModelDef, Schema
from ..errors import MigrationError
from ..security.migrations import confirm_destructive_operation
from ..stores.sqlite import SQLiteStore
from ..utils import get_logger
from .builder import SchemaBuilder


@dataclass
class MigrationOperation:
    sql: str
    destructive: bool = False
    force: bool = False
    description: str | None = None


class MigrationEngine:
    """
    Executes migrations against a SQL store and records applied versions.
    """

    def __init__(self, store: SQLiteStore, *, version_table: str = "emberorm_migrations") -> None:
        self.store = store
        self.dialect = store.dialect
        self.builder = SchemaBuilder(self.dialect)
        self.version_table = version_table
        self.logger = get_logger("schema.migration")
        self._ensure_version_table()

    def _ensure_version_table(self) -> None:
        table = self.dialect.format_table(self.version_table)
        sql = (
            f"CREATE TABLE IF NOT EXISTS {table} ("
            '"app" TEXT NOT NULL, '
            '"name" TEXT NOT NULL, '
            '"applied_at" TEXT NOT NULL, '
            'PRIMARY KEY("app", "name")'
            ")"
        )
        self.store.execute(sql)

    def applied_migrations(self) -> List[tuple[str, str]]:
        table = self.dialect.format_table(self.version_table)
        cursor = self.store.execute(f'SELECT "app", "name" FROM {table} ORDER BY "applied_at", rowid')
        return [(row["app"], row["name"]) for row in cursor.fetchall()]

    def is_applied(self, app: str, name: str) -> bool:
        return (app, name) in self.applied_migrations()

    def apply(self, app: str, name: str, operations: Sequence[MigrationOperation]) -> bool:
        """
        Run ``operations`` in one transaction. Returns False when the
        migration was already recorded and nothing ran.
        """

        if self.is_applied(app, name):
            self.logger.info("Migration %s.%s already applied; skipping", app, name)
            return False
        with self._transaction():
            for op in operations:
                if op.destructive:
                    description = op.description or op.sql
                    self.logger.warning(
                        "Destructive migration detected: %s (force=%s)", description, op.force
                    )
                    confirm_destructive_operation(description, force=op.force)
                self.store.execute(op.sql)
            self._record_migration(app, name)
        self.logger.info("Applied migration %s.%s (%s operations)", app, name, len(operations))
        return True

    # Operation factories -------------------------------------------------
    def create_schema_operations(self, schema: Schema) -> List[MigrationOperation]:
        return [
            MigrationOperation(sql=sql, description=sql.split("(", 1)[0].strip())
            for sql in self.builder.create_schema_sql(schema)
        ]

    def drop_model_operation(self, model: ModelDef, *, force: bool = False) -> MigrationOperation:
        return MigrationOperation(
            sql=self.builder.drop_table_sql(model.table_name),
            destructive=True,
            force=force,
            description=f"drop table {model.table_name}",
        )

    def migrate(self, schema: Schema, *, app: str = "default", name: str = "0001_initial") -> bool:
        return self.apply(app, name, self.create_schema_operations(schema))

    # ------------------------------------------------------------------ #
    @contextmanager
    def _transaction(self) -> Iterator[None]:
        if self.store.in_transaction:
            raise MigrationError("Migrations cannot run inside an open transaction")
        self.store.begin()
        try:
            yield
        except Exception:
            self.store.rollback()
            raise
        else:
            self.store.commit()

    def _record_migration(self, app: str, name: str) -> None:
        table = self.dialect.format_table(self.version_table)
        timestamp = datetime.now(timezone.utc).isoformat()
        self.store.execute(
            f'INSERT INTO {table} ("app", "name", "applied_at") VALUES (?, ?, ?)',
            (app, name, timestamp),
        )
