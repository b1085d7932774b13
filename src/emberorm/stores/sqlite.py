"""
SQLite store implementation over the stdlib sqlite3 module.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, List, Mapping, Optional, Sequence, Union

from ..dialects.sqlite import SQLiteDialect
from ..errors import ConstraintViolationError, StoreError
from ..query.compiler import SQLCompiler, SQLFilter
from ..query.predicates import LOOKUPS, REGEX, Condition, Predicate
from ..security import redact_params
from ..utils import get_logger, time_call
from .base import ConnectionConfig, Row, StoreCapabilities

if TYPE_CHECKING:
    from ..core.model import Schema


@dataclass(slots=True)
class SQLiteConnectionState:
    connection: sqlite3.Connection


class SQLiteStore:
    """
    Store wrapping a single sqlite3 connection.

    The connection runs in autocommit mode; transactions are opened
    explicitly with ``BEGIN`` so savepoints nest inside them.
    """

    def __init__(
        self,
        config: Union[ConnectionConfig, str] = "sqlite:///:memory:",
        *,
        slow_query_ms: int = 200,
    ) -> None:
        self.config = config if isinstance(config, ConnectionConfig) else ConnectionConfig.from_url(config)
        self.dialect = SQLiteDialect()
        self.compiler = SQLCompiler(self.dialect)
        self.slow_query_ms = slow_query_ms
        self.capabilities = StoreCapabilities(
            name="sqlite",
            lookups=LOOKUPS - {REGEX},
            supports_savepoints=self.dialect.capabilities.supports_savepoints,
            enforces_unique=True,
            enforces_foreign_keys=True,
        )
        self.logger = get_logger("stores.sqlite")
        self._state: SQLiteConnectionState | None = None
        self.connect()

    # ------------------------------------------------------------------ #
    # Connection management
    # ------------------------------------------------------------------ #
    def connect(self) -> sqlite3.Connection:
        if self._state:
            return self._state.connection
        timeout = self.config.timeout if self.config.timeout is not None else 5.0
        try:
            connection = sqlite3.connect(
                self.config.path,
                isolation_level=None,
                timeout=timeout,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise StoreError(f"Could not open {self.config.descriptive_label()}: {exc}") from exc
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        self._state = SQLiteConnectionState(connection)
        self.logger.debug("Connected to %s", self.config.descriptive_label())
        return connection

    def close(self) -> None:
        if self._state:
            self._state.connection.close()
            self._state = None

    @property
    def in_transaction(self) -> bool:
        return self._ensure_connection().in_transaction

    def _ensure_connection(self) -> sqlite3.Connection:
        if not self._state:
            raise StoreError("SQLiteStore is not connected.")
        return self._state.connection

    # ------------------------------------------------------------------ #
    # Execution helpers
    # ------------------------------------------------------------------ #
    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        connection = self._ensure_connection()
        params = list(params or ())
        with time_call(
            "sqlite.execute",
            self.logger,
            statement=sql,
            params=redact_params(params),
            threshold_ms=self.slow_query_ms,
        ):
            try:
                return connection.execute(sql, params)
            except sqlite3.IntegrityError as exc:
                raise ConstraintViolationError(str(exc), field=self._constraint_column(str(exc))) from exc
            except sqlite3.Error as exc:
                raise StoreError(f"{exc} while executing: {sql}") from exc

    def executescript(self, statements: Iterable[str]) -> None:
        for statement in statements:
            self.execute(statement)

    # ------------------------------------------------------------------ #
    # Store interface
    # ------------------------------------------------------------------ #
    def translate(self, predicate: Predicate) -> SQLFilter:
        return self.compiler.compile_filter(predicate)

    def fetch_rows(
        self,
        table: str,
        where: Optional[SQLFilter],
        projection: Optional[Sequence[str]] = None,
        ordering: Sequence[str] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Row]:
        sql, params = self.compiler.select(table, projection, where or SQLFilter(""), ordering, limit, offset)
        return [dict(row) for row in self.execute(sql, params).fetchall()]

    def write_row(self, table: str, values: Mapping[str, Any]) -> Row:
        sql, params = self.compiler.insert(table, values)
        cursor = self.execute(sql, params)
        return self._rows_by_rowid(table, [cursor.lastrowid])[0]

    def update_rows(self, table: str, where: Optional[SQLFilter], values: Mapping[str, Any]) -> List[Row]:
        rowids = self._matching_rowids(table, where)
        if not rowids:
            return []
        by_rowid = self._rowid_filter(rowids)
        if values:
            sql, params = self.compiler.update(table, values, by_rowid)
            self.execute(sql, params)
        return self._rows_by_rowid(table, rowids)

    def delete_rows(self, table: str, where: Optional[SQLFilter]) -> int:
        sql, params = self.compiler.delete(table, where or SQLFilter(""))
        return self.execute(sql, params).rowcount

    def begin(self) -> None:
        self.execute("BEGIN")

    def commit(self) -> None:
        self.execute("COMMIT")

    def rollback(self) -> None:
        self.execute("ROLLBACK")

    def savepoint(self, name: str) -> None:
        self.execute(f"SAVEPOINT {self.dialect.quote_identifier(name)}")

    def release_savepoint(self, name: str) -> None:
        self.execute(f"RELEASE SAVEPOINT {self.dialect.quote_identifier(name)}")

    def rollback_to_savepoint(self, name: str) -> None:
        self.execute(f"ROLLBACK TO SAVEPOINT {self.dialect.quote_identifier(name)}")

    def apply_schema(self, schema: "Schema") -> None:
        from ..schema.builder import SchemaBuilder

        statements = SchemaBuilder(self.dialect).create_schema_sql(schema)
        owns_transaction = not self.in_transaction
        if owns_transaction:
            self.begin()
        try:
            self.executescript(statements)
        except Exception:
            if owns_transaction:
                self.rollback()
            raise
        if owns_transaction:
            self.commit()

    # ------------------------------------------------------------------ #
    def _matching_rowids(self, table: str, where: Optional[SQLFilter]) -> List[int]:
        sql, params = self.compiler.select(table, None, where or SQLFilter(""))
        sql = sql.replace("SELECT *", "SELECT rowid", 1)
        return [row[0] for row in self.execute(sql, params).fetchall()]

    def _rows_by_rowid(self, table: str, rowids: List[int]) -> List[Row]:
        where = self._rowid_filter(rowids)
        sql, params = self.compiler.select(table, None, where)
        rows = {row_id: None for row_id in rowids}
        sql = sql.replace("SELECT *", "SELECT rowid AS __rowid__, *", 1)
        for row in self.execute(sql, params).fetchall():
            data = dict(row)
            rows[data.pop("__rowid__")] = data
        return [row for row in rows.values() if row is not None]

    def _rowid_filter(self, rowids: List[int]) -> SQLFilter:
        sql, params = self.compiler.compile_filter(Condition("rowid", "in", tuple(rowids)))
        return SQLFilter(sql.replace('"rowid"', "rowid"), params)

    @staticmethod
    def _constraint_column(message: str) -> Optional[str]:
        # "UNIQUE constraint failed: user.email"
        if "constraint failed:" not in message:
            return None
        detail = message.split(":", 1)[1].strip().split(",")[0]
        return detail.rsplit(".", 1)[-1] or None
