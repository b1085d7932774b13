"""
In-memory store keeping rows as dicts, with journal-based transactions.
"""

from __future__ import annotations

import operator
import re
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..core.relations import MANY_TO_MANY
from ..errors import ConstraintViolationError, StoreError, TransactionError
from ..query.predicates import (
    AND,
    CONTAINS,
    ENDSWITH,
    EXACT,
    GT,
    GTE,
    ICONTAINS,
    IN,
    ISNULL,
    LOOKUPS,
    LT,
    LTE,
    NOT,
    NOT_IN,
    REGEX,
    STARTSWITH,
    Condition,
    Predicate,
)
from ..utils import get_logger
from .base import Row, StoreCapabilities

if TYPE_CHECKING:
    from ..core.model import Schema

RowFilter = Callable[[Row], bool]
Undo = Callable[[], None]

_COMPARISONS = {LT: operator.lt, LTE: operator.le, GT: operator.gt, GTE: operator.ge}


def _string_match(lookup: str, actual: Any, expected: str) -> bool:
    if not isinstance(actual, str):
        return False
    if lookup == CONTAINS:
        return expected in actual
    if lookup == STARTSWITH:
        return actual.startswith(expected)
    if lookup == ENDSWITH:
        return actual.endswith(expected)
    if lookup == ICONTAINS:
        return expected.lower() in actual.lower()
    return re.search(expected, actual) is not None


def _matches(lookup: str, actual: Any, expected: Any) -> bool:
    if lookup == ISNULL:
        return (actual is None) == bool(expected)
    if lookup == EXACT:
        if expected is None:
            return actual is None
        return actual is not None and actual == expected
    if lookup == NOT:
        if expected is None:
            return actual is not None
        return actual is None or actual != expected
    if lookup in _COMPARISONS:
        if actual is None:
            return False
        try:
            return bool(_COMPARISONS[lookup](actual, expected))
        except TypeError:
            return False
    if lookup == IN:
        return actual in expected
    if lookup == NOT_IN:
        return actual not in expected
    return _string_match(lookup, actual, expected)


@dataclass
class MemoryTable:
    name: str
    primary_key: Optional[str] = None
    autoincrement: bool = False
    unique: Tuple[Tuple[str, ...], ...] = ()
    rows: List[Row] = field(default_factory=list)
    counter: int = 0
    indexes: Dict[Tuple[str, ...], set] = field(default_factory=dict)

    def key(self, constraint: Tuple[str, ...], row: Row) -> Optional[Tuple[Any, ...]]:
        key = tuple(row.get(column) for column in constraint)
        if any(value is None for value in key):
            return None
        return key

    def reindex(self) -> None:
        self.indexes = {constraint: set() for constraint in self.unique}
        for row in self.rows:
            for constraint, keys in self.indexes.items():
                key = self.key(constraint, row)
                if key is not None:
                    keys.add(key)


class MemoryStore:
    """
    Store backed by Python lists. Uniqueness is enforced; foreign keys are not.

    Transactions keep an undo journal of the changes made since ``begin``;
    savepoints are positions in that journal.
    """

    def __init__(self) -> None:
        self.capabilities = StoreCapabilities(
            name="memory",
            lookups=LOOKUPS,
            supports_savepoints=True,
            enforces_unique=True,
            enforces_foreign_keys=False,
        )
        self._tables: Dict[str, MemoryTable] = {}
        self._journal: Optional[List[Undo]] = None
        self._savepoints: List[Tuple[str, int]] = []
        self._lock = threading.RLock()
        self.logger = get_logger("stores.memory")

    # ------------------------------------------------------------------ #
    # Schema
    # ------------------------------------------------------------------ #
    def create_table(
        self,
        name: str,
        *,
        primary_key: Optional[str] = None,
        autoincrement: bool = False,
        unique: Iterable[Sequence[str]] = (),
    ) -> None:
        with self._lock:
            if name in self._tables:
                return
            constraints = [tuple(columns) for columns in unique]
            if primary_key and (primary_key,) not in constraints:
                constraints.insert(0, (primary_key,))
            table = MemoryTable(
                name=name,
                primary_key=primary_key,
                autoincrement=autoincrement,
                unique=tuple(constraints),
            )
            table.reindex()
            self._tables[name] = table
            self._record(lambda: self._tables.pop(name, None))
            self.logger.debug("Created table %s", name)

    def apply_schema(self, schema: "Schema") -> None:
        for model in schema:
            pk = model.primary_key
            self.create_table(
                model.table_name,
                primary_key=pk.column_name() if pk else None,
                autoincrement=bool(pk and pk.default and pk.default.store_generated),
                unique=[(f.column_name(),) for f in model.fields.values() if f.unique],
            )
            for relation in model.relations.values():
                if relation.kind == MANY_TO_MANY and relation.join_column == "A":
                    self.create_table(relation.join_table or "", unique=[("A", "B")])

    def table_names(self) -> List[str]:
        return list(self._tables)

    def rows(self, table: str) -> List[Row]:
        with self._lock:
            return [dict(row) for row in self._table(table).rows]

    # ------------------------------------------------------------------ #
    # Filters
    # ------------------------------------------------------------------ #
    def translate(self, predicate: Predicate) -> RowFilter:
        if isinstance(predicate, Condition):
            column, lookup, expected = predicate.column, predicate.lookup, predicate.value
            if lookup == REGEX:
                pattern = re.compile(expected)
                return lambda row: isinstance(row.get(column), str) and pattern.search(row[column]) is not None
            return lambda row: _matches(lookup, row.get(column), expected)

        children = [self.translate(child) for child in predicate.children]
        combine = all if predicate.connector == AND else any

        def test(row: Row) -> bool:
            if not children:
                return True
            return combine(child(row) for child in children)

        if predicate.negated:
            return lambda row: not test(row)
        return test

    # ------------------------------------------------------------------ #
    # Row operations
    # ------------------------------------------------------------------ #
    def fetch_rows(
        self,
        table: str,
        where: Optional[RowFilter],
        projection: Optional[Sequence[str]] = None,
        ordering: Sequence[str] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Row]:
        with self._lock:
            rows = [row for row in self._table(table).rows if where is None or where(row)]
            for column in reversed(ordering):
                descending = column.startswith("-")
                name = column[1:] if descending else column
                rows.sort(key=lambda row: (row.get(name) is not None, row.get(name)), reverse=descending)
            start = offset or 0
            end = start + limit if limit is not None else None
            rows = rows[start:end]
            if projection:
                return [{column: row.get(column) for column in projection} for row in rows]
            return [dict(row) for row in rows]

    def write_row(self, table: str, values: Mapping[str, Any]) -> Row:
        with self._lock:
            target = self._table(table)
            row = dict(values)
            counter = target.counter
            pk = target.primary_key
            if pk and target.autoincrement:
                if row.get(pk) is None:
                    target.counter += 1
                    row[pk] = target.counter
                elif isinstance(row[pk], int):
                    target.counter = max(target.counter, row[pk])
            keys = []
            for constraint in target.unique:
                key = target.key(constraint, row)
                if key is not None and key in target.indexes[constraint]:
                    target.counter = counter
                    raise self._violation(target, constraint, key)
                keys.append((constraint, key))
            for constraint, key in keys:
                if key is not None:
                    target.indexes[constraint].add(key)
            target.rows.append(row)

            def undo() -> None:
                target.rows.pop()
                target.counter = counter
                for constraint, key in keys:
                    if key is not None:
                        target.indexes[constraint].discard(key)

            self._record(undo)
            return dict(row)

    def update_rows(self, table: str, where: Optional[RowFilter], values: Mapping[str, Any]) -> List[Row]:
        with self._lock:
            target = self._table(table)
            matched = [index for index, row in enumerate(target.rows) if where is None or where(row)]
            if not matched:
                return []
            updated = {index: {**target.rows[index], **values} for index in matched}
            others = [row for index, row in enumerate(target.rows) if index not in updated]
            self._check_unique(target, list(updated.values()), others, columns=set(values))
            previous = {index: target.rows[index] for index in updated}
            for index, row in updated.items():
                target.rows[index] = row
            target.reindex()

            def undo() -> None:
                for index, row in previous.items():
                    target.rows[index] = row
                target.reindex()

            self._record(undo)
            return [dict(row) for row in updated.values()]

    def delete_rows(self, table: str, where: Optional[RowFilter]) -> int:
        with self._lock:
            target = self._table(table)
            previous = target.rows
            kept = [row for row in previous if not (where is None or where(row))]
            removed = len(previous) - len(kept)
            if not removed:
                return 0
            target.rows = kept
            target.reindex()

            def undo() -> None:
                target.rows = previous
                target.reindex()

            self._record(undo)
            return removed

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    def begin(self) -> None:
        with self._lock:
            if self._journal is not None:
                raise TransactionError("A transaction is already active on this store")
            self._journal = []

    def commit(self) -> None:
        with self._lock:
            self._require_transaction()
            self._journal = None
            self._savepoints.clear()

    def rollback(self) -> None:
        with self._lock:
            self._require_transaction()
            self._undo_to(0)
            self._journal = None
            self._savepoints.clear()

    def savepoint(self, name: str) -> None:
        with self._lock:
            self._require_transaction()
            self._savepoints.append((name, len(self._journal or ())))

    def release_savepoint(self, name: str) -> None:
        with self._lock:
            index = self._savepoint_index(name)
            del self._savepoints[index:]

    def rollback_to_savepoint(self, name: str) -> None:
        with self._lock:
            index = self._savepoint_index(name)
            self._undo_to(self._savepoints[index][1])
            del self._savepoints[index + 1 :]

    def close(self) -> None:
        with self._lock:
            self._journal = None
            self._savepoints.clear()

    # ------------------------------------------------------------------ #
    def _table(self, name: str) -> MemoryTable:
        try:
            return self._tables[name]
        except KeyError:
            raise StoreError(f"Unknown table '{name}'", value=name) from None

    def _record(self, undo: Undo) -> None:
        if self._journal is not None:
            self._journal.append(undo)

    def _undo_to(self, position: int) -> None:
        journal = self._journal or []
        while len(journal) > position:
            journal.pop()()

    def _require_transaction(self) -> None:
        if self._journal is None:
            raise TransactionError("No active transaction on this store")

    def _savepoint_index(self, name: str) -> int:
        self._require_transaction()
        for index, (label, _) in enumerate(self._savepoints):
            if label == name:
                return index
        raise TransactionError(f"Unknown savepoint '{name}'", value=name)

    @staticmethod
    def _violation(table: MemoryTable, constraint: Tuple[str, ...], key: Tuple[Any, ...]) -> ConstraintViolationError:
        label = ", ".join(constraint)
        return ConstraintViolationError(
            f"Unique constraint failed on {table.name}({label})",
            field=constraint[0] if len(constraint) == 1 else None,
            value=key[0] if len(key) == 1 else key,
        )

    @classmethod
    def _check_unique(
        cls,
        table: MemoryTable,
        candidates: List[Row],
        existing: List[Row],
        *,
        columns: Optional[set[str]] = None,
    ) -> None:
        for constraint in table.unique:
            if columns is not None and not columns.intersection(constraint):
                continue
            seen = {key for key in (table.key(constraint, row) for row in existing) if key is not None}
            for row in candidates:
                key = table.key(constraint, row)
                if key is None:
                    continue
                if key in seen:
                    raise cls._violation(table, constraint, key)
                seen.add(key)
