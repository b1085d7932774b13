"""
Execution engine running query descriptors against a store.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, TypeVar

from ..config import EngineConfig
from ..core.model import ModelDef, Schema
from ..core.record import Record
from ..core.relations import MANY_TO_MANY
from ..errors import (
    ConstraintViolationError,
    EmberError,
    NotFoundError,
    UnsupportedOperationError,
    ValidationError,
)
from ..hooks import (
    AFTER_COMMIT,
    AFTER_CREATE,
    AFTER_DELETE,
    AFTER_UPDATE,
    BEFORE_CREATE,
    BEFORE_DELETE,
    BEFORE_UPDATE,
    HookDispatcher,
)
from ..query.builder import QueryBuilder
from ..query.descriptor import CREATE, DELETE, READ, UPDATE, QueryDescriptor, validate_descriptor
from ..query.expressions import Q, as_q
from ..query.predicates import EXACT, IN, MATCH_ALL, NOT_IN, Condition, Junction, Predicate, conjunction, lookups_in
from ..security import redact_fields, redact_predicate
from ..stores.base import Row, Store
from ..utils import get_logger, time_call
from ..utils.performance import PerformanceTracker
from .cancellation import CancellationToken
from .lowering import FilterLowering
from .mapper import RecordMapper, RecordSet
from .resolver import RelationResolver
from .result import Result
from .transaction import TransactionManager

T = TypeVar("T")


class Engine:
    """
    Runs queries and writes for one schema against one store.

    Engines are constructed explicitly and passed to the code that needs
    them. All store access goes through the engine's re-entrant lock, so
    operations on one engine execute one at a time in submission order;
    a transaction holds the lock until it commits or rolls back.
    """

    def __init__(
        self,
        schema: Schema,
        store: Store,
        *,
        config: Optional[EngineConfig] = None,
        hooks: Optional[HookDispatcher] = None,
    ) -> None:
        self.schema = schema
        self.store = store
        self.config = config or EngineConfig()
        self.hooks = hooks or HookDispatcher()
        self.logger = get_logger("engine")
        self.stats = PerformanceTracker(
            get_logger("engine.stats"),
            n_plus_one_threshold=self.config.n_plus_one_threshold,
        )
        self.transactions = TransactionManager(store)
        self.mapper = RecordMapper()
        self.lowering = FilterLowering(schema, self._fetch)
        self.resolver = RelationResolver(schema, self.mapper, self.lowering, self._fetch)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Query entry points
    # ------------------------------------------------------------------ #
    def query(self, model: str) -> QueryBuilder:
        self.schema.resolve(model)
        return QueryBuilder(self.schema, model, max_depth=self.config.max_include_depth)

    def execute(self, descriptor: QueryDescriptor, *, cancel: Optional[CancellationToken] = None) -> Any:
        """
        Run a descriptor. Reads return a :class:`RecordSet`, creates a
        :class:`Record`, updates a tuple of records and deletes a count.
        """

        model = validate_descriptor(self.schema, descriptor, max_depth=self.config.max_include_depth)
        if descriptor.operation == READ:
            return self._read(model, descriptor, cancel)
        if descriptor.operation == CREATE:
            return self._create(model, descriptor.data, cancel)
        if descriptor.operation == UPDATE:
            return self._update(model, descriptor.where, descriptor.data, cancel)
        return self._delete(model, descriptor.where, cancel)

    def try_execute(
        self,
        operation: QueryDescriptor | Callable[["Engine"], T],
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> Result[Any]:
        """
        Like ``execute`` (or calling ``operation(engine)``) but returns a
        :class:`Result` instead of raising emberorm errors.
        """

        try:
            if isinstance(operation, QueryDescriptor):
                value = self.execute(operation, cancel=cancel)
            else:
                value = operation(self)
        except EmberError as exc:
            self.logger.info("Operation failed with %s: %s", exc.kind, exc.message)
            return Result.failure(exc)
        return Result.success(value)

    def find_many(
        self, model: str, where: Any = None, *, cancel: Optional[CancellationToken] = None
    ) -> RecordSet:
        return self.execute(QueryDescriptor(model=model, where=as_q(where)), cancel=cancel)

    def find_first(
        self, model: str, where: Any = None, *, cancel: Optional[CancellationToken] = None
    ) -> Optional[Record]:
        records = self.execute(QueryDescriptor(model=model, where=as_q(where), limit=1), cancel=cancel)
        return records[0] if records else None

    def get(self, model: str, pk: Any, *, cancel: Optional[CancellationToken] = None) -> Record:
        model_def = self.schema.resolve(model)
        record = self.find_first(model, {model_def.pk_name: pk}, cancel=cancel)
        if record is None:
            raise NotFoundError(
                f"No {model} with {model_def.pk_name}={pk!r}",
                model=model,
                field=model_def.pk_name,
                value=pk,
            )
        return record

    def count(self, model: str, where: Any = None, *, cancel: Optional[CancellationToken] = None) -> int:
        model_def = self.schema.resolve(model)
        with self._lock:
            predicate = self.lowering.lower(model_def, as_q(where), cancel)
            rows = self._fetch(
                model_def.table_name,
                predicate,
                [model_def.primary_key.column_name()],
                cancel=cancel,
                model=model,
            )
        return len(rows)

    # ------------------------------------------------------------------ #
    # Write entry points
    # ------------------------------------------------------------------ #
    def create(self, model: str, data: Mapping[str, Any], *, cancel: Optional[CancellationToken] = None) -> Record:
        return self.execute(QueryDescriptor(model=model, operation=CREATE, data=data), cancel=cancel)

    def create_many(
        self,
        model: str,
        rows: Iterable[Mapping[str, Any]],
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> tuple[Record, ...]:
        """Create several records atomically."""
        with self.transaction():
            return tuple(self.create(model, data, cancel=cancel) for data in rows)

    def update(
        self,
        model: str,
        where: Any,
        data: Mapping[str, Any],
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> tuple[Record, ...]:
        return self.execute(
            QueryDescriptor(model=model, operation=UPDATE, where=as_q(where), data=data), cancel=cancel
        )

    def delete(self, model: str, where: Any, *, cancel: Optional[CancellationToken] = None) -> int:
        return self.execute(QueryDescriptor(model=model, operation=DELETE, where=as_q(where)), cancel=cancel)

    def connect(
        self,
        model: str,
        pk: Any,
        relation: str,
        targets: Sequence[Any],
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        """
        Link a record to target records through a many-to-many relation.
        Returns how many new links were written; existing links are kept.
        """

        model_def, relation_def, target = self._many_to_many(model, relation)
        with self.transaction():
            self.get(model, pk, cancel=cancel)
            target_ids = list(dict.fromkeys(targets))
            existing = self.find_many(target.name, {f"{target.pk_name}__in": target_ids}, cancel=cancel)
            missing = set(target_ids) - {record[target.pk_name] for record in existing}
            if missing:
                raise NotFoundError(
                    f"No {target.name} with {target.pk_name} in {sorted(missing, key=repr)!r}",
                    model=target.name,
                    field=target.pk_name,
                    value=sorted(missing, key=repr),
                )
            local = model_def.primary_key.to_store(pk)
            linked = self._fetch(
                relation_def.join_table,
                Condition(relation_def.join_column, EXACT, local),
                [relation_def.target_join_column],
                cancel=cancel,
                model=model,
            )
            already = {row[relation_def.target_join_column] for row in linked}
            written = 0
            for target_id in target_ids:
                remote = target.primary_key.to_store(target_id)
                if remote in already:
                    continue
                self._store_call(
                    "write",
                    relation_def.join_table,
                    MATCH_ALL,
                    cancel,
                    model,
                    self.store.write_row,
                    relation_def.join_table,
                    {relation_def.join_column: local, relation_def.target_join_column: remote},
                )
                written += 1
        self.logger.info("Connected %s %r to %s %s record(s)", model, pk, written, target.name)
        return written

    def disconnect(
        self,
        model: str,
        pk: Any,
        relation: str,
        targets: Sequence[Any],
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        model_def, relation_def, target = self._many_to_many(model, relation)
        predicate = Junction(
            children=(
                Condition(relation_def.join_column, EXACT, model_def.primary_key.to_store(pk)),
                Condition(
                    relation_def.target_join_column,
                    IN,
                    tuple(target.primary_key.to_store(t) for t in targets),
                ),
            )
        )
        with self.transaction():
            removed = self._store_call(
                "delete",
                relation_def.join_table,
                predicate,
                cancel,
                model,
                self.store.delete_rows,
                relation_def.join_table,
                self.store.translate(predicate),
            )
        self.logger.info("Disconnected %s %r from %s %s record(s)", model, pk, removed, target.name)
        return removed

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    @contextmanager
    def transaction(self) -> Iterator["Engine"]:
        """
        Commit on success, roll back everything on any exception. Nested
        blocks become savepoints of the enclosing transaction.
        """

        with self._lock:
            with self.transactions.transaction():
                yield self
            if self.transactions.depth == 0:
                self.hooks.fire(AFTER_COMMIT, None, engine=self)

    def run_transaction(self, operations: Callable[["Engine"], T]) -> T:
        with self.transaction() as engine:
            return operations(engine)

    @property
    def in_transaction(self) -> bool:
        return self.transactions.depth > 0

    def close(self) -> None:
        with self._lock:
            self.store.close()

    # ------------------------------------------------------------------ #
    # Operation bodies
    # ------------------------------------------------------------------ #
    def _read(self, model: ModelDef, descriptor: QueryDescriptor, cancel: Optional[CancellationToken]) -> RecordSet:
        fields = self._projected_fields(model, descriptor)
        with self._lock:
            predicate = self.lowering.lower(model, descriptor.where, cancel)
            rows = self._fetch(
                model.table_name,
                predicate,
                [f.column_name() for f in fields],
                self._ordering(model, descriptor.ordering),
                descriptor.limit,
                descriptor.offset,
                cancel=cancel,
                model=model.name,
            )
            records = self.mapper.map_rows(model, rows, fields)
            return self.resolver.resolve(model, records, descriptor.includes, cancel)

    def _create(self, model: ModelDef, data: Mapping[str, Any], cancel: Optional[CancellationToken]) -> Record:
        payload = dict(data)
        with self.transaction():
            self.hooks.fire(BEFORE_CREATE, model.name, data=payload)
            values = self._prepare_create(model, payload)
            self.logger.debug("Creating %s with %s", model.name, redact_fields(values, model))
            if self.config.check_unique:
                self._check_unique(model, values, cancel)
            if self.config.check_foreign_keys:
                self._check_foreign_keys(model, values, cancel)
            row = self._store_call(
                "write",
                model.table_name,
                MATCH_ALL,
                cancel,
                model.name,
                self.store.write_row,
                model.table_name,
                self.mapper.encode(model, values),
            )
            record = self.mapper.map_row(model, row)
            self.hooks.fire(AFTER_CREATE, model.name, record=record)
        return record

    def _update(
        self,
        model: ModelDef,
        where: Q,
        data: Mapping[str, Any],
        cancel: Optional[CancellationToken],
    ) -> tuple[Record, ...]:
        changes = dict(data)
        pk = model.primary_key
        with self.transaction():
            predicate = self.lowering.lower(model, where, cancel)
            matched = self._fetch(model.table_name, predicate, [pk.column_name()], cancel=cancel, model=model.name)
            if not matched:
                self.logger.debug("Update on %s matched no rows", model.name)
                return ()
            keys = tuple(row[pk.column_name()] for row in matched)
            self.hooks.fire(BEFORE_UPDATE, model.name, keys=keys, data=changes)
            values = self._prepare_update(model, changes)
            if self.config.check_unique:
                self._check_unique(model, values, cancel, exclude=keys)
            if self.config.check_foreign_keys:
                self._check_foreign_keys(model, values, cancel)
            by_key = Condition(pk.column_name(), IN, keys)
            rows = self._store_call(
                "update",
                model.table_name,
                by_key,
                cancel,
                model.name,
                self.store.update_rows,
                model.table_name,
                self.store.translate(by_key),
                self.mapper.encode(model, values),
            )
            records = tuple(self.mapper.map_row(model, row) for row in rows)
            self.hooks.fire(AFTER_UPDATE, model.name, records=records)
        return records

    def _delete(self, model: ModelDef, where: Q, cancel: Optional[CancellationToken]) -> int:
        pk = model.primary_key
        with self.transaction():
            predicate = self.lowering.lower(model, where, cancel)
            matched = self._fetch(model.table_name, predicate, [pk.column_name()], cancel=cancel, model=model.name)
            if not matched:
                self.logger.debug("Delete on %s matched no rows", model.name)
                return 0
            keys = tuple(row[pk.column_name()] for row in matched)
            self.hooks.fire(BEFORE_DELETE, model.name, keys=keys)
            for relation in model.relations.values():
                if relation.kind != MANY_TO_MANY:
                    continue
                links = Condition(relation.join_column, IN, keys)
                self._store_call(
                    "delete",
                    relation.join_table,
                    links,
                    cancel,
                    model.name,
                    self.store.delete_rows,
                    relation.join_table,
                    self.store.translate(links),
                )
            by_key = Condition(pk.column_name(), IN, keys)
            removed = self._store_call(
                "delete",
                model.table_name,
                by_key,
                cancel,
                model.name,
                self.store.delete_rows,
                model.table_name,
                self.store.translate(by_key),
            )
            self.hooks.fire(AFTER_DELETE, model.name, keys=keys, count=removed)
        return removed

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #
    def _prepare_create(self, model: ModelDef, data: Mapping[str, Any]) -> Dict[str, Any]:
        errors = self._unknown_keys(model, data)
        values: Dict[str, Any] = {}
        for field in model.scalar_fields():
            if field.name in data:
                try:
                    values[field.name] = field.to_python(data[field.name])
                except ValueError as exc:
                    errors.setdefault(field.qualified_name, []).append(str(exc))
            elif field.default is not None and field.default.store_generated:
                continue
            elif field.has_default:
                values[field.name] = field.get_default()
            elif field.nullable:
                values[field.name] = None
            else:
                errors.setdefault(field.qualified_name, []).append(
                    f"Field '{field.qualified_name}' is required."
                )
        if errors:
            raise ValidationError(errors, model=model.name)
        return values

    def _prepare_update(self, model: ModelDef, data: Mapping[str, Any]) -> Dict[str, Any]:
        errors = self._unknown_keys(model, data)
        values: Dict[str, Any] = {}
        for name, raw in data.items():
            if name not in model.fields:
                continue
            field = model.fields[name]
            if field.primary_key:
                errors.setdefault(field.qualified_name, []).append(
                    f"Primary key '{field.qualified_name}' cannot be updated."
                )
                continue
            try:
                values[name] = field.to_python(raw)
            except ValueError as exc:
                errors.setdefault(field.qualified_name, []).append(str(exc))
        if errors:
            raise ValidationError(errors, model=model.name)
        for field in model.scalar_fields():
            if field.updated_at and field.name not in values:
                values[field.name] = field.get_default()
        return values

    @staticmethod
    def _unknown_keys(model: ModelDef, data: Mapping[str, Any]) -> Dict[str, List[str]]:
        errors: Dict[str, List[str]] = {}
        for key in data:
            if key in model.fields:
                continue
            location = f"{model.name}.{key}"
            if key in model.relations:
                relation = model.relations[key]
                hint = f"set '{relation.fk_field}'" if relation.owning else "use connect() or the owning side"
                errors[location] = [f"Relation field '{location}' cannot be written directly; {hint}."]
            else:
                errors[location] = [f"Unknown field '{key}' on model '{model.name}'."]
        return errors

    def _check_unique(
        self,
        model: ModelDef,
        values: Mapping[str, Any],
        cancel: Optional[CancellationToken],
        *,
        exclude: Sequence[Any] = (),
    ) -> None:
        pk = model.primary_key
        for field in model.unique_fields():
            value = values.get(field.name)
            if value is None:
                continue
            if exclude and len(exclude) > 1:
                raise ConstraintViolationError(
                    f"Unique constraint failed on '{field.qualified_name}': "
                    f"{len(exclude)} rows would share the value {value!r}",
                    model=model.name,
                    field=field.name,
                    value=value,
                )
            predicate: Predicate = Condition(field.column_name(), EXACT, field.to_store(value))
            if exclude:
                predicate = conjunction(predicate, Condition(pk.column_name(), NOT_IN, tuple(exclude)))
            clash = self._fetch(model.table_name, predicate, [pk.column_name()], limit=1, cancel=cancel, model=model.name)
            if clash:
                raise ConstraintViolationError(
                    f"Unique constraint failed on '{field.qualified_name}' for value {value!r}",
                    model=model.name,
                    field=field.name,
                    value=value,
                )

    def _check_foreign_keys(
        self, model: ModelDef, values: Mapping[str, Any], cancel: Optional[CancellationToken]
    ) -> None:
        for relation in model.owning_relations():
            value = values.get(relation.fk_field or "")
            if value is None:
                continue
            target = self.schema.resolve(relation.target)
            referenced = target.get_field(relation.references or "")
            found = self._fetch(
                target.table_name,
                Condition(referenced.column_name(), EXACT, referenced.to_store(value)),
                [referenced.column_name()],
                limit=1,
                cancel=cancel,
                model=target.name,
            )
            if not found:
                raise ConstraintViolationError(
                    f"Foreign key constraint failed on '{model.name}.{relation.fk_field}': "
                    f"no {target.name} with {referenced.name}={value!r}",
                    model=model.name,
                    field=relation.fk_field,
                    value=value,
                )

    # ------------------------------------------------------------------ #
    # Store access
    # ------------------------------------------------------------------ #
    def _fetch(
        self,
        table: str,
        predicate: Predicate,
        projection: Optional[Sequence[str]] = None,
        ordering: Sequence[str] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        *,
        cancel: Optional[CancellationToken] = None,
        model: Optional[str] = None,
    ) -> List[Row]:
        unsupported = lookups_in(predicate) - self.store.capabilities.lookups
        if unsupported:
            raise UnsupportedOperationError(
                f"Store '{self.store.capabilities.name}' does not support lookup(s) "
                f"{', '.join(sorted(unsupported))}",
                model=model,
                value=sorted(unsupported),
            )
        return self._store_call(
            "fetch",
            table,
            predicate,
            cancel,
            model,
            self.store.fetch_rows,
            table,
            self.store.translate(predicate),
            projection,
            ordering,
            limit,
            offset,
        )

    def _store_call(
        self,
        operation: str,
        table: str,
        predicate: Predicate,
        cancel: Optional[CancellationToken],
        model: Optional[str],
        call: Callable[..., T],
        *args: Any,
    ) -> T:
        if cancel is not None:
            cancel.raise_if_cancelled(f"{operation} on {table}", model=model)
        shape = f"{operation} {table} {predicate.shape()}"
        params = predicate.params()
        with self._lock:
            with time_call(
                f"store.{operation}",
                self.logger,
                statement=shape,
                params=redact_predicate(predicate),
                threshold_ms=self.config.slow_query_ms,
            ) as timer:
                result = call(*args)
        self.stats.record(shape, params, timer.elapsed_ms)
        return result

    # ------------------------------------------------------------------ #
    def _projected_fields(self, model: ModelDef, descriptor: QueryDescriptor):
        if not descriptor.projection:
            return model.scalar_fields()
        keep = {model.pk_name, *descriptor.projection}
        for include in descriptor.includes:
            relation = model.get_relation(include.relation)
            if relation.local_key:
                keep.add(relation.local_key)
        return [f for f in model.scalar_fields() if f.name in keep]

    @staticmethod
    def _ordering(model: ModelDef, ordering: Sequence[str]) -> tuple[str, ...]:
        columns = []
        for name in ordering:
            descending = name.startswith("-")
            column = model.column_for(name[1:] if descending else name)
            columns.append(f"-{column}" if descending else column)
        return tuple(columns)

    def _many_to_many(self, model: str, relation: str):
        model_def = self.schema.resolve(model)
        relation_def = model_def.get_relation(relation)
        if relation_def.kind != MANY_TO_MANY:
            raise UnsupportedOperationError(
                f"connect/disconnect require a many-to-many relation; "
                f"'{relation_def.qualified_name}' is {relation_def.kind}",
                model=model,
                field=relation,
            )
        return model_def, relation_def, self.schema.resolve(relation_def.target)

    def __repr__(self) -> str:
        return f"<Engine store={self.store.capabilities.name} models={len(self.schema)}>"
