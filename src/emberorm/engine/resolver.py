"""
Batched relation resolution for ``include`` trees.

Each include issues one fetch for the whole batch of parent records (two for
many-to-many: the join table, then the target table). Includes on one level
resolve in declaration order; nested includes resolve depth-first once their
parent level is complete.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from ..core.model import ModelDef, Schema
from ..core.record import ABSENT, Record
from ..core.relations import MANY_TO_MANY, RelationDef
from ..errors import TypeMismatchError
from ..query.descriptor import Include
from ..query.predicates import IN, Condition, conjunction
from ..utils import get_logger
from .lowering import Fetch, FilterLowering
from .mapper import RecordMapper, RecordSet

if TYPE_CHECKING:
    from .cancellation import CancellationToken


class RelationResolver:
    def __init__(self, schema: Schema, mapper: RecordMapper, lowering: FilterLowering, fetch: Fetch) -> None:
        self.schema = schema
        self.mapper = mapper
        self.lowering = lowering
        self.fetch = fetch
        self.logger = get_logger("engine.resolver")

    def resolve(
        self,
        model: ModelDef,
        records: RecordSet,
        includes: Sequence[Include],
        cancel: Optional["CancellationToken"] = None,
    ) -> RecordSet:
        if not includes or not records:
            return records
        errors: List[TypeMismatchError] = list(records.errors)
        loaded: List[Tuple[Include, RelationDef, ModelDef, Dict[int, Any], RecordSet]] = []

        for include in includes:
            relation = model.get_relation(include.relation)
            target = self.schema.resolve(relation.target)
            assignments, related = self._load(model, relation, target, include, records, cancel)
            errors.extend(related.errors)
            loaded.append((include, relation, target, assignments, related))

        updated = [dict() for _ in records]
        for include, relation, target, assignments, related in loaded:
            if include.children and related:
                resolved = self.resolve(target, related, include.children, cancel)
                errors.extend(resolved.errors[len(related.errors):])
                replacements = {id(before): after for before, after in zip(related, resolved)}
                assignments = {
                    index: _replace(value, replacements) for index, value in assignments.items()
                }
            for index in range(len(records)):
                updated[index][relation.name] = assignments.get(index, () if relation.to_many else None)

        return RecordSet(
            (record.with_related(**related) for record, related in zip(records, updated)),
            errors,
        )

    # ------------------------------------------------------------------ #
    def _load(
        self,
        model: ModelDef,
        relation: RelationDef,
        target: ModelDef,
        include: Include,
        parents: RecordSet,
        cancel: Optional["CancellationToken"],
    ) -> Tuple[Dict[int, Any], RecordSet]:
        if relation.kind == MANY_TO_MANY:
            return self._load_many_to_many(model, relation, target, include, parents, cancel)

        local_field = model.get_field(relation.local_key or "")
        remote_field = target.get_field(relation.remote_key or "")
        keys = list(dict.fromkeys(p[local_field.name] for p in parents if p[local_field.name] is not None))
        if not keys:
            empty = RecordSet()
            value = () if relation.to_many else None
            return {index: value for index in range(len(parents))}, empty

        predicate = conjunction(
            Condition(remote_field.column_name(), IN, tuple(remote_field.to_store(k) for k in keys)),
            self.lowering.lower(target, include.where, cancel),
        )
        rows = self.fetch(
            target.table_name,
            predicate,
            [f.column_name() for f in target.scalar_fields()],
            self._ordering(target, include.ordering),
            cancel=cancel,
            model=target.name,
        )
        related, broken_keys = self._map(target, rows, remote_field)

        if relation.to_many:
            groups: Dict[Any, List[Record]] = defaultdict(list)
            for record in related:
                groups[record[remote_field.name]].append(record)
            assignments = {
                index: self._paginate(groups.get(parent[local_field.name], []), include)
                for index, parent in enumerate(parents)
            }
        else:
            by_key = {record[remote_field.name]: record for record in related}
            assignments = {}
            for index, parent in enumerate(parents):
                key = parent[local_field.name]
                if key is None:
                    assignments[index] = None
                elif key in by_key:
                    assignments[index] = by_key[key]
                elif relation.owning or key in broken_keys:
                    self.logger.warning(
                        "Dangling reference %s=%r on %s: no matching %s row",
                        local_field.qualified_name,
                        key,
                        model.name,
                        target.name,
                        extra={"model": model.name, "relation": relation.name, "key": key},
                    )
                    assignments[index] = ABSENT
                else:
                    assignments[index] = None
        return assignments, related

    def _load_many_to_many(
        self,
        model: ModelDef,
        relation: RelationDef,
        target: ModelDef,
        include: Include,
        parents: RecordSet,
        cancel: Optional["CancellationToken"],
    ) -> Tuple[Dict[int, Any], RecordSet]:
        local_pk = model.primary_key
        target_pk = target.primary_key
        keys = list(dict.fromkeys(parent[local_pk.name] for parent in parents))
        links = self.fetch(
            relation.join_table,
            Condition(relation.join_column, IN, tuple(local_pk.to_store(k) for k in keys)),
            [relation.join_column, relation.target_join_column],
            cancel=cancel,
            model=model.name,
        )
        owners: Dict[Any, List[Any]] = defaultdict(list)
        for link in links:
            owner = local_pk.from_store(link[relation.join_column])
            owners[target_pk.from_store(link[relation.target_join_column])].append(owner)
        if not owners:
            return {index: () for index in range(len(parents))}, RecordSet()

        predicate = conjunction(
            Condition(target_pk.column_name(), IN, tuple(target_pk.to_store(k) for k in owners)),
            self.lowering.lower(target, include.where, cancel),
        )
        rows = self.fetch(
            target.table_name,
            predicate,
            [f.column_name() for f in target.scalar_fields()],
            self._ordering(target, include.ordering),
            cancel=cancel,
            model=target.name,
        )
        related, _ = self._map(target, rows, target_pk)
        groups: Dict[Any, List[Record]] = defaultdict(list)
        for record in related:
            for owner in owners.get(record[target_pk.name], []):
                groups[owner].append(record)
        assignments = {
            index: self._paginate(groups.get(parent[local_pk.name], []), include)
            for index, parent in enumerate(parents)
        }
        return assignments, related

    # ------------------------------------------------------------------ #
    def _map(self, target: ModelDef, rows: List[dict], key_field) -> Tuple[RecordSet, set]:
        records: List[Record] = []
        errors: List[TypeMismatchError] = []
        broken: set = set()
        for row in rows:
            try:
                records.append(self.mapper.map_row(target, row))
            except TypeMismatchError as exc:
                self.logger.warning("Dropping related %s row: %s", target.name, exc.message)
                errors.append(exc)
                broken.add(row.get(key_field.column_name()))
        return RecordSet(records, errors), broken

    @staticmethod
    def _ordering(target: ModelDef, ordering: Sequence[str]) -> Tuple[str, ...]:
        columns = []
        for name in ordering:
            descending = name.startswith("-")
            column = target.column_for(name[1:] if descending else name)
            columns.append(f"-{column}" if descending else column)
        return tuple(columns)

    @staticmethod
    def _paginate(records: List[Record], include: Include) -> Tuple[Record, ...]:
        start = include.offset or 0
        end = start + include.limit if include.limit is not None else None
        return tuple(records[start:end])


def _replace(value: Any, replacements: Dict[int, Record]) -> Any:
    if isinstance(value, Record):
        return replacements.get(id(value), value)
    if isinstance(value, tuple):
        return tuple(replacements.get(id(item), item) for item in value)
    return value
