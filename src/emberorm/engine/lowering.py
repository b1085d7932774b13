"""
Lowering of ``Q`` trees into store-neutral predicates.

Lookups on the model's own fields become conditions on its columns. Lookups
that cross a relation (``author__name``, ``posts__title__contains``) are
resolved with an extra fetch on the related table and become an ``in``
condition on the local join key, meaning "some related row matches".
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from ..core.fields import FieldDef
from ..core.model import ModelDef, Schema
from ..core.relations import MANY_TO_MANY
from ..errors import UnsupportedOperationError, ValidationError
from ..query.expressions import Q
from ..query.predicates import (
    EXACT,
    IN,
    ISNULL,
    MATCH_ALL,
    NOT,
    REGEX,
    SEQUENCE_LOOKUPS,
    STRING_LOOKUPS,
    Condition,
    Junction,
    Predicate,
    split_lookup,
)

if TYPE_CHECKING:
    from .cancellation import CancellationToken

Fetch = Callable[..., List[dict]]


class FilterLowering:
    def __init__(self, schema: Schema, fetch: Fetch) -> None:
        self.schema = schema
        self.fetch = fetch

    def lower(self, model: ModelDef, q: Optional[Q], cancel: Optional["CancellationToken"] = None) -> Predicate:
        if q is None or q.is_empty():
            return MATCH_ALL
        children: List[Predicate] = []
        for child in q.children:
            if isinstance(child, Q):
                lowered = self.lower(model, child, cancel)
                if isinstance(lowered, Junction) and lowered.is_empty():
                    continue
            else:
                field_lookup, value = child
                lowered = self._lower_lookup(model, field_lookup, value, cancel)
            children.append(lowered)
        if not children:
            return MATCH_ALL
        if len(children) == 1 and not q.negated:
            return children[0]
        return Junction(q.connector, tuple(children), q.negated)

    # ------------------------------------------------------------------ #
    def _lower_lookup(
        self, model: ModelDef, field_lookup: str, value: Any, cancel: Optional["CancellationToken"]
    ) -> Predicate:
        path, lookup = split_lookup(field_lookup)
        if len(path) == 1:
            field = model.get_field(path[0])
            return Condition(field.column_name(), lookup, self.encode(field, lookup, value))

        relation = model.get_relation(path[0])
        target = self.schema.resolve(relation.target)
        inner = self._lower_lookup(target, "__".join(path[1:] + [lookup]), value, cancel)

        if relation.kind == MANY_TO_MANY:
            target_pk = target.primary_key
            rows = self.fetch(target.table_name, inner, [target_pk.column_name()], cancel=cancel, model=target.name)
            target_ids = tuple({row[target_pk.column_name()] for row in rows})
            links = self.fetch(
                relation.join_table,
                Condition(relation.target_join_column, IN, target_ids),
                [relation.join_column],
                cancel=cancel,
                model=model.name,
            )
            keys = tuple({row[relation.join_column] for row in links})
            return Condition(model.primary_key.column_name(), IN, keys)

        remote_column = target.column_for(relation.remote_key)
        rows = self.fetch(target.table_name, inner, [remote_column], cancel=cancel, model=target.name)
        keys = tuple({row[remote_column] for row in rows if row[remote_column] is not None})
        return Condition(model.column_for(relation.local_key), IN, keys)

    @staticmethod
    def encode(field: FieldDef, lookup: str, value: Any) -> Any:
        """
        Validate a filter value against the field type and convert it to its
        stored representation.
        """

        def invalid(message: str) -> ValidationError:
            return ValidationError({field.qualified_name: [message]}, model=field.model)

        if lookup == ISNULL:
            if not isinstance(value, bool):
                raise invalid(f"isnull expects True or False, received {value!r}")
            return value
        if lookup in STRING_LOOKUPS:
            if field.type_name != "String":
                raise UnsupportedOperationError(
                    f"Lookup '{lookup}' requires a String field; '{field.qualified_name}' is {field.type_name}",
                    model=field.model,
                    field=field.name,
                    value=lookup,
                )
            if not isinstance(value, str):
                raise invalid(f"Lookup '{lookup}' expects a string, received {value!r}")
            if lookup == REGEX:
                try:
                    re.compile(value)
                except re.error as exc:
                    raise invalid(f"Invalid regular expression {value!r}: {exc}") from exc
            return value
        if lookup in SEQUENCE_LOOKUPS:
            if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
                raise invalid(f"Lookup '{lookup}' expects a list of values, received {value!r}")
            return tuple(None if item is None else _encode_scalar(field, item, invalid) for item in value)
        if value is None:
            if lookup in (EXACT, NOT):
                return None
            raise invalid(f"Lookup '{lookup}' does not accept None")
        return _encode_scalar(field, value, invalid)


def _encode_scalar(field: FieldDef, value: Any, invalid: Callable[[str], ValidationError]) -> Any:
    try:
        return field.to_store(field.scalar.to_python(value))
    except ValueError as exc:
        raise invalid(str(exc)) from exc
