"""
Immutable query descriptors and their validation against a schema.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

from ..core.model import ModelDef, Schema
from ..errors import NotFoundError, QueryTooDeepError, UnsupportedOperationError
from .expressions import Q
from .predicates import split_lookup

CREATE = "create"
READ = "read"
UPDATE = "update"
DELETE = "delete"

OPERATIONS = (CREATE, READ, UPDATE, DELETE)


@dataclass(frozen=True)
class Include:
    """
    A relation to resolve, with options applied to the related rows.

    ``where``, ``ordering``, ``limit`` and ``offset`` only apply to to-many
    relations and are applied per parent record.
    """

    relation: str
    where: Optional[Q] = None
    ordering: Tuple[str, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    children: Tuple["Include", ...] = ()

    def depth(self) -> int:
        return 1 + max((child.depth() for child in self.children), default=0)

    @property
    def has_options(self) -> bool:
        return (
            (self.where is not None and not self.where.is_empty())
            or bool(self.ordering)
            or self.limit is not None
            or self.offset is not None
        )


def include_depth(includes: Tuple[Include, ...]) -> int:
    return max((inc.depth() for inc in includes), default=0)


@dataclass(frozen=True)
class QueryDescriptor:
    model: str
    operation: str = READ
    where: Q = field(default_factory=Q)
    projection: Tuple[str, ...] = ()
    includes: Tuple[Include, ...] = ()
    ordering: Tuple[str, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if self.operation not in OPERATIONS:
            raise ValueError(f"Unknown operation '{self.operation}'")
        if not isinstance(self.data, MappingProxyType):
            object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    @property
    def include_depth(self) -> int:
        return include_depth(self.includes)


def validate_descriptor(schema: Schema, descriptor: QueryDescriptor, *, max_depth: Optional[int]) -> ModelDef:
    """
    Check every name a descriptor mentions against the schema.

    Raises ``QueryTooDeepError`` before any name lookups so an over-deep
    request is rejected without further work. ``max_depth=None`` skips the
    depth check.
    """

    depth = descriptor.include_depth
    if max_depth is not None and depth > max_depth:
        raise QueryTooDeepError(depth, max_depth, model=descriptor.model)
    model = schema.resolve(descriptor.model)
    validate_where(schema, model, descriptor.where)
    for name in descriptor.projection:
        model.get_field(name)
    validate_ordering(model, descriptor.ordering)
    if descriptor.limit is not None and descriptor.limit < 0:
        raise ValueError("limit must be non-negative")
    if descriptor.offset is not None and descriptor.offset < 0:
        raise ValueError("offset must be non-negative")
    for include in descriptor.includes:
        _validate_include(schema, model, include)
    return model


def validate_ordering(model: ModelDef, ordering: Tuple[str, ...]) -> None:
    for name in ordering:
        model.get_field(name[1:] if name.startswith("-") else name)


def validate_where(schema: Schema, model: ModelDef, where: Optional[Q]) -> None:
    if where is None:
        return
    for field_lookup, _ in where.iter_lookups():
        path, _lookup = split_lookup(field_lookup)
        current = model
        for index, segment in enumerate(path):
            last = index == len(path) - 1
            if current.has_relation(segment):
                if last:
                    raise UnsupportedOperationError(
                        f"Filtering on relation '{current.name}.{segment}' requires a field lookup "
                        f"such as '{segment}__<field>'",
                        model=current.name,
                        field=segment,
                    )
                current = schema.resolve(current.relations[segment].target)
                continue
            if not current.has_field(segment):
                raise NotFoundError(
                    f"Unknown field '{segment}' on model '{current.name}' in filter '{field_lookup}'",
                    model=current.name,
                    field=segment,
                )
            if not last:
                raise NotFoundError(
                    f"'{current.name}.{segment}' is not a relation in filter '{field_lookup}'",
                    model=current.name,
                    field=segment,
                )


def _validate_include(schema: Schema, model: ModelDef, include: Include) -> None:
    relation = model.get_relation(include.relation)
    target = schema.resolve(relation.target)
    if include.has_options and not relation.to_many:
        raise UnsupportedOperationError(
            f"Filter, ordering and pagination options only apply to to-many relations; "
            f"'{relation.qualified_name}' is {relation.kind}",
            model=model.name,
            field=relation.name,
        )
    validate_where(schema, target, include.where)
    validate_ordering(target, include.ordering)
    for child in include.children:
        _validate_include(schema, target, child)
