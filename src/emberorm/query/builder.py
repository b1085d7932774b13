"""
Fluent query builder producing immutable :class:`QueryDescriptor` values.

Builders never touch a store. Every call returns a new builder, so partially
built queries can be shared and extended safely::

    recent = query(schema, "Post").filter(published=True).order_by("-createdAt")
    posts = recent.include("author").limit(10).execute(engine)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Optional, Tuple

from ..config import EngineConfig
from ..core.model import Schema
from ..errors import QueryTooDeepError
from .descriptor import READ, Include, QueryDescriptor, include_depth, validate_descriptor
from .expressions import Q, as_q

if TYPE_CHECKING:
    from ..core.record import Record
    from ..engine import CancellationToken, Engine, RecordSet


def _check_bound(name: str, value: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, received {value!r}")
    return value


def _merge_includes(existing: Tuple[Include, ...], new: Include) -> Tuple[Include, ...]:
    merged = []
    found = False
    for include in existing:
        if include.relation != new.relation:
            merged.append(include)
            continue
        found = True
        children = include.children
        for child in new.children:
            children = _merge_includes(children, child)
        if new.has_options:
            include = replace(
                include,
                where=new.where,
                ordering=new.ordering,
                limit=new.limit,
                offset=new.offset,
            )
        merged.append(replace(include, children=children))
    if not found:
        merged.append(new)
    return tuple(merged)


@dataclass(frozen=True)
class NestedInclude:
    """
    Options for an included relation: filter, ordering, pagination and
    further includes. Create one with :func:`nested`.
    """

    _where: Q = field(default_factory=Q)
    _ordering: Tuple[str, ...] = ()
    _limit: Optional[int] = None
    _offset: Optional[int] = None
    _includes: Tuple[Include, ...] = ()

    def filter(self, **lookups: Any) -> "NestedInclude":
        return replace(self, _where=self._where & Q(**lookups))

    def exclude(self, **lookups: Any) -> "NestedInclude":
        return replace(self, _where=self._where & ~Q(**lookups))

    def where(self, condition: Any) -> "NestedInclude":
        return replace(self, _where=self._where & as_q(condition))

    def order_by(self, *fields: str) -> "NestedInclude":
        return replace(self, _ordering=tuple(fields))

    def limit(self, value: Optional[int]) -> "NestedInclude":
        return replace(self, _limit=_check_bound("limit", value))

    def offset(self, value: Optional[int]) -> "NestedInclude":
        return replace(self, _offset=_check_bound("offset", value))

    def include(self, relation: str, nested_options: Optional["NestedInclude"] = None) -> "NestedInclude":
        return replace(self, _includes=_merge_includes(self._includes, _path_include(relation, nested_options)))

    def to_include(self, relation: str) -> Include:
        return Include(
            relation=relation,
            where=None if self._where.is_empty() else self._where,
            ordering=self._ordering,
            limit=self._limit,
            offset=self._offset,
            children=self._includes,
        )


def nested() -> NestedInclude:
    """Start a set of options for ``include``."""
    return NestedInclude()


def _path_include(relation: str, options: Optional[NestedInclude]) -> Include:
    """
    ``"author__profile"`` becomes an ``author`` include with a ``profile``
    child; the options apply to the last segment.
    """

    segments = relation.split("__")
    leaf = (options or NestedInclude()).to_include(segments[-1])
    for segment in reversed(segments[:-1]):
        leaf = Include(relation=segment, children=(leaf,))
    return leaf


class QueryBuilder:
    """
    Accumulates read-query state for one model of a schema.
    """

    def __init__(self, schema: Schema, model: str, *, max_depth: Optional[int] = None) -> None:
        self.schema = schema
        self.model = model
        self.max_depth = max_depth
        self._where = Q()
        self._projection: Tuple[str, ...] = ()
        self._includes: Tuple[Include, ...] = ()
        self._ordering: Tuple[str, ...] = ()
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    # ------------------------------------------------------------------ #
    # Chainable API
    # ------------------------------------------------------------------ #
    def filter(self, *conditions: Q, **lookups: Any) -> "QueryBuilder":
        clone = self._clone()
        for condition in conditions:
            clone._where = clone._where & as_q(condition)
        if lookups:
            clone._where = clone._where & Q(**lookups)
        return clone

    def exclude(self, **lookups: Any) -> "QueryBuilder":
        clone = self._clone()
        clone._where = clone._where & ~Q(**lookups)
        return clone

    def where(self, condition: Any) -> "QueryBuilder":
        clone = self._clone()
        clone._where = clone._where & as_q(condition)
        return clone

    def select(self, *fields: str) -> "QueryBuilder":
        clone = self._clone()
        clone._projection = tuple(dict.fromkeys(fields))
        return clone

    def order_by(self, *fields: str) -> "QueryBuilder":
        clone = self._clone()
        clone._ordering = tuple(fields)
        return clone

    def limit(self, value: Optional[int]) -> "QueryBuilder":
        clone = self._clone()
        clone._limit = _check_bound("limit", value)
        return clone

    def offset(self, value: Optional[int]) -> "QueryBuilder":
        clone = self._clone()
        clone._offset = _check_bound("offset", value)
        return clone

    def include(self, relation: str, nested_options: Optional[NestedInclude] = None) -> "QueryBuilder":
        clone = self._clone()
        clone._includes = _merge_includes(clone._includes, _path_include(relation, nested_options))
        depth = include_depth(clone._includes)
        if self.max_depth is not None and depth > self.max_depth:
            raise QueryTooDeepError(depth, self.max_depth, model=self.model)
        return clone

    # ------------------------------------------------------------------ #
    # Terminal operations
    # ------------------------------------------------------------------ #
    def build(self) -> QueryDescriptor:
        descriptor = QueryDescriptor(
            model=self.model,
            operation=READ,
            where=self._where,
            projection=self._projection,
            includes=self._includes,
            ordering=self._ordering,
            limit=self._limit,
            offset=self._offset,
        )
        validate_descriptor(self.schema, descriptor, max_depth=self.max_depth)
        return descriptor

    def execute(self, engine: "Engine", *, cancel: Optional["CancellationToken"] = None) -> "RecordSet":
        return engine.execute(self.build(), cancel=cancel)

    def first(self, engine: "Engine", *, cancel: Optional["CancellationToken"] = None) -> Optional["Record"]:
        records = self.limit(1).execute(engine, cancel=cancel)
        return records[0] if records else None

    def count(self, engine: "Engine", *, cancel: Optional["CancellationToken"] = None) -> int:
        self.build()
        return engine.count(self.model, self._where, cancel=cancel)

    # ------------------------------------------------------------------ #
    def _clone(self) -> "QueryBuilder":
        clone = QueryBuilder(self.schema, self.model, max_depth=self.max_depth)
        clone._where = self._where
        clone._projection = self._projection
        clone._includes = self._includes
        clone._ordering = self._ordering
        clone._limit = self._limit
        clone._offset = self._offset
        return clone

    def __repr__(self) -> str:
        return f"<QueryBuilder model={self.model} where={self._where!r} includes={len(self._includes)}>"


def query(schema: Schema, model: str, *, config: Optional[EngineConfig] = None) -> QueryBuilder:
    """
    Start a read query for ``model``. The model name is checked immediately.

    With ``config`` the include depth limit is enforced as includes are added.
    Without it the engine running the query applies its own
    ``max_include_depth``; ``Engine.query`` does both.
    """

    schema.resolve(model)
    return QueryBuilder(schema, model, max_depth=config.max_include_depth if config else None)
