"""
Store-neutral filter predicates.

The engine lowers ``Q`` trees (which speak in model field names and may cross
relations) into these nodes, which speak in column names of a single table.
Stores translate predicates into their native filter representation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Tuple, Union

AND = "AND"
OR = "OR"

EXACT = "exact"
NOT = "not"
IN = "in"
NOT_IN = "not_in"
LT = "lt"
LTE = "lte"
GT = "gt"
GTE = "gte"
CONTAINS = "contains"
ICONTAINS = "icontains"
STARTSWITH = "startswith"
ENDSWITH = "endswith"
ISNULL = "isnull"
REGEX = "regex"

LOOKUPS = frozenset(
    {
        EXACT,
        NOT,
        IN,
        NOT_IN,
        LT,
        LTE,
        GT,
        GTE,
        CONTAINS,
        ICONTAINS,
        STARTSWITH,
        ENDSWITH,
        ISNULL,
        REGEX,
    }
)
STRING_LOOKUPS = frozenset({CONTAINS, ICONTAINS, STARTSWITH, ENDSWITH, REGEX})
SEQUENCE_LOOKUPS = frozenset({IN, NOT_IN})


def split_lookup(field_lookup: str) -> Tuple[List[str], str]:
    """
    Split ``"author__name__contains"`` into (["author", "name"], "contains").
    A path without a recognised lookup suffix means ``exact``.
    """

    segments = field_lookup.split("__")
    if len(segments) > 1 and segments[-1] in LOOKUPS:
        return segments[:-1], segments[-1]
    return segments, EXACT


@dataclass(frozen=True)
class Condition:
    column: str
    lookup: str
    value: Any = None

    def shape(self) -> str:
        return f"{self.column}__{self.lookup}"

    def params(self) -> List[Any]:
        return [self.value]


@dataclass(frozen=True)
class Junction:
    connector: str = AND
    children: Tuple["Predicate", ...] = ()
    negated: bool = False

    def is_empty(self) -> bool:
        return not self.children

    def shape(self) -> str:
        inner = f" {self.connector} ".join(child.shape() for child in self.children)
        inner = f"({inner})"
        return f"NOT {inner}" if self.negated else inner

    def params(self) -> List[Any]:
        values: List[Any] = []
        for child in self.children:
            values.extend(child.params())
        return values


Predicate = Union[Condition, Junction]

MATCH_ALL = Junction()


def conjunction(*predicates: Predicate) -> Predicate:
    """AND together predicates, dropping empty junctions."""

    children = tuple(p for p in predicates if not (isinstance(p, Junction) and p.is_empty()))
    if not children:
        return MATCH_ALL
    if len(children) == 1:
        return children[0]
    return Junction(AND, children)


def lookups_in(predicate: Predicate) -> set[str]:
    if isinstance(predicate, Condition):
        return {predicate.lookup}
    found: set[str] = set()
    for child in predicate.children:
        found |= lookups_in(child)
    return found
