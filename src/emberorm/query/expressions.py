"""
Expression tree primitives for query construction.
"""

from __future__ import annotations

from typing import Any, Iterator, List, Tuple

from .predicates import AND, OR


class Q:
    """
    Boolean filter expression in the style of Django ``Q`` objects.

    Children are either ``(field_lookup, value)`` tuples or nested ``Q``
    objects. Combining and negating always produce new objects.
    """

    __slots__ = ("children", "connector", "negated")

    def __init__(self, *children: Any, **lookups: Any) -> None:
        self.children: List[Any] = list(children)
        self.children.extend(sorted(lookups.items()))
        self.connector = AND
        self.negated = False

    def __or__(self, other: "Q") -> "Q":
        return self._combine(other, OR)

    def __and__(self, other: "Q") -> "Q":
        return self._combine(other, AND)

    def __invert__(self) -> "Q":
        q = self._clone()
        q.negated = not q.negated
        return q

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Q):
            return NotImplemented
        return (
            self.children == other.children
            and self.connector == other.connector
            and self.negated == other.negated
        )

    def __hash__(self) -> int:
        return hash((repr(self.children), self.connector, self.negated))

    def __repr__(self) -> str:
        prefix = "NOT " if self.negated else ""
        return f"<Q {prefix}{self.connector}: {self.children!r}>"

    # Internal helpers -------------------------------------------------
    def _clone(self) -> "Q":
        clone = Q()
        clone.children = list(self.children)
        clone.connector = self.connector
        clone.negated = self.negated
        return clone

    def _combine(self, other: "Q", connector: str) -> "Q":
        if not isinstance(other, Q):
            raise TypeError(f"Cannot combine Q with {type(other).__name__}")
        if other.is_empty():
            return self._clone()
        if self.is_empty():
            return other._clone()
        q = Q()
        q.children = [self._clone(), other._clone()]
        q.connector = connector
        return q

    def is_empty(self) -> bool:
        return not self.children

    def iter_lookups(self) -> Iterator[Tuple[str, Any]]:
        for child in self.children:
            if isinstance(child, Q):
                yield from child.iter_lookups()
            else:
                yield child


def as_q(where: Any) -> Q:
    """
    Accept a ``Q``, a mapping of lookups or ``None`` wherever a filter is expected.
    """

    if where is None:
        return Q()
    if isinstance(where, Q):
        return where
    if isinstance(where, dict):
        return Q(**where)
    raise TypeError(f"Expected Q or dict of lookups, received {type(where).__name__}")
