"""
Immutable runtime values produced by the execution engine.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional


class _Absent:
    """
    Marker for a relation whose foreign key points at a row that does not exist.
    """

    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


class Record(Mapping[str, Any]):
    """
    A row of a model: field values plus optionally populated relations.

    Records never change after construction. ``replace`` and ``with_related``
    return new values. Field values are reachable as items (``record["name"]``)
    and as attributes (``record.name``); populated relations likewise.
    Iteration and ``len`` cover the scalar fields only.
    """

    __slots__ = ("_model", "_values", "_related")

    def __init__(
        self,
        model: str,
        values: Mapping[str, Any],
        related: Optional[Mapping[str, Any]] = None,
    ) -> None:
        object.__setattr__(self, "_model", model)
        object.__setattr__(self, "_values", MappingProxyType(dict(values)))
        object.__setattr__(self, "_related", MappingProxyType(dict(related or {})))

    @property
    def model(self) -> str:
        return self._model

    @property
    def related(self) -> Mapping[str, Any]:
        return self._related

    # Mapping protocol ---------------------------------------------------
    def __getitem__(self, key: str) -> Any:
        if key in self._values:
            return self._values[key]
        if key in self._related:
            return self._related[key]
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values or key in self._related

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"'{self._model}' record has no field or relation '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Record is immutable; use replace() to derive a new record")

    def __delattr__(self, name: str) -> None:
        raise AttributeError("Record is immutable")

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Record):
            return (
                self._model == other._model
                and dict(self._values) == dict(other._values)
                and dict(self._related) == dict(other._related)
            )
        if isinstance(other, Mapping):
            return dict(self._values) == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __reduce__(self):
        return (Record, (self._model, dict(self._values), dict(self._related)))

    def __repr__(self) -> str:
        parts = ", ".join(f"{key}={value!r}" for key, value in self._values.items())
        if self._related:
            parts += "".join(f", {key}=<{_describe(value)}>" for key, value in self._related.items())
        return f"<{self._model} {parts}>"

    # Derivation ---------------------------------------------------------
    def replace(self, **changes: Any) -> "Record":
        values = dict(self._values)
        for key in changes:
            if key not in values:
                raise KeyError(f"'{self._model}' record has no field '{key}'")
        values.update(changes)
        return Record(self._model, values, self._related)

    def with_related(self, **relations: Any) -> "Record":
        related = dict(self._related)
        related.update(relations)
        return Record(self._model, self._values, related)

    def to_dict(self, *, include_related: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self._values)
        if not include_related:
            return data
        for key, value in self._related.items():
            if isinstance(value, Record):
                data[key] = value.to_dict()
            elif isinstance(value, tuple):
                data[key] = [item.to_dict() for item in value]
            elif value is ABSENT:
                data[key] = None
            else:
                data[key] = value
        return data


def _describe(value: Any) -> str:
    if isinstance(value, tuple):
        return f"{len(value)} records"
    if isinstance(value, Record):
        return value.model
    return repr(value)
