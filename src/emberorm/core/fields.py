"""
Scalar field definitions and the type codecs backing them.

Each scalar type converts values in three directions:

* ``to_python`` validates caller input and normalizes it (used on writes and
  filter values);
* ``to_store`` encodes a Python value into the portable representation every
  store keeps (ints, floats, strings, booleans, ISO-8601 text, JSON text);
* ``from_store`` decodes a stored value and refuses anything that is not a
  valid representation of the declared type.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..errors import TypeMismatchError


class ScalarType:
    name = "Scalar"
    column_type = "TEXT"

    def to_python(self, value: Any) -> Any:
        return value

    def to_store(self, value: Any) -> Any:
        return value

    def from_store(self, value: Any) -> Any:
        return value


class IntType(ScalarType):
    name = "Int"
    column_type = "INTEGER"

    def to_python(self, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Expected an integer, received {value!r}")
        return value

    def from_store(self, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(value)
        return value


class FloatType(ScalarType):
    name = "Float"
    column_type = "REAL"

    def to_python(self, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Expected a number, received {value!r}")
        return float(value)

    def from_store(self, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(value)
        return float(value)


class StringType(ScalarType):
    name = "String"
    column_type = "TEXT"

    def to_python(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError(f"Expected a string, received {value!r}")
        return value

    def from_store(self, value: Any) -> str:
        if not isinstance(value, str):
            raise TypeError(value)
        return value


class BooleanType(ScalarType):
    name = "Boolean"
    column_type = "BOOLEAN"

    def to_python(self, value: Any) -> bool:
        if not isinstance(value, bool):
            raise ValueError(f"Expected a boolean, received {value!r}")
        return value

    def from_store(self, value: Any) -> bool:
        # SQLite hands booleans back as 0/1.
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise TypeError(value)


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DateTimeType(ScalarType):
    """
    Instants stored as fixed-width UTC ISO-8601 text, so text order is time order.
    """

    name = "DateTime"
    column_type = "TEXT"

    def to_python(self, value: Any) -> datetime:
        if isinstance(value, datetime):
            return _as_utc(value)
        if isinstance(value, str):
            try:
                return _as_utc(datetime.fromisoformat(value))
            except ValueError as exc:
                raise ValueError(f"Invalid ISO-8601 datetime {value!r}") from exc
        raise ValueError(f"Expected a datetime, received {value!r}")

    def to_store(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return _as_utc(value).isoformat(timespec="microseconds")
        return value

    def from_store(self, value: Any) -> datetime:
        if isinstance(value, datetime):
            return _as_utc(value)
        if isinstance(value, str):
            return _as_utc(datetime.fromisoformat(value))
        raise TypeError(value)


class JsonType(ScalarType):
    name = "Json"
    column_type = "TEXT"

    def to_python(self, value: Any) -> Any:
        try:
            json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Value {value!r} is not JSON serializable") from exc
        return value

    def to_store(self, value: Any) -> Any:
        return json.dumps(value, sort_keys=True)

    def from_store(self, value: Any) -> Any:
        if not isinstance(value, str):
            raise TypeError(value)
        return json.loads(value)


SCALAR_TYPES: Dict[str, ScalarType] = {
    scalar.name: scalar
    for scalar in (IntType(), FloatType(), StringType(), BooleanType(), DateTimeType(), JsonType())
}


def is_scalar_type(type_name: str) -> bool:
    return type_name in SCALAR_TYPES


# Default rules -----------------------------------------------------------
LITERAL = "literal"
AUTOINCREMENT = "autoincrement"
NOW = "now"
UUID = "uuid"

GENERATORS = {AUTOINCREMENT: "Int", NOW: "DateTime", UUID: "String"}


@dataclass(frozen=True)
class DefaultRule:
    """
    ``@default(...)`` rule: either a literal or one of the generator functions.
    """

    kind: str
    value: Any = None

    @property
    def store_generated(self) -> bool:
        return self.kind == AUTOINCREMENT

    def generate(self) -> Any:
        if self.kind == NOW:
            return datetime.now(timezone.utc)
        if self.kind == UUID:
            return str(uuid.uuid4())
        if self.kind == LITERAL:
            return self.value
        return None


@dataclass
class FieldDef:
    """
    A scalar column of a model.
    """

    name: str
    type_name: str
    model: str = ""
    nullable: bool = False
    unique: bool = False
    primary_key: bool = False
    default: Optional[DefaultRule] = None
    updated_at: bool = False
    db_column: Optional[str] = None
    line: Optional[int] = field(default=None, compare=False)

    @property
    def scalar(self) -> ScalarType:
        return SCALAR_TYPES[self.type_name]

    @property
    def qualified_name(self) -> str:
        return f"{self.model}.{self.name}"

    def column_name(self) -> str:
        return self.db_column or self.name

    @property
    def has_default(self) -> bool:
        return self.default is not None or self.updated_at

    def get_default(self) -> Any:
        if self.updated_at and self.default is None:
            return datetime.now(timezone.utc)
        if self.default is None:
            return None
        return self.default.generate()

    # Conversion -----------------------------------------------------------
    def to_python(self, value: Any) -> Any:
        if value is None:
            if not self.nullable:
                raise ValueError("This field cannot be null.")
            return None
        return self.scalar.to_python(value)

    def to_store(self, value: Any) -> Any:
        if value is None:
            return None
        return self.scalar.to_store(value)

    def from_store(self, value: Any) -> Any:
        if value is None:
            if self.nullable or self.primary_key:
                return None
            raise TypeMismatchError(
                f"Field '{self.qualified_name}' is not nullable but the store returned NULL",
                model=self.model,
                field=self.name,
                value=value,
            )
        try:
            return self.scalar.from_store(value)
        except (TypeError, ValueError) as exc:
            raise TypeMismatchError(
                f"Stored value {value!r} for '{self.qualified_name}' is not a valid {self.type_name}",
                model=self.model,
                field=self.name,
                value=value,
            ) from exc
