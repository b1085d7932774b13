"""
Mapping between stored rows and immutable records.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence

from ..core.fields import FieldDef
from ..core.model import ModelDef
from ..core.record import Record
from ..errors import TypeMismatchError
from ..utils import get_logger


class RecordSet(tuple):
    """
    Tuple of records plus the mapping errors of rows that were dropped.
    """

    def __new__(cls, records: Iterable[Record] = (), errors: Iterable[TypeMismatchError] = ()) -> "RecordSet":
        instance = super().__new__(cls, records)
        instance.errors = tuple(errors)
        return instance

    def __repr__(self) -> str:
        suffix = f", errors={len(self.errors)}" if self.errors else ""
        return f"RecordSet({list(self)!r}{suffix})"


class RecordMapper:
    """
    Decodes rows with the field types of a model.
    """

    def __init__(self) -> None:
        self.logger = get_logger("engine.mapper")

    def map_row(
        self,
        model: ModelDef,
        row: Mapping[str, Any],
        fields: Optional[Sequence[FieldDef]] = None,
    ) -> Record:
        values = {}
        for field in fields or model.scalar_fields():
            values[field.name] = field.from_store(row.get(field.column_name()))
        return Record(model.name, values)

    def map_rows(
        self,
        model: ModelDef,
        rows: Iterable[Mapping[str, Any]],
        fields: Optional[Sequence[FieldDef]] = None,
    ) -> RecordSet:
        records: List[Record] = []
        errors: List[TypeMismatchError] = []
        for row in rows:
            try:
                records.append(self.map_row(model, row, fields))
            except TypeMismatchError as exc:
                self.logger.warning("Dropping %s row: %s", model.name, exc.message)
                errors.append(exc)
        return RecordSet(records, errors)

    @staticmethod
    def encode(model: ModelDef, values: Mapping[str, Any]) -> dict[str, Any]:
        """Field-name keyed python values to column-keyed store values."""
        return {
            model.fields[name].column_name(): model.fields[name].to_store(value)
            for name, value in values.items()
        }
