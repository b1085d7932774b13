"""
Core building blocks: field types, model metadata, relations and records.
"""

from .fields import SCALAR_TYPES, DefaultRule, FieldDef, ScalarType, is_scalar_type
from .model import ModelDef, Schema
from .record import ABSENT, Record
from .relations import (
    MANY_TO_MANY,
    MANY_TO_ONE,
    ONE_TO_MANY,
    ONE_TO_ONE,
    RelationDef,
    RelationLinker,
)

__all__ = [
    "ABSENT",
    "DefaultRule",
    "FieldDef",
    "MANY_TO_MANY",
    "MANY_TO_ONE",
    "ModelDef",
    "ONE_TO_MANY",
    "ONE_TO_ONE",
    "Record",
    "RelationDef",
    "RelationLinker",
    "SCALAR_TYPES",
    "ScalarType",
    "Schema",
    "is_scalar_type",
]
