"""
emberorm public package initialization.

A schema text is loaded into a model graph, queries are built as immutable
descriptors and an explicitly constructed :class:`Engine` runs them against
a store::

    schema = load(SCHEMA_TEXT)
    store = SQLiteStore("sqlite:///app.db")
    store.apply_schema(schema)
    engine = Engine(schema, store)
    posts = query(schema, "Post").include("author").execute(engine)
"""

from .config import EngineConfig  # noqa: F401
from .core import ABSENT, FieldDef, ModelDef, Record, RelationDef, Schema  # noqa: F401
from .engine import CancellationToken, Engine, RecordSet, Result  # noqa: F401
from .errors import (  # noqa: F401
    ConfigurationError,
    ConstraintViolationError,
    EmberError,
    MigrationError,
    NotFoundError,
    QueryCancelledError,
    QueryTooDeepError,
    SchemaError,
    StoreError,
    TransactionError,
    TypeMismatchError,
    UnsupportedOperationError,
    ValidationError,
)
from .hooks import HookDispatcher  # noqa: F401
from .query import Q, QueryBuilder, QueryDescriptor, nested, query  # noqa: F401
from .schema import MigrationEngine, MigrationOperation, SchemaBuilder, load  # noqa: F401
from .stores import ConnectionConfig, MemoryStore, SQLiteStore  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "ABSENT",
    "CancellationToken",
    "ConfigurationError",
    "ConnectionConfig",
    "ConstraintViolationError",
    "EmberError",
    "Engine",
    "EngineConfig",
    "FieldDef",
    "HookDispatcher",
    "MemoryStore",
    "MigrationEngine",
    "MigrationError",
    "MigrationOperation",
    "ModelDef",
    "NotFoundError",
    "Q",
    "QueryBuilder",
    "QueryCancelledError",
    "QueryDescriptor",
    "QueryTooDeepError",
    "Record",
    "RecordSet",
    "RelationDef",
    "Result",
    "SQLiteStore",
    "Schema",
    "SchemaBuilder",
    "SchemaError",
    "StoreError",
    "TransactionError",
    "TypeMismatchError",
    "UnsupportedOperationError",
    "ValidationError",
    "load",
    "nested",
    "query",
]
