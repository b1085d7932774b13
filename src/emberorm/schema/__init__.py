"""
Schema definition language, loading, DDL generation and migrations.
"""

from .builder import SchemaBuilder
from .lexer import SchemaLexer
from .loader import SchemaLoader, load
from .migration import MigrationEngine, MigrationOperation
from .parser import SchemaParser

__all__ = [
    "MigrationEngine",
    "MigrationOperation",
    "SchemaBuilder",
    "SchemaLexer",
    "SchemaLoader",
    "SchemaParser",
    "load",
]
