"""
Dialect strategy registry.
"""

from .base import Dialect, DialectCapabilities
from .sqlite import SQLiteDialect, get_sqlite_dialect

__all__ = ["Dialect", "DialectCapabilities", "SQLiteDialect", "get_sqlite_dialect"]
