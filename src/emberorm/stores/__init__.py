"""
Store implementations satisfying the engine's capability interface.
"""

from .base import ConnectionConfig, Row, Store, StoreCapabilities
from .memory import MemoryStore
from .sqlite import SQLiteStore

__all__ = ["ConnectionConfig", "MemoryStore", "Row", "SQLiteStore", "Store", "StoreCapabilities"]
