"""
Lifecycle hooks for emberorm engines.
"""

from .dispatcher import (
    AFTER_COMMIT,
    AFTER_CREATE,
    AFTER_DELETE,
    AFTER_UPDATE,
    BEFORE_CREATE,
    BEFORE_DELETE,
    BEFORE_UPDATE,
    EVENTS,
    HookDispatcher,
)

__all__ = [
    "AFTER_COMMIT",
    "AFTER_CREATE",
    "AFTER_DELETE",
    "AFTER_UPDATE",
    "BEFORE_CREATE",
    "BEFORE_DELETE",
    "BEFORE_UPDATE",
    "EVENTS",
    "HookDispatcher",
]
