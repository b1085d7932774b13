"""
Transaction scopes over a store: the outermost scope is a store transaction,
nested scopes are savepoints named ``sp_1``, ``sp_2``...
"""

from __future__ import annotations

import itertools
from contextlib import contextmanager
from typing import Iterator, List, Optional

from ..errors import TransactionError
from ..stores.base import Store
from ..utils import get_logger


class TransactionManager:
    """
    Tracks open scopes for one store. Not thread-safe on its own; the engine
    serializes access with its lock.
    """

    def __init__(self, store: Store) -> None:
        self.store = store
        self.logger = get_logger("engine.transaction")
        self._scopes: List[Optional[str]] = []
        self._names = itertools.count(1)

    @property
    def depth(self) -> int:
        return len(self._scopes)

    def begin(self) -> None:
        if not self._scopes:
            self.store.begin()
            self._scopes.append(None)
            return
        if not self.store.capabilities.supports_savepoints:
            raise TransactionError(
                f"Store '{self.store.capabilities.name}' cannot nest transactions without savepoints"
            )
        name = f"sp_{next(self._names)}"
        self.store.savepoint(name)
        self._scopes.append(name)

    def commit(self) -> None:
        name = self._pop("commit")
        if name is None:
            self.store.commit()
        else:
            self.store.release_savepoint(name)

    def rollback(self) -> None:
        name = self._pop("roll back")
        if name is None:
            self.store.rollback()
        else:
            self.store.rollback_to_savepoint(name)
            self.store.release_savepoint(name)
        self.logger.debug("Rolled back %s (depth=%s)", name or "transaction", self.depth)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit when the block exits normally, roll back on any exception."""
        self.begin()
        try:
            yield
        except Exception:
            self.rollback()
            raise
        self.commit()

    def _pop(self, action: str) -> Optional[str]:
        if not self._scopes:
            raise TransactionError(f"No active transaction to {action}")
        return self._scopes.pop()
