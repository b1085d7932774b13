"""
Cooperative cancellation for engine operations.
"""

from __future__ import annotations

import threading
from typing import Optional

from ..errors import QueryCancelledError


class CancellationToken:
    """
    Flag checked by the engine before every store call.

    Cancelling never interrupts a store call already in progress; writes the
    store has acknowledged stay applied unless an enclosing transaction rolls
    them back.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str = "query", *, model: Optional[str] = None) -> None:
        if self._event.is_set():
            detail = f": {self.reason}" if self.reason else ""
            raise QueryCancelledError(f"Cancelled before {operation}{detail}", model=model)
