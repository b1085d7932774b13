"""
Discriminated result values returned by ``Engine.try_execute``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from ..errors import EmberError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[EmberError] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: EmberError) -> "Result[Any]":
        return cls(ok=False, error=error)

    @property
    def kind(self) -> Optional[str]:
        """Error class name, or ``None`` on success."""
        return None if self.error is None else self.error.kind

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
