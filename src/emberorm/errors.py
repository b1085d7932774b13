"""
Error hierarchy for emberorm.

Every error carries optional ``model``, ``field`` and ``value`` attributes so
callers can diagnose a failure without inspecting engine internals.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional


class EmberError(Exception):
    """Base class for all emberorm errors."""

    def __init__(
        self,
        message: str,
        *,
        model: Optional[str] = None,
        field: Optional[str] = None,
        value: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.model = model
        self.field = field
        self.value = value

    @property
    def kind(self) -> str:
        return self.__class__.__name__


class _AggregatedError(EmberError):
    """
    Error storing a location-to-messages mapping, formatted into one message.
    """

    def __init__(self, errors: Mapping[str, List[str]], *, model: Optional[str] = None) -> None:
        self.errors: Dict[str, List[str]] = {
            key: list(messages) for key, messages in errors.items()
        }
        super().__init__(self._format_message(), model=model)

    def _format_message(self) -> str:
        segments = []
        for location, messages in self.errors.items():
            prefix = location if location != "__all__" else "schema"
            segments.append(f"{prefix}: {'; '.join(messages)}")
        return "; ".join(segments)

    def messages(self) -> List[str]:
        return [message for messages in self.errors.values() for message in messages]


class SchemaError(_AggregatedError):
    """Raised by ``load`` with every invariant the schema text violates."""


class ValidationError(_AggregatedError):
    """Raised when write input for a model is invalid (unknown, missing or mistyped fields)."""


class ConfigurationError(EmberError):
    """Raised when engine or store configuration values are invalid."""


class NotFoundError(EmberError):
    """Raised when a referenced model, field, relation or record does not exist."""


class QueryTooDeepError(EmberError):
    """Raised when an include tree nests deeper than the configured maximum."""

    def __init__(self, depth: int, maximum: int, *, model: Optional[str] = None) -> None:
        super().__init__(
            f"Include depth {depth} exceeds the maximum of {maximum}",
            model=model,
            value=depth,
        )
        self.depth = depth
        self.maximum = maximum


class UnsupportedOperationError(EmberError):
    """Raised when a store cannot satisfy a requested predicate or operation."""


class ConstraintViolationError(EmberError):
    """Raised on uniqueness or foreign-key violations."""


class TypeMismatchError(EmberError):
    """Raised when a stored value is not a valid representation of its declared type."""


class QueryCancelledError(EmberError):
    """Raised when a cancelled token is observed before a store call."""


class TransactionError(EmberError):
    """Raised on misuse of the transaction API (commit without begin, etc.)."""


class StoreError(EmberError):
    """Raised when the underlying store fails for reasons other than constraints."""


class MigrationError(EmberError):
    """Raised when a migration cannot be applied."""


__all__ = [
    "EmberError",
    "SchemaError",
    "ValidationError",
    "ConfigurationError",
    "NotFoundError",
    "QueryTooDeepError",
    "UnsupportedOperationError",
    "ConstraintViolationError",
    "TypeMismatchError",
    "QueryCancelledError",
    "TransactionError",
    "StoreError",
    "MigrationError",
]
