"""
Masking of sensitive values before they reach log records.

Write payloads, records and filter predicates are masked by field or column
name. Positional SQL parameters carry no names and are masked by value.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Iterable, List, Mapping, Optional

from ..query.predicates import Condition, Predicate

if TYPE_CHECKING:
    from ..core.model import ModelDef

REDACTED_VALUE = "***"

_SENSITIVE_NAME = re.compile(r"passw(or)?d|pwd|secret|token|api_?key|private_?key|credential", re.IGNORECASE)
_CREDENTIAL_VALUE = re.compile(r"^\s*(bearer|basic)\s+\S|(password|secret|token|api_?key)\s*[=:]", re.IGNORECASE)


def is_sensitive_key(name: str) -> bool:
    """True for field or column names that hold credentials."""
    return _SENSITIVE_NAME.search(name.replace("-", "_")) is not None


def is_sensitive_value(value: Any) -> bool:
    return isinstance(value, str) and _CREDENTIAL_VALUE.search(value) is not None


def _sensitive_field(name: str, model: Optional["ModelDef"]) -> bool:
    if is_sensitive_key(name):
        return True
    if model is not None and name in model.fields:
        return is_sensitive_key(model.fields[name].column_name())
    return False


def redact_value(value: Any, *, key: Optional[str] = None) -> Any:
    """Mask ``value`` when ``key`` is sensitive; Json payloads are walked by key."""
    if key is not None and is_sensitive_key(key):
        return REDACTED_VALUE
    if isinstance(value, Mapping):
        return {k: redact_value(v, key=str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(redact_value(item) for item in value)
    if is_sensitive_value(value):
        return REDACTED_VALUE
    return value


def redact_fields(values: Mapping[str, Any], model: Optional["ModelDef"] = None) -> dict[str, Any]:
    """
    Copy of a write payload or a ``Record`` with sensitive fields masked.

    A field counts as sensitive when its name or, given ``model``, its mapped
    column name is. Related records are redacted recursively.
    """
    redacted: dict[str, Any] = {}
    for name, value in values.items():
        if _sensitive_field(name, model):
            redacted[name] = REDACTED_VALUE
        else:
            redacted[name] = redact_value(value)
    related = getattr(values, "related", None)
    if related:
        for name, value in related.items():
            if isinstance(value, Mapping):
                redacted[name] = redact_fields(value)
            elif isinstance(value, tuple):
                redacted[name] = [redact_fields(item) for item in value]
            else:
                redacted[name] = None
    return redacted


def redact_predicate(predicate: Predicate) -> List[Any]:
    """Parameters of ``predicate`` in ``params()`` order, masked by column."""
    if isinstance(predicate, Condition):
        if is_sensitive_key(predicate.column):
            return [REDACTED_VALUE]
        return [redact_value(predicate.value)]
    values: List[Any] = []
    for child in predicate.children:
        values.extend(redact_predicate(child))
    return values


def redact_params(params: Iterable[Any]) -> List[Any]:
    return [redact_value(value) for value in params]
