"""Security helpers for emberorm."""

from .migrations import confirm_destructive_operation
from .redaction import REDACTED_VALUE, redact_fields, redact_params, redact_predicate, redact_value

__all__ = [
    "REDACTED_VALUE",
    "confirm_destructive_operation",
    "redact_fields",
    "redact_params",
    "redact_predicate",
    "redact_value",
]
