"""
Naming utilities for tables and join tables.
"""

import re
from typing import Optional


_FIRST_CAP_RE = re.compile("(.)([A-Z][a-z]+)")
_ALL_CAP_RE = re.compile("([a-z0-9])([A-Z])")


def camel_to_snake(name: str) -> str:
    """
    Convert ``CamelCase`` model names to ``snake_case`` default table names.
    """
    step1 = _FIRST_CAP_RE.sub(r"\1_\2", name)
    return _ALL_CAP_RE.sub(r"\1_\2", step1).lower()


def join_table_name(side_a: str, side_b: str, relation_name: Optional[str] = None) -> str:
    """
    Name of the implicit many-to-many join table, e.g. ``_PostToTag``.
    """
    if relation_name:
        return f"_{relation_name}"
    return f"_{side_a}To{side_b}"
