"""
SQLite dialect implementation.
"""

from __future__ import annotations

from typing import Final

from .base import Dialect, DialectCapabilities

COLUMN_TYPES: Final[dict[str, str]] = {
    "Int": "INTEGER",
    "Float": "REAL",
    "String": "TEXT",
    "Boolean": "BOOLEAN",
    "DateTime": "TEXT",
    "Json": "TEXT",
}


class SQLiteDialect:
    """
    SQLite dialect using qmark param style and minimal capabilities.
    """

    name: Final[str] = "sqlite"
    param_style: Final[str] = "qmark"
    capabilities: Final[DialectCapabilities] = DialectCapabilities(
        supports_returning=False,
        supports_savepoints=True,
        supports_regex=False,
    )

    def quote_identifier(self, identifier: str) -> str:
        escaped = identifier.replace('"', '""')
        return f'"{escaped}"'

    def format_table(self, table_name: str) -> str:
        return self.quote_identifier(table_name)

    def limit_clause(self, limit: int | None, offset: int | None) -> str:
        parts: list[str] = []
        if limit is not None:
            parts.append(f"LIMIT {limit}")
        if offset is not None:
            if limit is None:
                parts.append("LIMIT -1")
            parts.append(f"OFFSET {offset}")
        return " ".join(parts)

    def parameter_placeholder(self, position: int | None = None) -> str:
        return "?"

    def column_type(self, type_name: str) -> str:
        return COLUMN_TYPES[type_name]

    def render_column_definition(self, column: str, column_type: str, *, nullable: bool) -> str:
        null_clause = "" if nullable else " NOT NULL"
        return f"{self.quote_identifier(column)} {column_type}{null_clause}"

    def render_literal(self, value: object) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float)):
            return repr(value)
        escaped = str(value).replace("'", "''")
        return f"'{escaped}'"


def get_sqlite_dialect() -> Dialect:
    return SQLiteDialect()
