"""
SQL compilation utilities translating predicates into SQL strings.
"""

from __future__ import annotations

from typing import Any, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from ..dialects.base import Dialect
from ..errors import UnsupportedOperationError
from .predicates import (
    CONTAINS,
    ENDSWITH,
    EXACT,
    GT,
    GTE,
    ICONTAINS,
    IN,
    ISNULL,
    LT,
    LTE,
    NOT,
    NOT_IN,
    STARTSWITH,
    Condition,
    Junction,
    Predicate,
)

COMPARISON_OPERATORS = {
    EXACT: "=",
    GT: ">",
    GTE: ">=",
    LT: "<",
    LTE: "<=",
}

_GLOB_PATTERNS = {
    CONTAINS: "*{}*",
    STARTSWITH: "{}*",
    ENDSWITH: "*{}",
}


class SQLFilter(NamedTuple):
    """A compiled WHERE fragment and its parameters."""

    sql: str
    params: Tuple[Any, ...] = ()


def _escape_glob(value: str) -> str:
    return "".join(f"[{ch}]" if ch in "*?[" else ch for ch in value)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLCompiler:
    """
    Compile predicates and row operations into SQL statements and parameters.

    Comparisons against NULL evaluate to false rather than unknown, so a
    negated branch matches exactly the rows its positive form rejects.
    """

    def __init__(self, dialect: Dialect) -> None:
        self.dialect = dialect

    # ------------------------------------------------------------------ #
    # Predicates
    # ------------------------------------------------------------------ #
    def compile_filter(self, predicate: Predicate) -> SQLFilter:
        sql, params = self._compile(predicate)
        return SQLFilter(sql, tuple(params))

    def _compile(self, predicate: Predicate) -> Tuple[str, List[Any]]:
        if isinstance(predicate, Condition):
            return self._compile_condition(predicate)
        if predicate.is_empty():
            return ("1 = 0" if predicate.negated else ""), []

        parts: List[str] = []
        params: List[Any] = []
        for child in predicate.children:
            child_sql, child_params = self._compile(child)
            parts.append(f"({child_sql or '1 = 1'})")
            params.extend(child_params)
        sql = f" {predicate.connector} ".join(parts)
        if predicate.negated:
            sql = f"NOT COALESCE(({sql}), 0)"
        return sql, params

    def _compile_condition(self, condition: Condition) -> Tuple[str, List[Any]]:
        column = self.dialect.quote_identifier(condition.column)
        lookup = condition.lookup
        value = condition.value
        placeholder = self.dialect.parameter_placeholder()

        if lookup == ISNULL:
            return (f"{column} IS NULL" if value else f"{column} IS NOT NULL"), []
        if lookup == EXACT and value is None:
            return f"{column} IS NULL", []
        if lookup == NOT:
            if value is None:
                return f"{column} IS NOT NULL", []
            return f"({column} IS NULL OR {column} <> {placeholder})", [value]
        if lookup in COMPARISON_OPERATORS:
            return f"{column} {COMPARISON_OPERATORS[lookup]} {placeholder}", [value]
        if lookup in (IN, NOT_IN):
            return self._compile_membership(column, lookup, value)
        if lookup in _GLOB_PATTERNS:
            pattern = _GLOB_PATTERNS[lookup].format(_escape_glob(value))
            return f"{column} GLOB {placeholder}", [pattern]
        if lookup == ICONTAINS:
            return f"lower({column}) LIKE lower({placeholder}) ESCAPE '\\'", [f"%{_escape_like(value)}%"]
        raise UnsupportedOperationError(
            f"Lookup '{lookup}' is not supported by the {self.dialect.name} dialect",
            field=condition.column,
            value=lookup,
        )

    def _compile_membership(self, column: str, lookup: str, values: Sequence[Any]) -> Tuple[str, List[Any]]:
        present = [value for value in values if value is not None]
        with_null = len(present) != len(values)
        placeholders = ", ".join(self.dialect.parameter_placeholder() for _ in present)
        if lookup == IN:
            parts = [f"{column} IN ({placeholders})"] if present else []
            if with_null:
                parts.append(f"{column} IS NULL")
            return (" OR ".join(parts) or "0 = 1"), present
        if not present:
            return (f"{column} IS NOT NULL" if with_null else "1 = 1"), []
        if with_null:
            return f"({column} IS NOT NULL AND {column} NOT IN ({placeholders}))", present
        return f"({column} IS NULL OR {column} NOT IN ({placeholders}))", present

    # ------------------------------------------------------------------ #
    # Statements
    # ------------------------------------------------------------------ #
    def select(
        self,
        table: str,
        columns: Optional[Sequence[str]],
        where: SQLFilter,
        ordering: Sequence[str] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Tuple[str, List[Any]]:
        select_list = ", ".join(self.dialect.quote_identifier(c) for c in columns) if columns else "*"
        sql_parts: List[str] = [f"SELECT {select_list}", "FROM", self.dialect.format_table(table)]
        params: List[Any] = []
        if where.sql:
            sql_parts.append("WHERE")
            sql_parts.append(where.sql)
            params.extend(where.params)
        if ordering:
            sql_parts.append("ORDER BY")
            sql_parts.append(", ".join(self._compile_ordering(column) for column in ordering))
        limit_clause = self.dialect.limit_clause(limit, offset)
        if limit_clause:
            sql_parts.append(limit_clause)
        return " ".join(sql_parts), params

    def insert(self, table: str, values: Mapping[str, Any]) -> Tuple[str, List[Any]]:
        table_sql = self.dialect.format_table(table)
        if not values:
            return f"INSERT INTO {table_sql} DEFAULT VALUES", []
        columns = ", ".join(self.dialect.quote_identifier(column) for column in values)
        placeholders = ", ".join(self.dialect.parameter_placeholder() for _ in values)
        return f"INSERT INTO {table_sql} ({columns}) VALUES ({placeholders})", list(values.values())

    def update(self, table: str, values: Mapping[str, Any], where: SQLFilter) -> Tuple[str, List[Any]]:
        assignments = ", ".join(
            f"{self.dialect.quote_identifier(column)} = {self.dialect.parameter_placeholder()}"
            for column in values
        )
        sql = f"UPDATE {self.dialect.format_table(table)} SET {assignments}"
        params = list(values.values())
        if where.sql:
            sql += f" WHERE {where.sql}"
            params.extend(where.params)
        return sql, params

    def delete(self, table: str, where: SQLFilter) -> Tuple[str, List[Any]]:
        sql = f"DELETE FROM {self.dialect.format_table(table)}"
        if where.sql:
            sql += f" WHERE {where.sql}"
        return sql, list(where.params)

    def _compile_ordering(self, column: str) -> str:
        descending = column.startswith("-")
        name = column[1:] if descending else column
        clause = self.dialect.quote_identifier(name)
        if descending:
            clause += " DESC"
        return clause
