"""
Schema builder converting model metadata into DDL statements.
"""

from __future__ import annotations

from typing import List

from ..core.fields import LITERAL, FieldDef
from ..core.model import ModelDef, Schema
from ..core.relations import RelationDef
from ..dialects.base import Dialect
from ..utils import get_logger


class SchemaBuilder:
    """
    Produces dialect-specific SQL for schema manipulation.
    """

    def __init__(self, dialect: Dialect) -> None:
        self.dialect = dialect
        self.logger = get_logger("schema.builder")

    def create_schema_sql(self, schema: Schema) -> List[str]:
        statements = [self.create_table_sql(model, schema) for model in schema]
        for table, (side_a, side_b) in schema.join_tables().items():
            statements.append(self.create_join_table_sql(table, side_a, side_b, schema))
        return statements

    def create_table_sql(self, model: ModelDef, schema: Schema) -> str:
        pieces = self._render_columns(model)
        for relation in model.owning_relations():
            pieces.append(self._foreign_key_clause(model, relation, schema))
        table_name = self.dialect.format_table(model.table_name)
        return f"CREATE TABLE IF NOT EXISTS {table_name} ({', '.join(pieces)})"

    def create_join_table_sql(
        self, table: str, side_a: RelationDef, side_b: RelationDef, schema: Schema
    ) -> str:
        columns: List[str] = []
        references: List[str] = []
        for relation in (side_a, side_b):
            model = schema.resolve(relation.model)
            pk = model.primary_key
            column = relation.join_column or ""
            columns.append(
                self.dialect.render_column_definition(
                    column, self.dialect.column_type(pk.type_name), nullable=False  # type: ignore[union-attr]
                )
            )
            references.append(
                f"FOREIGN KEY ({self.dialect.quote_identifier(column)}) "
                f"REFERENCES {self.dialect.format_table(model.table_name)} "
                f"({self.dialect.quote_identifier(pk.column_name())}) ON DELETE CASCADE"  # type: ignore[union-attr]
            )
        unique = ", ".join(self.dialect.quote_identifier(c) for c in ("A", "B"))
        body = ", ".join(columns + [f"UNIQUE ({unique})"] + references)
        return f"CREATE TABLE IF NOT EXISTS {self.dialect.format_table(table)} ({body})"

    def drop_table_sql(self, table: str) -> str:
        table_name = self.dialect.format_table(table)
        self.logger.warning(
            "DROP TABLE generated for %s; confirm destructive migration before applying.",
            table_name,
        )
        return f"DROP TABLE IF EXISTS {table_name}"

    def _render_columns(self, model: ModelDef) -> List[str]:
        pieces: List[str] = []
        for field in model.scalar_fields():
            column_def = self.dialect.render_column_definition(
                field.column_name(),
                self.dialect.column_type(field.type_name),
                nullable=field.nullable if not field.primary_key else False,
            )
            extras: List[str] = []
            if field.primary_key:
                extras.append("PRIMARY KEY")
                if field.default is not None and field.default.store_generated:
                    extras.append("AUTOINCREMENT")
            if field.unique and not field.primary_key:
                extras.append("UNIQUE")
            default_sql = self._default_clause(field)
            if default_sql:
                extras.append(default_sql)
            if extras:
                column_def = f"{column_def} {' '.join(extras)}"
            pieces.append(column_def)
        return pieces

    def _foreign_key_clause(self, model: ModelDef, relation: RelationDef, schema: Schema) -> str:
        target = schema.resolve(relation.target)
        local = self.dialect.quote_identifier(model.column_for(relation.fk_field or ""))
        remote = self.dialect.quote_identifier(target.column_for(relation.references or ""))
        return f"FOREIGN KEY ({local}) REFERENCES {self.dialect.format_table(target.table_name)} ({remote})"

    def _default_clause(self, field: FieldDef) -> str | None:
        # Generated defaults are applied by the engine, literals also live in the DDL.
        if field.default is None or field.default.kind != LITERAL:
            return None
        return f"DEFAULT {self.dialect.render_literal(field.to_store(field.default.value))}"
