"""
Schema loading: parse definition text and validate the resulting model graph.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, List, Optional

from ..core.fields import (
    AUTOINCREMENT,
    GENERATORS,
    LITERAL,
    DefaultRule,
    FieldDef,
    is_scalar_type,
)
from ..core.model import ModelDef, Schema
from ..core.relations import RelationDef, RelationLinker
from ..errors import SchemaError
from ..utils import camel_to_snake, get_logger
from .parser import AttributeSpec, Call, FieldSpec, Identifier, ModelSpec, SchemaParser

SCALAR_ATTRIBUTES = {"id", "unique", "default", "map", "updatedAt"}
RELATION_ATTRIBUTES = {"relation"}
BLOCK_ATTRIBUTES = {"map"}

logger = get_logger("schema.loader")


def load(definition_text: str) -> Schema:
    """
    Parse ``definition_text`` and return the validated schema.

    Raises :class:`SchemaError` listing every problem found.
    """

    specs = SchemaParser().parse(definition_text)
    schema = SchemaLoader().build(specs)
    logger.debug("Loaded schema with models %s", list(schema.models))
    return schema


class SchemaLoader:
    """
    Turns parsed model specs into a :class:`Schema`, collecting all errors.
    """

    def __init__(self) -> None:
        self.errors: Dict[str, List[str]] = {}

    def build(self, specs: List[ModelSpec]) -> Schema:
        self.errors = {}
        model_names = self._collect_model_names(specs)
        models: "OrderedDict[str, ModelDef]" = OrderedDict()
        tables: Dict[str, str] = {}

        for spec in specs:
            if spec.name in models:
                continue
            model = self._build_model(spec, model_names)
            models[model.name] = model
            owner = tables.get(model.table_name)
            if owner is not None:
                self._error(
                    model.name,
                    f"Table name '{model.table_name}' is already used by model '{owner}'",
                )
            else:
                tables[model.table_name] = model.name

        RelationLinker(models, self.errors).link()

        if self.errors:
            raise SchemaError(self.errors)
        return Schema(models)

    # ------------------------------------------------------------------ #
    def _collect_model_names(self, specs: List[ModelSpec]) -> set[str]:
        names: set[str] = set()
        for spec in specs:
            if spec.name in names:
                self._error(spec.name, f"Duplicate model name '{spec.name}'")
            elif is_scalar_type(spec.name):
                self._error(spec.name, f"Model name '{spec.name}' shadows a scalar type")
            names.add(spec.name)
        return names

    def _build_model(self, spec: ModelSpec, model_names: set[str]) -> ModelDef:
        model = ModelDef(name=spec.name, table_name=camel_to_snake(spec.name), line=spec.line)
        for attribute in spec.attributes:
            if attribute.name not in BLOCK_ATTRIBUTES:
                self._error(spec.name, f"Unknown block attribute '@@{attribute.name}'")
                continue
            table = self._single_string(attribute, spec.name)
            if table:
                model.table_name = table

        seen: set[str] = set()
        for field_spec in spec.fields:
            location = f"{spec.name}.{field_spec.name}"
            if field_spec.name in seen:
                self._error(
                    location,
                    f"Duplicate field name '{field_spec.name}' on model '{spec.name}'",
                )
                continue
            seen.add(field_spec.name)
            type_name = field_spec.type_ref.name
            if is_scalar_type(type_name):
                field_def = self._build_field(spec.name, field_spec)
                if field_def is not None:
                    model.fields[field_def.name] = field_def
            elif type_name in model_names:
                relation = self._build_relation(spec.name, field_spec)
                if relation is not None:
                    model.relations[relation.name] = relation
            else:
                self._error(
                    location,
                    f"Unknown type '{type_name}' for field '{location}'; "
                    "no scalar type or model has that name",
                )

        primary_keys = [f for f in model.fields.values() if f.primary_key]
        if len(primary_keys) != 1:
            found = ", ".join(f.name for f in primary_keys) or "none"
            self._error(
                spec.name,
                f"Model '{spec.name}' must define exactly one @id field (found: {found})",
            )
            for extra in primary_keys[1:]:
                extra.primary_key = False

        columns: Dict[str, str] = {}
        for field_def in model.fields.values():
            column = field_def.column_name()
            if column in columns:
                self._error(
                    field_def.qualified_name,
                    f"Column '{column}' is already mapped by field '{columns[column]}'",
                )
            columns[column] = field_def.name
        return model

    def _build_field(self, model_name: str, spec: FieldSpec) -> Optional[FieldDef]:
        location = f"{model_name}.{spec.name}"
        if spec.type_ref.is_list:
            self._error(location, f"Scalar list field '{location}' is not supported")
            return None
        field_def = FieldDef(
            name=spec.name,
            type_name=spec.type_ref.name,
            model=model_name,
            nullable=spec.type_ref.optional,
            line=spec.line,
        )
        for attribute in spec.attributes:
            if attribute.name not in SCALAR_ATTRIBUTES:
                self._error(location, f"Unknown attribute '@{attribute.name}' on '{location}'")
                continue
            if attribute.name == "id":
                field_def.primary_key = True
                if field_def.nullable:
                    self._error(location, f"@id field '{location}' cannot be optional")
            elif attribute.name == "unique":
                field_def.unique = True
            elif attribute.name == "map":
                field_def.db_column = self._single_string(attribute, location)
            elif attribute.name == "updatedAt":
                if field_def.type_name != "DateTime":
                    self._error(location, f"@updatedAt requires a DateTime field, '{location}' is {field_def.type_name}")
                field_def.updated_at = True
            elif attribute.name == "default":
                field_def.default = self._build_default(field_def, attribute)
        return field_def

    def _build_default(self, field_def: FieldDef, attribute: AttributeSpec) -> Optional[DefaultRule]:
        location = field_def.qualified_name
        args = attribute.positional()
        if len(args) != 1:
            self._error(location, f"@default on '{location}' takes exactly one argument")
            return None
        value = args[0]
        if isinstance(value, Call):
            expected = GENERATORS.get(value.name)
            if expected is None:
                self._error(location, f"Unknown default function '{value.name}()' on '{location}'")
                return None
            if expected != field_def.type_name:
                self._error(
                    location,
                    f"{value.name}() requires a {expected} field, '{location}' is {field_def.type_name}",
                )
                return None
            if value.name == AUTOINCREMENT and not field_def.primary_key:
                self._error(location, f"autoincrement() is only supported on the @id field, not '{location}'")
                return None
            return DefaultRule(kind=value.name)
        literal = self._literal(value)
        try:
            literal = field_def.scalar.to_python(literal)
        except ValueError as exc:
            self._error(location, f"Invalid default for '{location}': {exc}")
            return None
        return DefaultRule(kind=LITERAL, value=literal)

    def _build_relation(self, model_name: str, spec: FieldSpec) -> Optional[RelationDef]:
        location = f"{model_name}.{spec.name}"
        relation = RelationDef(
            name=spec.name,
            model=model_name,
            target=spec.type_ref.name,
            is_list=spec.type_ref.is_list,
            nullable=spec.type_ref.optional,
            line=spec.line,
        )
        valid = True
        for attribute in spec.attributes:
            if attribute.name not in RELATION_ATTRIBUTES:
                self._error(location, f"Attribute '@{attribute.name}' is not allowed on relation field '{location}'")
                valid = False
                continue
            positional = attribute.positional()
            name = attribute.keyword("name", positional[0] if positional else None)
            if name is not None and not isinstance(name, str):
                self._error(location, f"Relation name on '{location}' must be a string")
                valid = False
            relation.relation_name = name
            fields = attribute.keyword("fields")
            references = attribute.keyword("references")
            if fields is None and references is None:
                continue
            if fields is None or references is None:
                self._error(location, f"@relation on '{location}' needs both fields and references")
                valid = False
                continue
            fk_names = self._identifier_list(fields)
            ref_names = self._identifier_list(references)
            if fk_names is None or ref_names is None:
                self._error(location, f"fields/references on '{location}' must be lists of field names")
                valid = False
                continue
            if len(fk_names) != 1 or len(ref_names) != 1:
                self._error(location, f"Composite foreign keys are not supported ('{location}')")
                valid = False
                continue
            if relation.is_list:
                self._error(location, f"List relation field '{location}' cannot define fields/references")
                valid = False
                continue
            relation.fk_field = fk_names[0]
            relation.references = ref_names[0]
        return relation if valid else None

    # ------------------------------------------------------------------ #
    def _single_string(self, attribute: AttributeSpec, location: str) -> Optional[str]:
        args = attribute.positional()
        if len(args) != 1 or not isinstance(args[0], str):
            self._error(location, f"@{attribute.name} on '{location}' expects a single string argument")
            return None
        return args[0]

    @staticmethod
    def _identifier_list(value: Any) -> Optional[List[str]]:
        if not isinstance(value, list) or not value:
            return None
        names = []
        for item in value:
            if not isinstance(item, Identifier):
                return None
            names.append(item.name)
        return names

    @staticmethod
    def _literal(value: Any) -> Any:
        if isinstance(value, Identifier):
            if value.name == "true":
                return True
            if value.name == "false":
                return False
            return value.name
        return value

    def _error(self, location: str, message: str) -> None:
        self.errors.setdefault(location, []).append(message)
