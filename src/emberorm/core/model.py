"""
Model metadata and the schema graph produced by ``emberorm.schema.load``.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from ..errors import NotFoundError
from .fields import FieldDef
from .relations import MANY_TO_MANY, RelationDef


@dataclass
class ModelDef:
    """
    Container for a model's scalar fields and relation fields, in declaration order.
    """

    name: str
    table_name: str = ""
    fields: "OrderedDict[str, FieldDef]" = field(default_factory=OrderedDict)
    relations: "OrderedDict[str, RelationDef]" = field(default_factory=OrderedDict)
    line: Optional[int] = field(default=None, compare=False)

    @property
    def primary_key(self) -> Optional[FieldDef]:
        for field_def in self.fields.values():
            if field_def.primary_key:
                return field_def
        return None

    @property
    def pk_name(self) -> str:
        pk = self.primary_key
        if pk is None:
            raise NotFoundError(f"Model '{self.name}' has no @id field", model=self.name)
        return pk.name

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def has_relation(self, name: str) -> bool:
        return name in self.relations

    def get_field(self, name: str) -> FieldDef:
        try:
            return self.fields[name]
        except KeyError as exc:
            raise NotFoundError(
                f"Unknown field '{name}' on model '{self.name}'", model=self.name, field=name
            ) from exc

    def get_relation(self, name: str) -> RelationDef:
        try:
            return self.relations[name]
        except KeyError as exc:
            raise NotFoundError(
                f"Unknown relation '{name}' on model '{self.name}'", model=self.name, field=name
            ) from exc

    def scalar_fields(self) -> List[FieldDef]:
        return list(self.fields.values())

    def unique_fields(self) -> List[FieldDef]:
        return [f for f in self.fields.values() if f.unique or f.primary_key]

    def owning_relations(self) -> List[RelationDef]:
        return [rel for rel in self.relations.values() if rel.owning]

    def column_for(self, name: str) -> str:
        return self.get_field(name).column_name()


class Schema:
    """
    Validated model graph. Instances are read-only once built by the loader.
    """

    def __init__(self, models: "OrderedDict[str, ModelDef]") -> None:
        self._models = models

    @property
    def models(self) -> Mapping[str, ModelDef]:
        return MappingProxyType(self._models)

    def resolve(self, model_name: str) -> ModelDef:
        try:
            return self._models[model_name]
        except KeyError as exc:
            raise NotFoundError(f"Unknown model '{model_name}'", model=model_name) from exc

    def join_tables(self) -> Dict[str, Tuple[RelationDef, RelationDef]]:
        """
        Map each many-to-many join table to its (side A, side B) relation fields.
        """

        tables: Dict[str, Tuple[RelationDef, RelationDef]] = {}
        for model in self._models.values():
            for relation in model.relations.values():
                if relation.kind != MANY_TO_MANY or relation.join_column != "A":
                    continue
                other = self._models[relation.target].relations[relation.inverse or ""]
                tables[relation.join_table or ""] = (relation, other)
        return tables

    def __contains__(self, model_name: object) -> bool:
        return model_name in self._models

    def __iter__(self) -> Iterator[ModelDef]:
        return iter(self._models.values())

    def __len__(self) -> int:
        return len(self._models)

    def __repr__(self) -> str:
        return f"<Schema models={list(self._models)}>"
