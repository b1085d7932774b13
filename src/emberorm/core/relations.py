"""
Relation definitions and the linker pairing both sides of each relation.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple

from ..utils.naming import join_table_name

if TYPE_CHECKING:
    from .model import ModelDef


MANY_TO_ONE = "many-to-one"
ONE_TO_ONE = "one-to-one"
ONE_TO_MANY = "one-to-many"
MANY_TO_MANY = "many-to-many"


@dataclass
class RelationDef:
    """
    A relation field on ``model`` pointing at ``target``.

    The owning side names its foreign key (``fk_field``) and the referenced
    field on the target (``references``). ``local_key`` / ``remote_key`` are
    filled in by the linker for every kind except many-to-many and hold the
    field names to join on: ``self[local_key] == target[remote_key]``.
    """

    name: str
    model: str
    target: str
    is_list: bool = False
    nullable: bool = False
    relation_name: Optional[str] = None
    fk_field: Optional[str] = None
    references: Optional[str] = None
    kind: str = ""
    inverse: Optional[str] = None
    local_key: Optional[str] = None
    remote_key: Optional[str] = None
    join_table: Optional[str] = None
    join_column: Optional[str] = None
    target_join_column: Optional[str] = None
    line: Optional[int] = field(default=None, compare=False)

    @property
    def owning(self) -> bool:
        return self.fk_field is not None

    @property
    def to_many(self) -> bool:
        return self.kind in (ONE_TO_MANY, MANY_TO_MANY)

    @property
    def qualified_name(self) -> str:
        return f"{self.model}.{self.name}"


class RelationLinker:
    """
    Pairs relation fields across models and assigns relation kinds.

    Problems are recorded in the shared ``errors`` mapping rather than raised so
    schema loading can report every issue in one pass.
    """

    def __init__(self, models: Mapping[str, "ModelDef"], errors: Dict[str, List[str]]) -> None:
        self.models = models
        self.errors = errors

    def link(self) -> None:
        groups: "OrderedDict[Tuple[Tuple[str, ...], Optional[str]], List[RelationDef]]" = OrderedDict()
        for model in self.models.values():
            for relation in model.relations.values():
                if relation.target not in self.models:
                    continue
                key = (tuple(sorted({relation.model, relation.target})), relation.relation_name)
                groups.setdefault(key, []).append(relation)

        for (pair, name), relations in groups.items():
            if len(relations) > 2:
                label = " and ".join(f"'{model}'" for model in pair)
                for relation in relations:
                    self._error(
                        relation,
                        f"Ambiguous relation between {label}; give each relation a distinct "
                        '@relation("name")',
                    )
                continue
            if len(relations) == 1:
                self._link_single(relations[0])
            else:
                self._link_pair(relations[0], relations[1])

    # ------------------------------------------------------------------ #
    def _link_single(self, relation: RelationDef) -> None:
        if not relation.owning:
            self._error(
                relation,
                f"Relation field '{relation.qualified_name}' has no opposite relation field "
                f"on model '{relation.target}' and defines no fields/references",
            )
            return
        if self._validate_owning(relation):
            self._assign_owning(relation)

    def _link_pair(self, first: RelationDef, second: RelationDef) -> None:
        if first.owning and second.owning:
            self._error(
                second,
                f"Only one side of the relation between '{first.model}' and '{second.model}' "
                "may define fields/references",
            )
            return
        if first.owning or second.owning:
            owning, inverse = (first, second) if first.owning else (second, first)
            self._link_owned_pair(owning, inverse)
            return
        if first.is_list and second.is_list:
            self._link_many_to_many(first, second)
            return
        self._error(
            first,
            f"Relation between '{first.model}' and '{second.model}' must define "
            "fields/references on one side",
        )

    def _link_owned_pair(self, owning: RelationDef, inverse: RelationDef) -> None:
        if not self._validate_owning(owning):
            return
        fk = self.models[owning.model].fields[owning.fk_field or ""]
        unique_fk = fk.unique or fk.primary_key
        if inverse.is_list:
            if unique_fk:
                self._error(
                    inverse,
                    f"'{inverse.qualified_name}' is a list but the foreign key "
                    f"'{fk.qualified_name}' is unique; declare it as a single optional field",
                )
                return
            inverse.kind = ONE_TO_MANY
        else:
            if not unique_fk:
                self._error(
                    owning,
                    f"One-to-one relation '{owning.qualified_name}' requires a @unique "
                    f"foreign key '{fk.qualified_name}'",
                )
                return
            if not inverse.nullable:
                self._error(
                    inverse,
                    f"Back-relation '{inverse.qualified_name}' of a one-to-one relation must be optional",
                )
                return
            inverse.kind = ONE_TO_ONE
        self._assign_owning(owning)
        owning.inverse = inverse.name
        inverse.inverse = owning.name
        inverse.local_key = owning.references
        inverse.remote_key = owning.fk_field

    def _link_many_to_many(self, first: RelationDef, second: RelationDef) -> None:
        for relation in (first, second):
            if self.models[relation.model].primary_key is None:
                return
        if first.model == second.model:
            side_a, side_b = sorted((first, second), key=lambda rel: rel.name)
        else:
            side_a, side_b = sorted((first, second), key=lambda rel: rel.model)
        table = join_table_name(side_a.model, side_b.model, first.relation_name)
        for relation, own, other in ((side_a, "A", "B"), (side_b, "B", "A")):
            relation.kind = MANY_TO_MANY
            relation.join_table = table
            relation.join_column = own
            relation.target_join_column = other
            relation.local_key = self.models[relation.model].primary_key.name  # type: ignore[union-attr]
            relation.remote_key = self.models[relation.target].primary_key.name  # type: ignore[union-attr]
        first.inverse = second.name
        second.inverse = first.name

    # ------------------------------------------------------------------ #
    def _assign_owning(self, relation: RelationDef) -> None:
        fk = self.models[relation.model].fields[relation.fk_field or ""]
        relation.kind = ONE_TO_ONE if (fk.unique or fk.primary_key) else MANY_TO_ONE
        relation.local_key = relation.fk_field
        relation.remote_key = relation.references

    def _validate_owning(self, relation: RelationDef) -> bool:
        model = self.models[relation.model]
        target = self.models[relation.target]
        valid = True
        fk = model.fields.get(relation.fk_field or "")
        if fk is None:
            self._error(
                relation,
                f"Unknown foreign key field '{relation.fk_field}' in @relation on "
                f"'{relation.qualified_name}'",
            )
            valid = False
        referenced = target.fields.get(relation.references or "")
        if referenced is None:
            self._error(
                relation,
                f"Unknown referenced field '{relation.references}' on model '{target.name}' "
                f"in @relation on '{relation.qualified_name}'",
            )
            valid = False
        elif not (referenced.primary_key or referenced.unique):
            self._error(
                relation,
                f"Referenced field '{referenced.qualified_name}' must be the @id or a @unique field",
            )
            valid = False
        if fk is None or referenced is None:
            return False
        if fk.type_name != referenced.type_name:
            self._error(
                relation,
                f"Foreign key '{fk.qualified_name}' ({fk.type_name}) does not match "
                f"'{referenced.qualified_name}' ({referenced.type_name})",
            )
            valid = False
        if fk.nullable != relation.nullable:
            expectation = "optional" if relation.nullable else "required"
            self._error(
                relation,
                f"Relation '{relation.qualified_name}' is {expectation} but its foreign key "
                f"'{fk.qualified_name}' is not",
            )
            valid = False
        return valid

    def _error(self, relation: RelationDef, message: str) -> None:
        self.errors.setdefault(relation.qualified_name, []).append(message)
