"""Parser for the schema definition language.

The grammar covers a Prisma-style subset::

    model Post {
      id       Int      @id @default(autoincrement())
      title    String
      authorId Int
      author   User     @relation(fields: [authorId], references: [id])
      @@map("posts")
    }

Parsing produces unresolved ``*Spec`` objects; ``emberorm.schema.loader``
turns them into a validated :class:`~emberorm.core.Schema`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import ply.yacc as yacc

from ..errors import SchemaError
from .lexer import SchemaLexer


@dataclass(frozen=True)
class Identifier:
    """Bare identifier used as a value, e.g. ``true`` or a field name in a list."""

    name: str


@dataclass(frozen=True)
class Call:
    """Function-call value such as ``autoincrement()``."""

    name: str


@dataclass
class ArgSpec:
    value: Any
    name: str | None = None


@dataclass
class AttributeSpec:
    name: str
    args: list[ArgSpec] = field(default_factory=list)
    line: int | None = None

    def positional(self) -> list[Any]:
        return [arg.value for arg in self.args if arg.name is None]

    def keyword(self, name: str, default: Any = None) -> Any:
        for arg in self.args:
            if arg.name == name:
                return arg.value
        return default


@dataclass
class TypeRef:
    name: str
    optional: bool = False
    is_list: bool = False


@dataclass
class FieldSpec:
    name: str
    type_ref: TypeRef
    attributes: list[AttributeSpec] = field(default_factory=list)
    line: int | None = None


@dataclass
class ModelSpec:
    name: str
    fields: list[FieldSpec] = field(default_factory=list)
    attributes: list[AttributeSpec] = field(default_factory=list)
    line: int | None = None


class SchemaParser:
    """LALR parser for schema definition text."""

    tokens = SchemaLexer.tokens
    start = "schema"

    def __init__(self) -> None:
        self.lexer = SchemaLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_schema(self, p: yacc.YaccProduction) -> None:
        """schema : model_list"""
        p[0] = p[1]

    def p_schema_empty(self, p: yacc.YaccProduction) -> None:
        """schema :"""
        p[0] = []

    def p_model_list_single(self, p: yacc.YaccProduction) -> None:
        """model_list : model"""
        p[0] = [p[1]]

    def p_model_list_multiple(self, p: yacc.YaccProduction) -> None:
        """model_list : model_list model"""
        p[0] = p[1] + [p[2]]

    def p_model(self, p: yacc.YaccProduction) -> None:
        """model : MODEL IDENTIFIER LBRACE member_list RBRACE"""
        spec = ModelSpec(name=p[2], line=p.lineno(1))
        for member in p[4]:
            if isinstance(member, FieldSpec):
                spec.fields.append(member)
            else:
                spec.attributes.append(member)
        p[0] = spec

    def p_model_empty(self, p: yacc.YaccProduction) -> None:
        """model : MODEL IDENTIFIER LBRACE RBRACE"""
        p[0] = ModelSpec(name=p[2], line=p.lineno(1))

    def p_member_list_single(self, p: yacc.YaccProduction) -> None:
        """member_list : member"""
        p[0] = [p[1]]

    def p_member_list_multiple(self, p: yacc.YaccProduction) -> None:
        """member_list : member_list member"""
        p[0] = p[1] + [p[2]]

    def p_member_field(self, p: yacc.YaccProduction) -> None:
        """member : IDENTIFIER type_ref attribute_list
                  | IDENTIFIER type_ref"""
        attributes = p[3] if len(p) == 4 else []
        p[0] = FieldSpec(name=p[1], type_ref=p[2], attributes=attributes, line=p.lineno(1))

    def p_member_block_attribute(self, p: yacc.YaccProduction) -> None:
        """member : ATAT attribute_body"""
        p[0] = p[2]

    def p_type_ref_plain(self, p: yacc.YaccProduction) -> None:
        """type_ref : IDENTIFIER"""
        p[0] = TypeRef(name=p[1])

    def p_type_ref_optional(self, p: yacc.YaccProduction) -> None:
        """type_ref : IDENTIFIER QUESTION"""
        p[0] = TypeRef(name=p[1], optional=True)

    def p_type_ref_list(self, p: yacc.YaccProduction) -> None:
        """type_ref : IDENTIFIER LBRACKET RBRACKET"""
        p[0] = TypeRef(name=p[1], is_list=True)

    def p_attribute_list_single(self, p: yacc.YaccProduction) -> None:
        """attribute_list : AT attribute_body"""
        p[0] = [p[2]]

    def p_attribute_list_multiple(self, p: yacc.YaccProduction) -> None:
        """attribute_list : attribute_list AT attribute_body"""
        p[0] = p[1] + [p[3]]

    def p_attribute_body_bare(self, p: yacc.YaccProduction) -> None:
        """attribute_body : IDENTIFIER"""
        p[0] = AttributeSpec(name=p[1], line=p.lineno(1))

    def p_attribute_body_call(self, p: yacc.YaccProduction) -> None:
        """attribute_body : IDENTIFIER LPAREN arg_list RPAREN
                          | IDENTIFIER LPAREN RPAREN"""
        args = p[3] if len(p) == 5 else []
        p[0] = AttributeSpec(name=p[1], args=args, line=p.lineno(1))

    def p_arg_list_single(self, p: yacc.YaccProduction) -> None:
        """arg_list : arg"""
        p[0] = [p[1]]

    def p_arg_list_multiple(self, p: yacc.YaccProduction) -> None:
        """arg_list : arg_list COMMA arg"""
        p[0] = p[1] + [p[3]]

    def p_arg_positional(self, p: yacc.YaccProduction) -> None:
        """arg : value"""
        p[0] = ArgSpec(value=p[1])

    def p_arg_named(self, p: yacc.YaccProduction) -> None:
        """arg : IDENTIFIER COLON value"""
        p[0] = ArgSpec(value=p[3], name=p[1])

    def p_value_literal(self, p: yacc.YaccProduction) -> None:
        """value : STRING
                 | NUMBER"""
        p[0] = p[1]

    def p_value_identifier(self, p: yacc.YaccProduction) -> None:
        """value : IDENTIFIER"""
        p[0] = Identifier(p[1])

    def p_value_call(self, p: yacc.YaccProduction) -> None:
        """value : IDENTIFIER LPAREN RPAREN"""
        p[0] = Call(p[1])

    def p_value_list(self, p: yacc.YaccProduction) -> None:
        """value : LBRACKET value_list RBRACKET"""
        p[0] = p[2]

    def p_value_list_empty(self, p: yacc.YaccProduction) -> None:
        """value : LBRACKET RBRACKET"""
        p[0] = []

    def p_value_list_single(self, p: yacc.YaccProduction) -> None:
        """value_list : value"""
        p[0] = [p[1]]

    def p_value_list_multiple(self, p: yacc.YaccProduction) -> None:
        """value_list : value_list COMMA value"""
        p[0] = p[1] + [p[3]]

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SchemaError({"__all__": [f"Syntax error at '{p.value}' (line {p.lineno})"]})
        raise SchemaError({"__all__": ["Syntax error at end of input"]})

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def parse(self, data: str) -> list[ModelSpec]:
        """Parse schema text into unresolved model specs."""
        if self.parser is None:
            self.build(debug=False, write_tables=False, errorlog=yacc.NullLogger())
        self.lexer.input("")
        specs = self.parser.parse(data, lexer=self.lexer.lexer)
        return specs or []
