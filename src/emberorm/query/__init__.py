"""
Query construction API.
"""

from .builder import NestedInclude, QueryBuilder, nested, query
from .compiler import SQLCompiler, SQLFilter
from .descriptor import CREATE, DELETE, READ, UPDATE, Include, QueryDescriptor, validate_descriptor
from .expressions import Q, as_q
from .predicates import MATCH_ALL, Condition, Junction, Predicate

__all__ = [
    "CREATE",
    "Condition",
    "DELETE",
    "Include",
    "Junction",
    "MATCH_ALL",
    "NestedInclude",
    "Predicate",
    "Q",
    "QueryBuilder",
    "QueryDescriptor",
    "READ",
    "SQLCompiler",
    "SQLFilter",
    "UPDATE",
    "as_q",
    "nested",
    "query",
    "validate_descriptor",
]
