"""
Execution engine, relation resolver and their runtime helpers.
"""

from .cancellation import CancellationToken
from .engine import Engine
from .mapper import RecordMapper, RecordSet
from .resolver import RelationResolver
from .result import Result
from .transaction import TransactionManager

__all__ = [
    "CancellationToken",
    "Engine",
    "RecordMapper",
    "RecordSet",
    "RelationResolver",
    "Result",
    "TransactionManager",
]
