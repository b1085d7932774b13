"""
Utility helpers shared across emberorm packages.
"""

from .logging import configure_logging, get_logger, set_correlation_id, time_call
from .naming import camel_to_snake, join_table_name
from .performance import PerformanceTracker

__all__ = [
    "PerformanceTracker",
    "camel_to_snake",
    "configure_logging",
    "get_logger",
    "join_table_name",
    "set_correlation_id",
    "time_call",
]
