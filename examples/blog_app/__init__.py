"""
Blog-style sample application showcasing emberorm capabilities.
"""

from .demo import (
    authors_with_posts,
    bootstrap_engine,
    compare_loading_strategies,
    fetch_recent_posts,
    run_demo,
    search_posts,
    seed_sample_data,
)
from .models import BLOG_SCHEMA, load_blog_schema

__all__ = [
    "BLOG_SCHEMA",
    "authors_with_posts",
    "bootstrap_engine",
    "compare_loading_strategies",
    "fetch_recent_posts",
    "load_blog_schema",
    "run_demo",
    "search_posts",
    "seed_sample_data",
]
