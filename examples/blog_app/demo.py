"""
Utility helpers for running the emberorm blog example end-to-end.
"""

from __future__ import annotations

from typing import Any, Dict, List

from emberorm import Engine, EngineConfig, MigrationEngine, Q, SQLiteStore, nested, query

from .models import load_blog_schema

APP_LABEL = "blog_example"
MIGRATION_NAME = "0001_initial"


def bootstrap_engine(dsn: str = "sqlite:///:memory:", *, config: EngineConfig | None = None) -> Engine:
    """
    Create a SQLite-backed engine and ensure the blog schema exists.
    """

    schema = load_blog_schema()
    store = SQLiteStore(dsn)
    MigrationEngine(store).migrate(schema, app=APP_LABEL, name=MIGRATION_NAME)
    return Engine(schema, store, config=config)


def seed_sample_data(engine: Engine) -> Dict[str, List[Dict[str, Any]]]:
    """
    Populate authors, categories, tags and posts in a single transaction.
    """

    with engine.transaction():
        authors = engine.create_many(
            "Author",
            [
                {"name": "Alice Carter", "email": "alice@example.com", "bio": "Editor-in-chief."},
                {"name": "Brian Kim", "email": "brian@example.com", "bio": "Performance specialist."},
            ],
        )
        categories = engine.create_many(
            "Category",
            [
                {"name": "Announcements", "description": "Release notes and launch news."},
                {"name": "Guides", "description": "Deep dives and tutorials."},
            ],
        )
        tags = engine.create_many("Tag", [{"label": "release"}, {"label": "performance"}])
        posts = engine.create_many(
            "Post",
            [
                {
                    "title": "Introducing emberorm",
                    "body": "This guide walks through schemas, engines and stores.",
                    "published": True,
                    "authorId": authors[0]["id"],
                    "categoryId": categories[0]["id"],
                },
                {
                    "title": "Eliminating N+1 Queries",
                    "body": "Use include() so related rows load in one batch.",
                    "published": True,
                    "authorId": authors[1]["id"],
                    "categoryId": categories[1]["id"],
                },
                {
                    "title": "Draft: roadmap",
                    "body": "Not ready yet.",
                    "authorId": authors[0]["id"],
                    "categoryId": categories[0]["id"],
                },
            ],
        )
        engine.connect("Post", posts[0]["id"], "tags", [tags[0]["id"]])
        engine.connect("Post", posts[1]["id"], "tags", [tags[1]["id"]])

    return {
        "authors": [author.to_dict() for author in authors],
        "categories": [category.to_dict() for category in categories],
        "tags": [tag.to_dict() for tag in tags],
        "posts": [post.to_dict() for post in posts],
    }


def fetch_recent_posts(engine: Engine, limit: int = 5) -> List[Dict[str, Any]]:
    """
    Retrieve a feed of published posts with author, category and tag data.
    """

    posts = (
        query(engine.schema, "Post", config=engine.config)
        .filter(published=True)
        .include("author")
        .include("category")
        .include("tags", nested().order_by("label"))
        .order_by("-id")
        .limit(limit)
        .execute(engine)
    )
    return [
        {
            "id": post.id,
            "title": post.title,
            "published": post.published,
            "author_name": post.author.name if post.author else None,
            "category_name": post.category.name if post.category else None,
            "tags": [tag.label for tag in post.tags],
        }
        for post in posts
    ]


def authors_with_posts(engine: Engine) -> List[Dict[str, Any]]:
    """
    Load every author with their published posts in two store calls.
    """

    authors = (
        engine.query("Author")
        .include("posts", nested().filter(published=True).order_by("title"))
        .order_by("id")
        .execute(engine)
    )
    return [
        {"name": author.name, "posts": [post.title for post in author.posts]}
        for author in authors
    ]


def search_posts(engine: Engine, term: str) -> List[str]:
    """
    Titles of posts whose title mentions ``term`` or whose author name does.
    """

    condition = Q(title__icontains=term) | Q(author__name__icontains=term)
    posts = engine.query("Post").where(condition).order_by("id").execute(engine)
    return [post.title for post in posts]


def compare_loading_strategies(engine: Engine) -> Dict[str, Any]:
    """
    Contrast per-row author lookups with a batched include.
    """

    engine.stats.reset()
    for post in engine.query("Post").order_by("id").execute(engine):
        engine.get("Author", post.authorId)
    per_row = engine.stats.total_calls()

    engine.stats.reset()
    engine.query("Post").include("author").execute(engine)
    batched = engine.stats.total_calls()

    return {"per_row": per_row, "batched": batched, "threshold": engine.config.n_plus_one_threshold}


def run_demo(dsn: str = "sqlite:///:memory:") -> List[Dict[str, Any]]:
    """
    Bootstrap the database, seed data, and return a rendered feed.
    """

    engine = bootstrap_engine(dsn=dsn)
    try:
        seed_sample_data(engine)
        return fetch_recent_posts(engine)
    finally:
        engine.close()


if __name__ == "__main__":
    feed = run_demo("sqlite:///blog_demo.db")
    for entry in feed:
        print(f"[{entry['category_name']}] {entry['title']} by {entry['author_name']}")
