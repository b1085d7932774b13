from examples.blog_app import (
    authors_with_posts,
    bootstrap_engine,
    compare_loading_strategies,
    fetch_recent_posts,
    run_demo,
    search_posts,
    seed_sample_data,
)


def test_blog_demo_runs_end_to_end(tmp_path):
    feed = run_demo(f"sqlite:///{tmp_path / 'blog.db'}")

    assert [entry["title"] for entry in feed] == ["Eliminating N+1 Queries", "Introducing emberorm"]
    assert feed[0]["author_name"] == "Brian Kim"
    assert feed[0]["category_name"] == "Guides"
    assert feed[0]["tags"] == ["performance"]
    assert feed[1]["tags"] == ["release"]


def test_blog_queries(tmp_path):
    engine = bootstrap_engine(f"sqlite:///{tmp_path / 'queries.db'}")
    try:
        seeded = seed_sample_data(engine)
        assert len(seeded["posts"]) == 3

        assert len(fetch_recent_posts(engine, limit=1)) == 1
        assert authors_with_posts(engine) == [
            {"name": "Alice Carter", "posts": ["Introducing emberorm"]},
            {"name": "Brian Kim", "posts": ["Eliminating N+1 Queries"]},
        ]
        assert search_posts(engine, "brian") == ["Eliminating N+1 Queries"]
        assert search_posts(engine, "draft") == ["Draft: roadmap"]
    finally:
        engine.close()


def test_include_uses_fewer_store_calls_than_per_row_lookups(tmp_path):
    engine = bootstrap_engine(f"sqlite:///{tmp_path / 'strategies.db'}")
    try:
        seed_sample_data(engine)
        result = compare_loading_strategies(engine)
    finally:
        engine.close()

    assert result["per_row"] == 4
    assert result["batched"] == 2


def test_bootstrap_is_repeatable(tmp_path):
    dsn = f"sqlite:///{tmp_path / 'repeat.db'}"
    bootstrap_engine(dsn).close()
    engine = bootstrap_engine(dsn)
    try:
        assert engine.count("Post") == 0
    finally:
        engine.close()
