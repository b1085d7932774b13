import logging

from emberorm import Engine, EngineConfig, MemoryStore, load, query

SCHEMA = load(
    """
    model Author {
      id    Int    @id @default(autoincrement())
      name  String
      books Book[]
    }

    model Book {
      id       Int    @id @default(autoincrement())
      title    String
      authorId Int
      author   Author @relation(fields: [authorId], references: [id])
    }
    """
)


def build_engine(threshold=4):
    store = MemoryStore()
    store.apply_schema(SCHEMA)
    engine = Engine(SCHEMA, store, config=EngineConfig(n_plus_one_threshold=threshold))
    for index in range(1, 6):
        author = engine.create("Author", {"name": f"author-{index}"})
        engine.create("Book", {"title": f"book-{index}", "authorId": author.id})
    engine.stats.reset()
    return engine


def test_per_row_lookups_emit_n_plus_one_warning(caplog):
    engine = build_engine()
    caplog.set_level(logging.WARNING, logger="emberorm.engine.stats")
    caplog.clear()

    for book in engine.find_many("Book"):
        engine.get("Author", book.authorId)

    warnings = [record for record in caplog.records if "Potential N+1 detected" in record.message]
    assert len(warnings) == 1
    summary = {entry["shape"]: entry for entry in engine.stats.summary()}
    assert summary["fetch author id__exact"]["count"] == 5
    assert summary["fetch author id__exact"]["distinct_params"] == 5


def test_include_does_not_trigger_warning(caplog):
    engine = build_engine()
    caplog.set_level(logging.WARNING, logger="emberorm.engine.stats")
    caplog.clear()

    books = query(SCHEMA, "Book").include("author").execute(engine)

    assert [book.author.name for book in books] == [f"author-{i}" for i in range(1, 6)]
    assert engine.stats.total_calls() == 2
    assert not any("Potential N+1 detected" in record.message for record in caplog.records)


def test_threshold_zero_disables_detection(caplog):
    engine = build_engine(threshold=0)
    caplog.set_level(logging.WARNING, logger="emberorm.engine.stats")
    caplog.clear()

    for book in engine.find_many("Book"):
        engine.get("Author", book.authorId)

    assert not any("Potential N+1 detected" in record.message for record in caplog.records)
