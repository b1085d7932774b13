import time

import pytest

from emberorm import Engine, MemoryStore, load

SCHEMA = load(
    """
    model Reading {
      id     Int    @id @default(autoincrement())
      sensor String
      value  Float
    }
    """
)


def test_memory_store_bulk_creates_do_not_copy_existing_rows():
    store = MemoryStore()
    store.apply_schema(SCHEMA)
    engine = Engine(SCHEMA, store)

    started = time.perf_counter()
    for index in range(4000):
        engine.create("Reading", {"sensor": f"s{index % 7}", "value": index / 10})
    elapsed = time.perf_counter() - started

    assert engine.count("Reading") == 4000
    # Copying the tables on every write takes tens of seconds at this size.
    assert elapsed < 10


def test_memory_store_rollback_after_bulk_load():
    store = MemoryStore()
    store.apply_schema(SCHEMA)
    engine = Engine(SCHEMA, store)
    engine.create_many("Reading", [{"sensor": "base", "value": 0.0}] * 100)

    with pytest.raises(RuntimeError):
        with engine.transaction():
            for index in range(500):
                engine.create("Reading", {"sensor": "batch", "value": float(index)})
            raise RuntimeError("abort import")

    assert engine.count("Reading") == 100
    assert engine.create("Reading", {"sensor": "next", "value": 1.0}).id == 101
