import pytest

from emberorm import Engine, HookDispatcher, MemoryStore, load
from emberorm.hooks import AFTER_COMMIT, AFTER_CREATE, AFTER_DELETE, AFTER_UPDATE, BEFORE_CREATE

SCHEMA = load(
    """
    model Note {
      id        Int      @id @default(autoincrement())
      text      String
      updatedAt DateTime @updatedAt
    }
    """
)


def build_engine(hooks):
    store = MemoryStore()
    store.apply_schema(SCHEMA)
    return Engine(SCHEMA, store, hooks=hooks)


def test_register_rejects_unknown_event():
    with pytest.raises(ValueError):
        HookDispatcher().register("before_everything", lambda model, **context: None)


def test_global_and_model_handlers_fire():
    hooks = HookDispatcher()
    calls = []
    hooks.register(AFTER_CREATE, lambda model, **context: calls.append(("global", model)))
    hooks.register(AFTER_CREATE, lambda model, **context: calls.append(("note", model)), model="Note")
    hooks.register(AFTER_CREATE, lambda model, **context: calls.append(("other", model)), model="Other")

    hooks.fire(AFTER_CREATE, "Note", record=None)

    assert calls == [("global", "Note"), ("note", "Note")]


def test_before_create_can_adjust_payload():
    hooks = HookDispatcher()

    @hooks.on(BEFORE_CREATE, model="Note")
    def strip_text(model, *, data):
        data["text"] = data["text"].strip()

    engine = build_engine(hooks)
    note = engine.create("Note", {"text": "  remember the milk  "})

    assert note.text == "remember the milk"
    assert note.updatedAt is not None


def test_lifecycle_events_carry_context():
    hooks = HookDispatcher()
    seen = {}
    hooks.register(AFTER_UPDATE, lambda model, **context: seen.setdefault("update", context["records"]))
    hooks.register(AFTER_DELETE, lambda model, **context: seen.setdefault("delete", context["count"]))
    engine = build_engine(hooks)
    note = engine.create("Note", {"text": "draft"})

    engine.update("Note", {"id": note.id}, {"text": "final"})
    engine.delete("Note", {"id": note.id})

    assert [record.text for record in seen["update"]] == ["final"]
    assert seen["delete"] == 1


def test_after_commit_fires_once_per_outermost_transaction():
    hooks = HookDispatcher()
    commits = []
    hooks.register(AFTER_COMMIT, lambda model, **context: commits.append(model))
    engine = build_engine(hooks)

    with engine.transaction():
        engine.create("Note", {"text": "a"})
        engine.create("Note", {"text": "b"})
    assert commits == [None]

    engine.create("Note", {"text": "c"})
    assert commits == [None, None]


def test_after_commit_skipped_on_rollback():
    hooks = HookDispatcher()
    commits = []
    hooks.register(AFTER_COMMIT, lambda model, **context: commits.append(model))
    engine = build_engine(hooks)

    with pytest.raises(RuntimeError):
        with engine.transaction():
            engine.create("Note", {"text": "a"})
            raise RuntimeError("abort")

    assert commits == []
    assert engine.count("Note") == 0
