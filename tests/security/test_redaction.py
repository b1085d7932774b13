import logging

import pytest

from emberorm import Engine, MemoryStore, MigrationError, Record, load
from emberorm.query import Condition, Junction
from emberorm.security import (
    confirm_destructive_operation,
    redact_fields,
    redact_params,
    redact_predicate,
    redact_value,
)
from emberorm.security.redaction import REDACTED_VALUE, is_sensitive_key


def test_sensitive_keys_are_redacted_in_payloads():
    payload = {"email": "a@example.com", "password": "hunter2", "profile": {"apiKey": "k"}}

    assert redact_value(payload) == {
        "email": "a@example.com",
        "password": REDACTED_VALUE,
        "profile": {"apiKey": REDACTED_VALUE},
    }


def test_sensitive_looking_values_are_redacted():
    assert redact_params(["alice", "Bearer abc", ("token=1", 3)]) == ["alice", REDACTED_VALUE, (REDACTED_VALUE, 3)]


def test_is_sensitive_key():
    assert is_sensitive_key("db_password")
    assert is_sensitive_key("Secret-Key")
    assert not is_sensitive_key("title")


def test_destructive_operations_need_force(caplog):
    caplog.set_level(logging.WARNING, logger="emberorm.security.migrations")

    with pytest.raises(MigrationError):
        confirm_destructive_operation("drop table post")

    confirm_destructive_operation("drop table post", force=True)
    assert any("force=True" in record.message for record in caplog.records)


ACCOUNTS = load(
    """
    model Account {
      id     Int    @id @default(autoincrement())
      email  String @unique
      digest String @map("password_digest")
      notes  Json?
    }
    """
)


def test_fields_are_redacted_by_name_and_mapped_column():
    account = ACCOUNTS.resolve("Account")
    payload = {"email": "a@example.com", "digest": "abc", "notes": {"apiToken": "t", "plan": "pro"}}

    assert redact_fields(payload, account) == {
        "email": "a@example.com",
        "digest": REDACTED_VALUE,
        "notes": {"apiToken": REDACTED_VALUE, "plan": "pro"},
    }
    assert redact_fields(payload)["digest"] == "abc"


def test_records_are_redacted_with_their_relations():
    owner = Record("User", {"id": 1, "password": "pw"})
    post = Record("Post", {"id": 2, "title": "Hi"}, related={"author": owner, "editor": None})

    assert redact_fields(post) == {
        "id": 2,
        "title": "Hi",
        "author": {"id": 1, "password": REDACTED_VALUE},
        "editor": None,
    }


def test_predicate_params_are_redacted_by_column():
    predicate = Junction(
        children=(
            Condition("email", "exact", "a@example.com"),
            Condition("password_digest", "in", ("x", "y")),
        )
    )

    assert redact_predicate(predicate) == ["a@example.com", REDACTED_VALUE]
    assert len(redact_predicate(predicate)) == len(predicate.params())


def test_engine_logs_never_carry_secret_filter_values(caplog):
    caplog.set_level(logging.DEBUG, logger="emberorm.engine")
    store = MemoryStore()
    store.apply_schema(ACCOUNTS)
    engine = Engine(ACCOUNTS, store)

    engine.create("Account", {"email": "a@example.com", "digest": "s3cr3t"})
    engine.find_many("Account", {"digest": "s3cr3t"})

    logged = [record for record in caplog.records if record.name == "emberorm.engine"]
    assert logged
    assert all("s3cr3t" not in record.getMessage() for record in logged)
    assert all("s3cr3t" not in repr(getattr(record, "params", None)) for record in logged)
