import logging

import pytest

from emberorm import ConfigurationError, ConnectionConfig, ConstraintViolationError, SQLiteStore, StoreError, load
from emberorm.query import Condition

SCHEMA = load(
    """
    model Account {
      id     Int    @id @default(autoincrement())
      email  String @unique
      secret String
      active Boolean @default(true)
    }
    """
)


@pytest.fixture()
def store(tmp_path):
    store = SQLiteStore(f"sqlite:///{tmp_path / 'store.db'}")
    store.apply_schema(SCHEMA)
    yield store
    store.close()


def test_connection_config_from_url():
    config = ConnectionConfig.from_url("sqlite:////tmp/app.db?timeout=2.5&cache=shared")

    assert config.url == "sqlite:////tmp/app.db"
    assert config.path == "/tmp/app.db"
    assert config.timeout == 2.5
    assert config.options == {"cache": "shared"}


def test_connection_config_accepts_bare_paths_and_memory():
    assert ConnectionConfig.from_url("data.db").path == "data.db"
    assert ConnectionConfig.from_url("sqlite:///:memory:").path == ":memory:"


def test_connection_config_rejects_other_schemes():
    with pytest.raises(ConfigurationError):
        ConnectionConfig.from_url("postgres://localhost/app")
    with pytest.raises(ConfigurationError):
        ConnectionConfig.from_url("sqlite:///app.db?timeout=soon")


def test_connection_config_from_env(monkeypatch):
    monkeypatch.setenv("EMBERORM_DATABASE_URL", "sqlite:///env.db")
    config = ConnectionConfig.from_env()

    assert config.path == "env.db"
    assert config.descriptive_label() == "EMBERORM_DATABASE_URL (sqlite:///env.db)"

    monkeypatch.delenv("EMBERORM_DATABASE_URL")
    with pytest.raises(ConfigurationError):
        ConnectionConfig.from_env()


def test_write_and_fetch_rows(store):
    row = store.write_row("account", {"email": "a@example.com", "secret": "s"})

    assert row == {"id": 1, "email": "a@example.com", "secret": "s", "active": 1}
    fetched = store.fetch_rows("account", store.translate(Condition("email", "exact", "a@example.com")))
    assert fetched == [row]


def test_update_rows_returns_post_update_state(store):
    store.write_row("account", {"email": "a@example.com", "secret": "s"})
    store.write_row("account", {"email": "b@example.com", "secret": "s"})

    rows = store.update_rows("account", store.translate(Condition("id", "exact", 2)), {"active": False})

    assert rows == [{"id": 2, "email": "b@example.com", "secret": "s", "active": 0}]
    assert store.update_rows("account", store.translate(Condition("id", "exact", 9)), {"active": False}) == []


def test_delete_rows_returns_count(store):
    store.write_row("account", {"email": "a@example.com", "secret": "s"})

    assert store.delete_rows("account", store.translate(Condition("id", "exact", 5))) == 0
    assert store.delete_rows("account", None) == 1


def test_integrity_errors_become_constraint_violations(store):
    store.write_row("account", {"email": "a@example.com", "secret": "s"})

    with pytest.raises(ConstraintViolationError) as excinfo:
        store.write_row("account", {"email": "a@example.com", "secret": "t"})

    assert excinfo.value.field == "email"


def test_other_errors_become_store_errors(store):
    with pytest.raises(StoreError):
        store.execute("SELECT * FROM missing_table")


def test_savepoints_roll_back_partial_work(store):
    store.begin()
    store.write_row("account", {"email": "a@example.com", "secret": "s"})
    store.savepoint("sp_1")
    store.write_row("account", {"email": "b@example.com", "secret": "s"})
    store.rollback_to_savepoint("sp_1")
    store.release_savepoint("sp_1")
    store.commit()

    assert [row["email"] for row in store.fetch_rows("account", None)] == ["a@example.com"]


def test_regex_is_not_a_capability(store):
    assert not store.capabilities.supports("regex")
    assert store.capabilities.supports("icontains")


def test_statement_logging_redacts_sensitive_params(store, caplog):
    caplog.set_level(logging.DEBUG, logger="emberorm.stores.sqlite")

    store.execute("SELECT ? AS token", ["Bearer abc123"])

    records = [record for record in caplog.records if record.name == "emberorm.stores.sqlite"]
    assert records
    assert records[-1].params == ["***"]
