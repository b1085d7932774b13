import pytest

from emberorm import ConfigurationError, EngineConfig


def test_defaults():
    config = EngineConfig()

    assert config.max_include_depth == 3
    assert config.check_unique and config.check_foreign_keys


def test_from_env_reads_prefixed_variables():
    config = EngineConfig.from_env(
        environ={
            "EMBERORM_MAX_INCLUDE_DEPTH": "5",
            "EMBERORM_SLOW_QUERY_MS": "50",
            "EMBERORM_CHECK_UNIQUE": "off",
            "OTHER_SETTING": "ignored",
        }
    )

    assert config.max_include_depth == 5
    assert config.slow_query_ms == 50
    assert config.check_unique is False
    assert config.n_plus_one_threshold == 5


def test_from_env_uses_os_environ(monkeypatch):
    monkeypatch.setenv("APP_N_PLUS_ONE_THRESHOLD", "9")

    assert EngineConfig.from_env(prefix="APP_").n_plus_one_threshold == 9


@pytest.mark.parametrize(
    "environ",
    [
        {"EMBERORM_MAX_INCLUDE_DEPTH": "deep"},
        {"EMBERORM_MAX_INCLUDE_DEPTH": "0"},
        {"EMBERORM_CHECK_FOREIGN_KEYS": "maybe"},
    ],
)
def test_from_env_rejects_invalid_values(environ):
    with pytest.raises(ConfigurationError):
        EngineConfig.from_env(environ=environ)


def test_overrides_are_validated():
    config = EngineConfig().with_overrides(slow_query_ms=10)

    assert config.slow_query_ms == 10
    with pytest.raises(ConfigurationError):
        config.with_overrides(max_include_depth=0)
