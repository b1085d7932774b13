"""
Engine configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from .errors import ConfigurationError

DEFAULT_MAX_INCLUDE_DEPTH = 3

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean value for '{key}': {value!r}", field=key, value=value)


def _parse_int(value: str, *, key: str, minimum: int = 0) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid integer value for '{key}': {value!r}", field=key, value=value
        ) from exc
    if parsed < minimum:
        raise ConfigurationError(
            f"Value for '{key}' must be >= {minimum}, got {parsed}", field=key, value=value
        )
    return parsed


@dataclass(frozen=True)
class EngineConfig:
    """
    Tunables for :class:`emberorm.engine.Engine` and the query builder.
    """

    max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH
    slow_query_ms: int = 200
    n_plus_one_threshold: int = 5
    check_unique: bool = True
    check_foreign_keys: bool = True

    def __post_init__(self) -> None:
        if self.max_include_depth < 1:
            raise ConfigurationError(
                "max_include_depth must be at least 1",
                field="max_include_depth",
                value=self.max_include_depth,
            )

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        return replace(self, **overrides)

    @classmethod
    def from_env(
        cls, prefix: str = "EMBERORM_", environ: Optional[Mapping[str, str]] = None
    ) -> "EngineConfig":
        """
        Build a config from ``<prefix>MAX_INCLUDE_DEPTH``, ``<prefix>SLOW_QUERY_MS``,
        ``<prefix>N_PLUS_ONE_THRESHOLD``, ``<prefix>CHECK_UNIQUE`` and
        ``<prefix>CHECK_FOREIGN_KEYS``. Unset variables keep their defaults.
        """

        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name in ("max_include_depth", "slow_query_ms", "n_plus_one_threshold"):
            key = f"{prefix}{name.upper()}"
            if env.get(key):
                minimum = 1 if name == "max_include_depth" else 0
                values[name] = _parse_int(env[key], key=key, minimum=minimum)
        for name in ("check_unique", "check_foreign_keys"):
            key = f"{prefix}{name.upper()}"
            if env.get(key):
                values[name] = _parse_bool(env[key], key=key)
        return cls(**values)
