"""
Store capability interface consumed by the execution engine.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Protocol, Sequence
from urllib.parse import parse_qs, urlparse

from ..errors import ConfigurationError
from ..query.predicates import LOOKUPS, Predicate

if TYPE_CHECKING:
    from ..core.model import Schema

Row = Dict[str, Any]


@dataclass(frozen=True)
class StoreCapabilities:
    """
    Feature flags describing what a store can evaluate natively.
    """

    name: str
    lookups: frozenset[str] = LOOKUPS
    supports_savepoints: bool = True
    enforces_unique: bool = True
    enforces_foreign_keys: bool = False

    def supports(self, lookup: str) -> bool:
        return lookup in self.lookups


class Store(Protocol):
    """
    Narrow persistence interface. Rows are plain dicts keyed by column name;
    ``where`` arguments are the native filters returned by ``translate``.
    """

    capabilities: StoreCapabilities

    def translate(self, predicate: Predicate) -> Any:
        """
        Convert a store-neutral predicate into the store's native filter.
        """

    def fetch_rows(
        self,
        table: str,
        where: Any,
        projection: Optional[Sequence[str]] = None,
        ordering: Sequence[str] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Row]:
        """
        Return matching rows. ``ordering`` holds column names, ``-`` prefixed
        for descending; NULL sorts before any value in ascending order.
        """

    def write_row(self, table: str, values: Mapping[str, Any]) -> Row:
        """
        Insert a row and return it as stored, including generated values.
        """

    def update_rows(self, table: str, where: Any, values: Mapping[str, Any]) -> List[Row]:
        """
        Apply ``values`` to matching rows and return their post-update state.
        """

    def delete_rows(self, table: str, where: Any) -> int:
        """
        Delete matching rows and return how many were removed.
        """

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def savepoint(self, name: str) -> None: ...

    def release_savepoint(self, name: str) -> None: ...

    def rollback_to_savepoint(self, name: str) -> None: ...

    def apply_schema(self, schema: "Schema") -> None:
        """
        Create storage for every model and join table of ``schema``.
        """

    def close(self) -> None:
        """
        Release underlying resources. Implementations should be idempotent.
        """


def _parse_float(value: str, *, key: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid float value for '{key}': {value!r}", field=key, value=value) from exc


@dataclass
class ConnectionConfig:
    """
    Normalized connection configuration for SQL stores.
    """

    url: str
    timeout: Optional[float] = None
    options: Dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "ConnectionConfig":
        """
        Parse ``sqlite:///path?timeout=2.5``. Unrecognised
        query parameters are kept in ``options``.
        """

        if "://" not in url:
            url = f"sqlite:///{url}"
        parsed = urlparse(url)
        if parsed.scheme != "sqlite":
            raise ConfigurationError(f"Unsupported store URL scheme '{parsed.scheme}'", value=url)
        query = {key: values[0] for key, values in parse_qs(parsed.query).items()}
        timeout = _parse_float(query.pop("timeout"), key="timeout") if "timeout" in query else None
        options = dict(query)
        options.update(kwargs.pop("options", None) or {})
        base_url = url.split("?", 1)[0]
        return cls(
            url=base_url,
            timeout=kwargs.pop("timeout", timeout),
            options=options,
            **kwargs,
        )

    @classmethod
    def from_env(cls, env_var: str = "EMBERORM_DATABASE_URL", **kwargs: Any) -> "ConnectionConfig":
        value = os.getenv(env_var)
        if not value:
            raise ConfigurationError(f"Environment variable {env_var} is not set", field=env_var)
        return cls.from_url(value, source=env_var, **kwargs)

    @property
    def path(self) -> str:
        if self.url == "sqlite:///:memory:":
            return ":memory:"
        prefix = "sqlite:///"
        if self.url.startswith(prefix):
            return self.url[len(prefix) :]
        return self.url

    def descriptive_label(self) -> str:
        if self.source:
            return f"{self.source} ({self.url})"
        return self.url
