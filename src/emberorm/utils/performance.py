"""
Store call statistics and N+1 detection.

The engine records every store call under a *shape*: the operation, the
table and the filter structure with values stripped. Many calls sharing one
shape but carrying different values are the signature of a per-row fetch loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence


@dataclass
class ShapeStat:
    shape: str
    count: int = 0
    total_ms: float = 0.0
    fingerprints: set[str] = field(default_factory=set)
    samples: List[str] = field(default_factory=list)

    def record(self, fingerprint: str, elapsed_ms: float, *, sample_limit: int) -> None:
        self.count += 1
        self.total_ms += elapsed_ms
        if fingerprint and fingerprint not in self.fingerprints:
            self.fingerprints.add(fingerprint)
            if len(self.samples) < sample_limit:
                self.samples.append(fingerprint)

    @property
    def average_ms(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_ms / self.count


class PerformanceTracker:
    """
    Tracks store calls per shape and warns once per shape on N+1 patterns.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        n_plus_one_threshold: int = 5,
        sample_size: int = 5,
    ) -> None:
        self.logger = logger
        self.n_plus_one_threshold = n_plus_one_threshold
        self.sample_size = sample_size
        self.stats: dict[str, ShapeStat] = {}
        self._reported: set[str] = set()

    def record(self, shape: str, params: Sequence[object], elapsed_ms: float) -> None:
        fingerprint = self._fingerprint(params)
        stat = self.stats.setdefault(shape, ShapeStat(shape=shape))
        stat.record(fingerprint, elapsed_ms, sample_limit=self.sample_size)
        if self._should_report(stat):
            self._report(stat)

    def summary(self) -> List[dict[str, object]]:
        return [
            {
                "shape": stat.shape,
                "count": stat.count,
                "total_ms": stat.total_ms,
                "average_ms": stat.average_ms,
                "distinct_params": len(stat.fingerprints),
            }
            for stat in self.stats.values()
        ]

    def total_calls(self) -> int:
        return sum(stat.count for stat in self.stats.values())

    def reset(self) -> None:
        self.stats.clear()
        self._reported.clear()

    def _should_report(self, stat: ShapeStat) -> bool:
        if self.n_plus_one_threshold <= 0:
            return False
        if stat.count < self.n_plus_one_threshold:
            return False
        if len(stat.fingerprints) < 2:
            return False
        return stat.shape not in self._reported

    def _report(self, stat: ShapeStat) -> None:
        self._reported.add(stat.shape)
        self.logger.warning(
            "Potential N+1 detected for '%s' (%s calls, %s distinct params)",
            self._abbreviate(stat.shape),
            stat.count,
            len(stat.fingerprints),
            extra={"shape": stat.shape, "count": stat.count, "distinct_params": len(stat.fingerprints)},
        )

    @staticmethod
    def _fingerprint(params: Sequence[object]) -> str:
        if not params:
            return ""
        normalized = []
        for value in params:
            if isinstance(value, (list, tuple, set, frozenset)):
                normalized.append(tuple(value))
            elif isinstance(value, dict):
                normalized.append(tuple(sorted(value.items())))
            else:
                normalized.append(value)
        return repr(tuple(normalized))

    @staticmethod
    def _abbreviate(text: str, max_length: int = 80) -> str:
        if len(text) <= max_length:
            return text
        return text[: max_length - 3] + "..."
