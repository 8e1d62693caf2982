"""cachekit.core.metrics

Per-store cache statistics.

The store bumps named tallies (``cache.hits``, ``cache.evictions.expired``,
...) and sets the ``cache.entries`` level. ``MetricsRegistry.stats()`` folds
them back into a ``CacheStats`` with derived figures such as the hit ratio.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from threading import Lock
from types import MappingProxyType

from cachekit.core.exceptions import InvalidArgumentError

EVICTION_PREFIX = "cache.evictions."


class Tally:
    """Monotonic event count."""

    __slots__ = ("name", "_count", "_lock")

    def __init__(self, name: str) -> None:
        self.name = name
        self._count = 0
        self._lock = Lock()

    def __repr__(self) -> str:
        return f"Tally({self.name!r}, {self.value})"

    def inc(self, amount: int = 1) -> None:
        if amount < 0:
            raise InvalidArgumentError(f"tally {self.name!r} cannot decrease")
        with self._lock:
            self._count += amount

    @property
    def value(self) -> int:
        with self._lock:
            return self._count


class Level:
    """Point-in-time value, overwritten on every update."""

    __slots__ = ("name", "_value")

    def __init__(self, name: str) -> None:
        self.name = name
        self._value = 0

    def __repr__(self) -> str:
        return f"Level({self.name!r}, {self.value})"

    def set(self, value: int) -> None:
        self._value = int(value)

    @property
    def value(self) -> int:
        return self._value


@dataclass(frozen=True, slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    adds: int = 0
    add_conflicts: int = 0
    removals: int = 0
    resolver_calls: int = 0
    sweeps: int = 0
    entries: int = 0
    evictions: Mapping[str, int] = field(default_factory=dict)

    @property
    def lookups(self) -> int:
        return self.hits + self.misses

    @property
    def hit_ratio(self) -> float:
        """Share of lookups served from the cache; 0.0 before any lookup."""

        return self.hits / self.lookups if self.lookups else 0.0

    @property
    def total_evictions(self) -> int:
        return sum(self.evictions.values())


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = Lock()
        self._tallies: dict[str, Tally] = {}
        self._levels: dict[str, Level] = {}

    def counter(self, name: str) -> Tally:
        with self._lock:
            tally = self._tallies.get(name)
            if tally is None:
                tally = self._tallies[name] = Tally(name)
            return tally

    def gauge(self, name: str) -> Level:
        with self._lock:
            level = self._levels.get(name)
            if level is None:
                level = self._levels[name] = Level(name)
            return level

    def evictions(self) -> dict[str, int]:
        """Eviction totals keyed by reason (``expired``, ``dependency``)."""

        with self._lock:
            tallies = [t for n, t in self._tallies.items() if n.startswith(EVICTION_PREFIX)]
        return {t.name[len(EVICTION_PREFIX) :]: t.value for t in tallies}

    def stats(self) -> CacheStats:
        def count(name: str) -> int:
            with self._lock:
                tally = self._tallies.get(name)
            return tally.value if tally is not None else 0

        with self._lock:
            level = self._levels.get("cache.entries")
        return CacheStats(
            hits=count("cache.hits"),
            misses=count("cache.misses"),
            adds=count("cache.adds"),
            add_conflicts=count("cache.add_conflicts"),
            removals=count("cache.removals"),
            resolver_calls=count("cache.resolver_calls"),
            sweeps=count("cache.sweeps"),
            entries=level.value if level is not None else 0,
            evictions=MappingProxyType(self.evictions()),
        )
