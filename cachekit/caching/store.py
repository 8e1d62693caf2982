"""cachekit.caching.store

In-process object cache.

Design:
- one mapping keyed by the literal ``(key, group)`` tuple
- one coarse re-entrant lock guarding the mapping and the sweeper handle
- insert-if-absent ``add``; an existing entry is never overwritten
- ``get_or_add`` runs the resolver under the lock, so a key is resolved at
  most once per miss (and every other cache operation waits meanwhile)
- removals triggered by expiry or by a dependency run on a worker pool,
  never on the thread that noticed them
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, TypeVar

import httpx

from cachekit.caching.entry import CacheEntry
from cachekit.caching.policy import ExpirationPolicy
from cachekit.caching.sweeper import ExpirationSweeper
from cachekit.core.config import CacheConfig
from cachekit.core.exceptions import InvalidArgumentError, StoreClosedError
from cachekit.core.metrics import CacheStats, MetricsRegistry
from cachekit.core.time import utc_now
from cachekit.runtime.dependency import SupportsDependency
from cachekit.runtime.file_watcher import FileDependency
from cachekit.runtime.http_watcher import HttpDependency
from cachekit.runtime.watcher import WatcherOptions

T = TypeVar("T")

CompositeKey = tuple[str, str | None]
DependencyResolver = Callable[[], Iterable[SupportsDependency] | None]

log = logging.getLogger(__name__)


def _require_key(key: str) -> None:
    if key is None:
        raise InvalidArgumentError("key cannot be None")


def _require_callable(value: Any, name: str) -> None:
    if value is None or not callable(value):
        raise InvalidArgumentError(f"{name} must be callable")


class CacheStore:
    """Thread-safe in-process cache service.

    Construct one explicitly and pass it to whatever needs it; ``close()``
    (or leaving a ``with`` block) stops the sweeper, tears down every
    entry and shuts the worker pool down.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        metrics: MetricsRegistry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config or CacheConfig()
        self.metrics = metrics or MetricsRegistry()
        self._clock = clock
        self._log = logger or log
        self._lock = threading.RLock()
        self._entries: dict[CompositeKey, CacheEntry] = {}
        self._in_flight: set[CompositeKey] = set()
        self._pending: set[Future[Any]] = set()
        self._pending_lock = threading.Lock()
        self._closed = False
        self._worker = ThreadPoolExecutor(
            max_workers=self.config.workers.max_workers,
            thread_name_prefix="cachekit-worker",
        )
        self.sweeper = ExpirationSweeper(
            self,
            interval=self.config.sweep.interval,
            clock=clock,
            logger=self._log,
        )

    # -- lifecycle -----------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def _require_open(self) -> None:
        if self._closed:
            raise StoreClosedError("cache store is closed")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.sweeper.stop()
            entries = list(self._entries.values())
            self._entries.clear()
            self._in_flight.clear()
            self._update_size_gauge()
        for entry in entries:
            entry.stop_dependencies()
        self._worker.shutdown(wait=True)
        self._log.debug("cache_store_closed", extra={"entries": len(entries)})

    def __enter__(self) -> CacheStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def flush(self, timeout: float | None = None) -> bool:
        """Block until work already dispatched to the worker pool has finished.

        Returns False if ``timeout`` elapsed first.
        """

        with self._pending_lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait_futures(pending, timeout=timeout)
        return not not_done

    def _submit(self, fn: Callable[..., Any], *args: Any) -> None:
        if self._closed:
            return
        try:
            future = self._worker.submit(fn, *args)
        except RuntimeError:
            # Worker pool shut down between the check and the submit.
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget_future)

    def _forget_future(self, future: Future[Any]) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    # -- internals -----------------------------------------------------

    def _update_size_gauge(self) -> None:
        self.metrics.gauge("cache.entries").set(len(self._entries))

    def _lookup(self, key: str, group: str | None) -> CacheEntry | None:
        """Return the live entry for the key, scheduling removal if expired."""

        with self._lock:
            entry = self._entries.get((key, group))
        if entry is None:
            return None
        if entry.can_expire:
            now = self._clock()
            if entry.has_expired(now):
                self._schedule_removal(entry, "expired")
                return None
            entry.refresh(now)
        return entry

    def _live_entries(self, group: str | None = None) -> list[CacheEntry]:
        with self._lock:
            snapshot = list(self._entries.values())
        now = self._clock()
        return [
            e
            for e in snapshot
            if (group is None or e.group == group) and not (e.can_expire and e.has_expired(now))
        ]

    def _schedule_removal(self, entry: CacheEntry, reason: str) -> None:
        self._submit(self._remove_entry, entry, reason)

    def _remove_entry(self, entry: CacheEntry, reason: str) -> None:
        with self._lock:
            removed = self._entries.get(entry.composite_key) is entry
            if removed:
                del self._entries[entry.composite_key]
                self._update_size_gauge()
        entry.stop_dependencies()
        if removed:
            self.metrics.counter(f"cache.evictions.{reason}").inc()
            self._log.debug("cache_entry_evicted", extra={"key": entry.key, "group": entry.group, "reason": reason})

    def _entry_expired(self, entry: CacheEntry) -> None:
        self._schedule_removal(entry, "dependency")

    def _sweep_snapshot(self) -> Sequence[CacheEntry]:
        self.metrics.counter("cache.sweeps").inc()
        with self._lock:
            return list(self._entries.values())

    def _stop_sweeper_if_idle(self, doomed: dict[int, CacheEntry]) -> bool:
        with self._lock:
            for entry in self._entries.values():
                if entry.can_expire and doomed.get(id(entry)) is not entry:
                    return False
            self.sweeper.stop()
            return True

    # -- public API ----------------------------------------------------

    def add(
        self,
        key: str,
        value: Any,
        *,
        group: str | None = None,
        absolute_expiration: datetime | None = None,
        sliding_expiration: timedelta | None = None,
        dependencies: Iterable[SupportsDependency] | None = None,
    ) -> bool:
        """Insert ``value`` unless the key is already present.

        Returns True when inserted. An existing entry is left untouched and
        the dependencies passed along with the rejected value are disposed.
        """

        _require_key(key)
        policy = ExpirationPolicy(absolute_expiration=absolute_expiration, sliding_expiration=sliding_expiration)
        entry = CacheEntry(
            key,
            value,
            group=group,
            policy=policy,
            dependencies=dependencies,
            created=self._clock(),
            on_expired=self._entry_expired,
            dispatch=self._submit,
            logger=self._log,
        )
        displaced: CacheEntry | None = None
        start_error: BaseException | None = None
        with self._lock:
            self._require_open()
            existing = self._entries.get(entry.composite_key)
            # An expired entry awaiting removal no longer counts as present.
            if existing is not None and existing.can_expire and existing.has_expired(self._clock()):
                displaced = self._entries.pop(entry.composite_key)
                self._update_size_gauge()
            inserted = entry.composite_key not in self._entries
            if inserted:
                try:
                    entry.start_dependencies()
                except BaseException as e:
                    start_error = e
                else:
                    self._entries[entry.composite_key] = entry
                    self._update_size_gauge()
                    if entry.can_expire:
                        self.sweeper.ensure_running()
        if displaced is not None:
            displaced.stop_dependencies()
            self.metrics.counter("cache.evictions.expired").inc()
        if start_error is not None:
            entry.stop_dependencies()
            self._log.warning(
                "dependency_start_failed",
                extra={"key": key, "group": group, "error": repr(start_error)},
            )
            raise start_error
        if inserted:
            self.metrics.counter("cache.adds").inc()
        else:
            self.metrics.counter("cache.add_conflicts").inc()
            entry.stop_dependencies()
        return inserted

    def try_get(self, key: str, group: str | None = None) -> tuple[bool, Any]:
        _require_key(key)
        self._require_open()
        entry = self._lookup(key, group)
        if entry is None:
            self.metrics.counter("cache.misses").inc()
            return False, None
        self.metrics.counter("cache.hits").inc()
        return True, entry.value

    def get(self, key: str, group: str | None = None, default: Any = None) -> Any:
        found, value = self.try_get(key, group)
        return value if found else default

    def try_get_created(self, key: str, group: str | None = None) -> tuple[bool, datetime | None]:
        """Return when the live entry for the key was added."""

        _require_key(key)
        self._require_open()
        entry = self._lookup(key, group)
        if entry is None:
            return False, None
        return True, entry.created

    def get_or_add(
        self,
        key: str,
        resolver: Callable[[], T],
        *,
        group: str | None = None,
        absolute_expiration: datetime | None = None,
        sliding_expiration: timedelta | None = None,
        dependency_resolver: DependencyResolver | None = None,
    ) -> T:
        """Return the cached value, computing and adding it on a miss.

        Extra resolver arguments belong in the resolver's closure.
        """

        _require_key(key)
        _require_callable(resolver, "resolver")
        if dependency_resolver is not None:
            _require_callable(dependency_resolver, "dependency_resolver")
        ExpirationPolicy(absolute_expiration=absolute_expiration, sliding_expiration=sliding_expiration)

        with self._lock:
            found, value = self.try_get(key, group)
            if found:
                return value
            self.metrics.counter("cache.resolver_calls").inc()
            value = resolver()
            self.add(
                key,
                value,
                group=group,
                absolute_expiration=absolute_expiration,
                sliding_expiration=sliding_expiration,
                dependencies=dependency_resolver() if dependency_resolver is not None else None,
            )
            return value

    def get_or_add_background(
        self,
        key: str,
        resolver: Callable[[], T],
        *,
        default: Any = None,
        group: str | None = None,
        absolute_expiration: datetime | None = None,
        sliding_expiration: timedelta | None = None,
        dependency_resolver: DependencyResolver | None = None,
    ) -> Any:
        """Return the cached value or ``default`` without waiting for the resolver.

        On a miss the resolver runs on the worker pool and its result is
        added when it completes. One resolution per key is in flight at a time.
        """

        _require_key(key)
        _require_callable(resolver, "resolver")
        if dependency_resolver is not None:
            _require_callable(dependency_resolver, "dependency_resolver")
        ExpirationPolicy(absolute_expiration=absolute_expiration, sliding_expiration=sliding_expiration)

        with self._lock:
            found, value = self.try_get(key, group)
            if found:
                return value
            ck: CompositeKey = (key, group)
            if ck in self._in_flight:
                return default
            self._in_flight.add(ck)
        self._submit(
            self._resolve_in_background,
            key,
            group,
            resolver,
            absolute_expiration,
            sliding_expiration,
            dependency_resolver,
        )
        return default

    def _resolve_in_background(
        self,
        key: str,
        group: str | None,
        resolver: Callable[[], Any],
        absolute_expiration: datetime | None,
        sliding_expiration: timedelta | None,
        dependency_resolver: DependencyResolver | None,
    ) -> None:
        try:
            self.metrics.counter("cache.resolver_calls").inc()
            value = resolver()
            self.add(
                key,
                value,
                group=group,
                absolute_expiration=absolute_expiration,
                sliding_expiration=sliding_expiration,
                dependencies=dependency_resolver() if dependency_resolver is not None else None,
            )
        except StoreClosedError:
            self._log.debug("background_resolver_discarded", extra={"key": key, "group": group})
        except Exception:
            self._log.exception("background_resolver_failed", extra={"key": key, "group": group})
        finally:
            with self._lock:
                self._in_flight.discard((key, group))

    # -- dependency factories ------------------------------------------

    @property
    def watcher_options(self) -> WatcherOptions:
        """Polling schedule from the ``watcher`` config section."""

        return WatcherOptions.from_config(self.config.watcher)

    def file_dependency(
        self,
        paths: str | Path | Iterable[str | Path],
        pattern: str | None = None,
    ) -> FileDependency:
        return FileDependency(paths, pattern, self.watcher_options, logger=self._log)

    def http_dependency(
        self,
        urls: str | Iterable[str],
        *,
        use_response_data: bool = False,
        client: httpx.Client | None = None,
    ) -> HttpDependency:
        return HttpDependency(
            urls,
            use_response_data=use_response_data,
            options=self.watcher_options,
            client=client,
            timeout_s=self.config.watcher.http_timeout_seconds,
            logger=self._log,
        )

    def remove(self, key: str, group: str | None = None) -> bool:
        _require_key(key)
        with self._lock:
            self._require_open()
            entry = self._entries.pop((key, group), None)
            if entry is not None:
                self._update_size_gauge()
        if entry is None:
            return False
        entry.stop_dependencies()
        self.metrics.counter("cache.removals").inc()
        return True

    def clear(self, group: str | None = None) -> int:
        """Remove every entry, or every entry of ``group``. Returns how many."""

        with self._lock:
            self._require_open()
            if group is None:
                removed = list(self._entries.values())
                self._entries.clear()
            else:
                removed = [e for e in self._entries.values() if e.group == group]
                for entry in removed:
                    del self._entries[entry.composite_key]
            self._update_size_gauge()
        for entry in removed:
            entry.stop_dependencies()
        self.metrics.counter("cache.removals").inc(len(removed))
        return len(removed)

    def count(self, group: str | None = None) -> int:
        self._require_open()
        return len(self._live_entries(group))

    def contains_key(self, key: str, group: str | None = None) -> bool:
        _require_key(key)
        self._require_open()
        return self._lookup(key, group) is not None

    def stats(self) -> CacheStats:
        """Hit ratio, eviction totals by reason and the other store tallies."""

        return self.metrics.stats()

    def items(self) -> list[tuple[CompositeKey, Any]]:
        """Snapshot of ``((key, group), value)`` pairs for live entries."""

        self._require_open()
        return [(e.composite_key, e.value) for e in self._live_entries()]

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.contains_key(key)

    def __iter__(self) -> Iterator[tuple[CompositeKey, Any]]:
        return iter(self.items())
