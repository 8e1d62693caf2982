"""Integration: expiration against the wall clock and a live sweeper."""

from __future__ import annotations

import time
from datetime import timedelta

from cachekit.caching.store import CacheStore
from cachekit.core.config import CacheConfig
from cachekit.core.time import utc_now
from tests.unit._cache_fakes import ManualDependency, wait_until


def test_sliding_window_extends_on_read_then_lapses() -> None:
    with CacheStore() as store:
        store.add("k", "v", sliding_expiration=timedelta(milliseconds=200))

        time.sleep(0.1)
        assert store.get("k") == "v"

        time.sleep(0.25)
        assert store.get("k") is None


def test_absolute_expiration_is_not_extended_by_reads() -> None:
    with CacheStore() as store:
        store.add("k", "v", absolute_expiration=utc_now() + timedelta(milliseconds=150))

        assert store.get("k") == "v"
        time.sleep(0.05)
        assert store.get("k") == "v"
        time.sleep(0.15)
        assert store.get("k") is None


def test_sweeper_evicts_and_then_goes_idle() -> None:
    cfg = CacheConfig(sweep={"interval_seconds": 0.05})
    with CacheStore(cfg) as store:
        dep = ManualDependency()
        store.add("short", 1, absolute_expiration=utc_now() + timedelta(milliseconds=80))
        store.add("forever", 2)
        store.add("watched", 3, dependencies=[dep])
        assert store.sweeper.running

        # "short" goes by the sweep; "watched" still keeps the sweeper alive.
        assert wait_until(lambda: store.metrics.counter("cache.evictions.expired").value == 1.0)
        assert store.sweeper.running

        store.remove("watched")
        assert wait_until(lambda: not store.sweeper.running)
        assert dep.disposed_count == 1
        assert store.get("forever") == 2


def test_sweeper_restarts_when_an_expirable_entry_returns() -> None:
    cfg = CacheConfig(sweep={"interval_seconds": 0.05})
    with CacheStore(cfg) as store:
        store.add("a", 1, sliding_expiration=timedelta(milliseconds=10))
        assert wait_until(lambda: not store.sweeper.running)
        assert store.count() == 0

        store.add("b", 2, sliding_expiration=timedelta(minutes=1))
        assert store.sweeper.running
