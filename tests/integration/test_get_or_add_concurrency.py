"""Integration: many threads racing on the same missing key.

Runs against a real-clock store with the default worker pool; the resolver
must run once and every caller must see its result.
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta

from cachekit.caching.store import CacheStore
from tests.unit._cache_fakes import run_threads


def test_hundred_callers_resolve_once() -> None:
    calls = 0
    calls_lock = threading.Lock()
    results: list[int] = [0] * 100

    def resolver() -> int:
        nonlocal calls
        with calls_lock:
            calls += 1
        time.sleep(0.01)
        return 7

    with CacheStore() as store:

        def caller(i: int) -> None:
            results[i] = store.get_or_add("answer", resolver, sliding_expiration=timedelta(minutes=5))

        run_threads(100, caller)

        assert calls == 1
        assert results == [7] * 100
        assert store.count() == 1


def test_distinct_groups_resolve_independently() -> None:
    seen: list[str] = []
    seen_lock = threading.Lock()

    def make_resolver(group: str):
        def resolver() -> str:
            with seen_lock:
                seen.append(group)
            return group.upper()

        return resolver

    groups = ["a", "b", "c", "d"]
    with CacheStore() as store:

        def caller(i: int) -> None:
            group = groups[i % len(groups)]
            assert store.get_or_add("shared", make_resolver(group), group=group) == group.upper()

        run_threads(40, caller)

        assert sorted(seen) == groups
        assert store.count() == 4


def test_concurrent_adds_keep_first_value() -> None:
    outcomes: list[bool] = [False] * 50

    with CacheStore() as store:

        def caller(i: int) -> None:
            outcomes[i] = store.add("slot", i)

        run_threads(50, caller)

        assert outcomes.count(True) == 1
        winner = outcomes.index(True)
        assert store.get("slot") == winner
