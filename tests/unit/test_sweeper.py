from __future__ import annotations

import threading
from datetime import timedelta

from cachekit.caching.entry import CacheEntry
from cachekit.caching.policy import ExpirationPolicy
from cachekit.caching.store import CacheStore
from cachekit.caching.sweeper import ExpirationSweeper
from cachekit.core.config import CacheConfig
from tests.unit._cache_fakes import ManualClock, ManualDependency, wait_until


def test_sweeper_starts_lazily_for_expirable_entries(store: CacheStore, clock: ManualClock) -> None:
    store.add("plain", 1)
    assert not store.sweeper.running

    store.add("timed", 2, absolute_expiration=clock.now + timedelta(minutes=1))
    assert store.sweeper.running


def test_sweep_schedules_removal_of_expired_entries(store: CacheStore, clock: ManualClock) -> None:
    store.add("short", 1, absolute_expiration=clock.now + timedelta(minutes=1))
    store.add("long", 2, absolute_expiration=clock.now + timedelta(hours=1))
    clock.advance(timedelta(minutes=2))

    assert store.sweeper.sweep() is True
    store.flush(timeout=2)

    assert store.metrics.counter("cache.evictions.expired").value == 1.0
    assert store.sweeper.running
    assert store.stats().evictions == {"expired": 1}
    assert store.get("long") == 2


def test_sweeper_stops_when_nothing_can_expire(store: CacheStore, clock: ManualClock) -> None:
    store.add("plain", 1)
    store.add("timed", 2, absolute_expiration=clock.now + timedelta(minutes=1))
    clock.advance(timedelta(minutes=2))

    assert store.sweeper.sweep() is False
    assert not store.sweeper.running
    store.flush(timeout=2)
    assert store.count() == 1

    # Restarted lazily by the next expirable insert.
    store.add("again", 3, sliding_expiration=timedelta(seconds=30))
    assert store.sweeper.running


def test_sweeper_keeps_running_for_live_dependency_entries(store: CacheStore) -> None:
    store.add("dep", 1, dependencies=[ManualDependency()])
    assert store.sweeper.sweep() is True
    assert store.sweeper.running


def test_overlapping_passes_are_skipped(clock: ManualClock) -> None:
    entered = threading.Event()
    release = threading.Event()

    class SlowTarget:
        def __init__(self) -> None:
            self.snapshots = 0

        def _sweep_snapshot(self):
            self.snapshots += 1
            entered.set()
            release.wait(2)
            return []

        def _schedule_removal(self, entry, reason):  # pragma: no cover - nothing to remove
            raise AssertionError

        def _stop_sweeper_if_idle(self, doomed):
            return True

    target = SlowTarget()
    sweeper = ExpirationSweeper(target, interval=timedelta(hours=1), clock=clock)
    worker = threading.Thread(target=sweeper.sweep)
    worker.start()
    assert entered.wait(2)

    assert sweeper.sweep() is True
    release.set()
    worker.join()

    assert target.snapshots == 1
    assert sweeper.passes == 1


def test_timer_driven_sweep_evicts_in_background() -> None:
    cfg = CacheConfig(sweep={"interval_seconds": 0.05})
    with CacheStore(cfg) as store:
        store.add("a", 1, sliding_expiration=timedelta(milliseconds=20))
        store.add("b", 2)

        assert wait_until(lambda: store.metrics.counter("cache.evictions.expired").value == 1.0)
        assert wait_until(lambda: not store.sweeper.running)
        assert store.get("b") == 2


def test_idle_check_matches_doomed_entries_by_identity(store: CacheStore, clock: ManualClock) -> None:
    store.add("live", 1, sliding_expiration=timedelta(minutes=5))
    (live,) = store._sweep_snapshot()
    gone = CacheEntry("gone", 0, policy=ExpirationPolicy.sliding(timedelta(seconds=1)))

    # A freed doomed entry's id now belongs to a live one.
    assert store._stop_sweeper_if_idle({id(live): gone}) is False
    assert store.sweeper.running

    assert store._stop_sweeper_if_idle({id(live): live}) is True
    assert not store.sweeper.running


def test_sweep_hands_back_the_doomed_entries(clock: ManualClock) -> None:
    entry = CacheEntry("k", 1, policy=ExpirationPolicy.sliding(timedelta(seconds=1)), created=clock.now)
    clock.advance(timedelta(seconds=5))

    class Target:
        def __init__(self) -> None:
            self.doomed: dict = {}

        def _sweep_snapshot(self):
            return [entry]

        def _schedule_removal(self, e, reason):
            pass

        def _stop_sweeper_if_idle(self, doomed):
            self.doomed = doomed
            return True

    target = Target()
    sweeper = ExpirationSweeper(target, interval=timedelta(hours=1), clock=clock)
    assert sweeper.sweep() is False
    assert target.doomed == {id(entry): entry}
