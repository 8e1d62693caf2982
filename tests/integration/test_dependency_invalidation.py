"""Integration: entries leave the store when what they depend on changes."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from cachekit.caching.store import CacheStore
from cachekit.runtime.file_watcher import FileDependency
from cachekit.runtime.watcher import WatcherOptions
from tests.unit._cache_fakes import ManualDependency, wait_until

FAST = WatcherOptions(due_time=timedelta(milliseconds=10), period=timedelta(milliseconds=20))


def test_file_change_evicts_entry(tmp_path: Path) -> None:
    settings = tmp_path / "settings.json"
    settings.write_text('{"mode": "a"}', encoding="utf-8")

    with CacheStore() as store:
        dep = FileDependency(settings, options=FAST)
        assert store.add("settings", {"mode": "a"}, dependencies=[dep])
        assert store.get("settings") == {"mode": "a"}

        settings.write_text('{"mode": "b", "extra": true}', encoding="utf-8")

        assert wait_until(lambda: not store.contains_key("settings"))
        assert store.flush(timeout=2.0)
        assert dep.disposed
        evictions = store.metrics.counter("cache.evictions.dependency").value
        evictions += store.metrics.counter("cache.evictions.expired").value
        assert evictions == 1.0


def test_get_or_add_reloads_after_file_change(tmp_path: Path) -> None:
    source = tmp_path / "source.txt"
    source.write_text("one", encoding="utf-8")

    with CacheStore() as store:

        def load() -> str:
            return source.read_text(encoding="utf-8")

        def deps() -> list[FileDependency]:
            return [FileDependency(source, options=FAST)]

        assert store.get_or_add("text", load, dependency_resolver=deps) == "one"
        source.write_text("two, longer", encoding="utf-8")

        assert wait_until(lambda: not store.contains_key("text"))
        assert store.get_or_add("text", load, dependency_resolver=deps) == "two, longer"


def test_readded_entry_survives_stale_notification() -> None:
    with CacheStore() as store:
        old = ManualDependency()
        store.add("k", "old", dependencies=[old])
        store.remove("k")
        store.add("k", "new")

        # The old entry is detached; firing reaches no subscriber.
        old.fire()
        store.flush(timeout=2.0)

        assert store.get("k") == "new"
        assert old.disposed_count == 1


def test_group_entries_are_invalidated_independently() -> None:
    with CacheStore() as store:
        dep_a = ManualDependency()
        dep_b = ManualDependency()
        store.add("k", "a", group="ga", dependencies=[dep_a])
        store.add("k", "b", group="gb", dependencies=[dep_b])

        dep_a.fire()

        assert wait_until(lambda: not store.contains_key("k", "ga"))
        assert store.get("k", "gb") == "b"
        assert dep_b.disposed_count == 0
