"""cachekit.runtime.watcher_dependency

A dependency backed by one or more watchers.

The first change reported by any watcher after ``start()`` tears every
watcher down and fires the dependency once.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import timedelta

from cachekit.core.exceptions import InvalidArgumentError
from cachekit.core.time import utc_now
from cachekit.runtime.dependency import Dependency, DependencyEvent
from cachekit.runtime.watcher import Watcher, WatcherEvent

WatchersFactory = Callable[[], Iterable[Watcher] | None]

_TICK = timedelta(microseconds=1)


class WatcherDependency(Dependency):
    def __init__(self, watchers_factory: WatchersFactory, *, logger: logging.Logger | None = None) -> None:
        if watchers_factory is None or not callable(watchers_factory):
            raise InvalidArgumentError("watchers_factory must be callable")
        super().__init__(logger=logger)
        self._watchers_factory = watchers_factory
        self._watchers: list[Watcher] | None = None
        self._watchers_lock = threading.Lock()
        self._utc_started = self.utc_last_modified

    @property
    def watchers(self) -> tuple[Watcher, ...]:
        with self._watchers_lock:
            return tuple(self._watchers or ())

    @property
    def has_changed(self) -> bool:
        return self.utc_last_modified > self._utc_started

    def start(self) -> None:
        created = self._watchers_factory()
        watchers = list(created) if created is not None else []
        with self._watchers_lock:
            self._watchers = watchers
            self._utc_started = utc_now()
            self._set_utc_last_modified(self._utc_started)
        for watcher in watchers:
            watcher.subscribe(self._watcher_changed)

    def _detach_watchers(self) -> list[Watcher]:
        with self._watchers_lock:
            watchers, self._watchers = self._watchers or [], None
        for watcher in watchers:
            watcher.unsubscribe(self._watcher_changed)
            watcher.dispose()
        return watchers

    def _watcher_changed(self, watcher: Watcher, event: WatcherEvent) -> None:
        # Clock resolution can make the change land on the start stamp.
        self._set_utc_last_modified(max(utc_now(), self._utc_started + _TICK))
        if not self._detach_watchers():
            # Another watcher already reported the change.
            return
        self._raise_changed(DependencyEvent(utc_last_modified=self.utc_last_modified, status=str(event)))

    def _dispose_resources(self) -> None:
        self._detach_watchers()
