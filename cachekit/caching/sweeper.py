"""cachekit.caching.sweeper

Background expiration sweep.

The sweeper is a part of the store with its own thread. It exists only
while the store holds an entry that can expire, and it never removes
anything itself: expired entries are handed back to the store, which
dispatches their removal to the worker pool.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import Protocol

from cachekit.caching.entry import CacheEntry

log = logging.getLogger(__name__)


class SweepTarget(Protocol):
    """What the sweeper needs from its store."""

    def _sweep_snapshot(self) -> Sequence[CacheEntry]: ...

    def _schedule_removal(self, entry: CacheEntry, reason: str) -> None: ...

    def _stop_sweeper_if_idle(self, doomed: dict[int, CacheEntry]) -> bool: ...


class ExpirationSweeper:
    def __init__(
        self,
        target: SweepTarget,
        *,
        interval: timedelta,
        clock: Callable[[], datetime],
        logger: logging.Logger | None = None,
    ) -> None:
        self._target = target
        self._interval_s = interval.total_seconds()
        self._clock = clock
        self._log = logger or log
        self._pass_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event: threading.Event | None = None
        self.passes = 0

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self._interval_s)

    @property
    def running(self) -> bool:
        with self._state_lock:
            return self._thread is not None

    def ensure_running(self) -> None:
        with self._state_lock:
            if self._thread is not None:
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name="cachekit-sweeper",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
        thread.start()
        self._log.debug("sweeper_started", extra={"interval_s": self._interval_s})

    def stop(self) -> None:
        with self._state_lock:
            stop_event, self._stop_event = self._stop_event, None
            self._thread = None
        if stop_event is not None:
            stop_event.set()
            self._log.debug("sweeper_stopped")

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval_s):
            try:
                self.sweep()
            except Exception:
                self._log.exception("sweep_failed")

    def sweep(self) -> bool:
        """Run one pass. Returns whether the sweeper is still required.

        A pass requested while another is in progress is skipped.
        """

        if not self._pass_lock.acquire(blocking=False):
            return True
        try:
            now = self._clock()
            # Holding the entries keeps their ids from being reused by new ones.
            doomed: dict[int, CacheEntry] = {}
            required = False
            for entry in self._target._sweep_snapshot():
                if not entry.can_expire:
                    continue
                if entry.has_expired(now):
                    doomed[id(entry)] = entry
                    self._target._schedule_removal(entry, "expired")
                else:
                    required = True
            self.passes += 1
            self._log.debug("sweep_completed", extra={"expired": len(doomed), "required": required})
            if required:
                return True
            return not self._target._stop_sweeper_if_idle(doomed)
        finally:
            self._pass_lock.release()
