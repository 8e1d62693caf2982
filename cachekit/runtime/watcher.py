"""cachekit.runtime.watcher

Watchers poll a resource on a fixed schedule and announce when it changed.

A watcher owns one daemon thread. It waits ``due_time``, then calls
``handle_signaling()`` every ``period`` until disposed.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from cachekit.core.config import WatcherConfig
from cachekit.core.exceptions import ArgumentOutOfRangeError, InvalidArgumentError
from cachekit.core.time import is_utc, utc_now

log = logging.getLogger(__name__)

# Placeholder checksum until the first poll has observed the resource.
DEFAULT_CHECKSUM = secrets.token_hex(16)


@dataclass(frozen=True, slots=True)
class WatcherOptions:
    due_time: timedelta = timedelta(seconds=15)
    period: timedelta = timedelta(minutes=2)
    postpone_changed: timedelta = timedelta(0)

    def __post_init__(self) -> None:
        if self.due_time < timedelta(0):
            raise ArgumentOutOfRangeError("due_time cannot be negative")
        if self.period <= timedelta(0):
            raise ArgumentOutOfRangeError("period must be positive")
        if self.postpone_changed < timedelta(0):
            raise ArgumentOutOfRangeError("postpone_changed cannot be negative")

    @classmethod
    def from_config(cls, config: WatcherConfig) -> WatcherOptions:
        return cls(
            due_time=timedelta(seconds=config.due_time_seconds),
            period=timedelta(seconds=config.period_seconds),
            postpone_changed=timedelta(seconds=config.postpone_changed_seconds),
        )


@dataclass(frozen=True, slots=True)
class WatcherEvent:
    utc_last_modified: datetime
    delayed: timedelta = timedelta(0)
    checksum: str = ""

    def __str__(self) -> str:
        return (
            f"A watcher was last signaled on '{self.utc_last_modified:%Y-%m-%dT%H:%M:%S}' "
            f"having a checksum of '{self.checksum}'."
        )


WatcherChangedHandler = Callable[["Watcher", WatcherEvent], None]


class Watcher(ABC):
    """Base class for polling watchers.

    The polling thread starts in ``__init__``; subclasses assign their own
    attributes before calling ``super().__init__()``.
    """

    def __init__(
        self,
        options: WatcherOptions | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        opts = options or WatcherOptions()
        self.due_time = opts.due_time
        self.period = opts.period
        self.postpone_changed = opts.postpone_changed
        self.utc_last_modified = utc_now()
        self.checksum = self.initial_checksum()
        self.utc_last_signaled: datetime | None = None
        self._log = logger or log

        self._handlers: list[WatcherChangedHandler] = []
        self._signal_lock = threading.Lock()
        self._cond = threading.Condition()
        self._rescheduled = False
        self._disposed = False
        self._postponing: threading.Timer | None = None

        self._thread = threading.Thread(
            target=self._run,
            name=f"cachekit-{type(self).__name__}",
            daemon=True,
        )
        self._thread.start()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def subscribe(self, handler: WatcherChangedHandler) -> None:
        if handler is None:
            raise InvalidArgumentError("handler cannot be None")
        with self._cond:
            self._handlers.append(handler)

    def unsubscribe(self, handler: WatcherChangedHandler) -> bool:
        with self._cond:
            try:
                self._handlers.remove(handler)
            except ValueError:
                return False
            return True

    def change_signaling(self, due_time: timedelta, period: timedelta | None = None) -> None:
        """Restart the polling schedule with a new due time and period."""

        opts = WatcherOptions(
            due_time=due_time,
            period=self.period if period is None else period,
            postpone_changed=self.postpone_changed,
        )
        with self._cond:
            self.due_time = opts.due_time
            self.period = opts.period
            self._rescheduled = True
            self._cond.notify_all()

    def _run(self) -> None:
        next_at = time.monotonic() + self.due_time.total_seconds()
        while True:
            with self._cond:
                while not self._disposed and not self._rescheduled:
                    remaining = next_at - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                if self._disposed:
                    return
                if self._rescheduled:
                    self._rescheduled = False
                    next_at = time.monotonic() + self.due_time.total_seconds()
                    continue
                next_at = time.monotonic() + self.period.total_seconds()
            try:
                self.signal()
            except Exception:
                self._log.exception("watcher_signaling_failed", extra={"watcher": type(self).__name__})

    def signal(self) -> None:
        """Run one signaling pass on the calling thread."""

        with self._signal_lock:
            if self._disposed:
                return
            self.utc_last_signaled = utc_now()
            self.handle_signaling()

    def initial_checksum(self) -> str:
        """Baseline fingerprint taken before the first poll."""

        return DEFAULT_CHECKSUM

    @abstractmethod
    def handle_signaling(self) -> None:
        """Inspect the watched resource; call ``signal_changed()`` if it moved."""

    def set_utc_last_modified(self, value: datetime) -> None:
        if not is_utc(value):
            raise InvalidArgumentError("utc_last_modified must be an aware UTC datetime")
        self.utc_last_modified = value

    def signal_changed(self, utc_last_modified: datetime | None = None) -> None:
        self.set_utc_last_modified(utc_last_modified or utc_now())
        event = WatcherEvent(
            utc_last_modified=self.utc_last_modified,
            delayed=self.postpone_changed,
            checksum=self.checksum,
        )
        with self._cond:
            if self._disposed or self._postponing is not None:
                return
            if self.postpone_changed > timedelta(0):
                self._postponing = threading.Timer(
                    self.postpone_changed.total_seconds(), self._postponed_changed, args=(event,)
                )
                self._postponing.daemon = True
                self._postponing.start()
                return
        self._raise_changed(event)

    def _postponed_changed(self, event: WatcherEvent) -> None:
        with self._cond:
            self._postponing = None
            if self._disposed:
                return
        self._raise_changed(event)

    def _raise_changed(self, event: WatcherEvent) -> None:
        with self._cond:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(self, event)
            except Exception:
                self._log.exception("watcher_handler_failed", extra={"watcher": type(self).__name__})

    def _dispose_resources(self) -> None:
        """Release subclass resources. Called at most once."""

    def dispose(self) -> None:
        with self._cond:
            if self._disposed:
                return
            self._disposed = True
            self._handlers.clear()
            postponing, self._postponing = self._postponing, None
            self._cond.notify_all()
        if postponing is not None:
            postponing.cancel()
        self._dispose_resources()

    def __enter__(self) -> Watcher:
        return self

    def __exit__(self, *exc: object) -> None:
        self.dispose()
