"""cachekit.runtime.dependency

Dependencies are external signals a cache entry can subscribe to.

Contract:
- ``start()`` begins out-of-band monitoring
- ``has_changed`` can be polled at any time
- subscribers are notified through ``subscribe``/``unsubscribe``
- ``dispose()`` releases whatever ``start()`` acquired; calling it twice is harmless
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from cachekit.core.exceptions import InvalidArgumentError
from cachekit.core.time import is_utc, utc_now

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DependencyEvent:
    """Payload delivered to dependency subscribers."""

    utc_last_modified: datetime
    status: str = ""


DependencyChangedHandler = Callable[["SupportsDependency", DependencyEvent], None]


@runtime_checkable
class SupportsDependency(Protocol):
    @property
    def has_changed(self) -> bool: ...

    def start(self) -> None: ...

    def subscribe(self, handler: DependencyChangedHandler) -> None: ...

    def unsubscribe(self, handler: DependencyChangedHandler) -> bool: ...

    def dispose(self) -> None: ...


class Dependency(ABC):
    """Base class for dependencies.

    Subclasses implement ``start()`` and ``has_changed`` and call
    ``_raise_changed()`` from whatever thread observes the change.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._utc_last_modified = utc_now()
        self._handlers: list[DependencyChangedHandler] = []
        self._handlers_lock = threading.Lock()
        self._disposed = False
        self._log = logger or log

    @property
    def utc_last_modified(self) -> datetime:
        return self._utc_last_modified

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    @abstractmethod
    def has_changed(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def start(self) -> None:
        raise NotImplementedError

    def subscribe(self, handler: DependencyChangedHandler) -> None:
        if handler is None:
            raise InvalidArgumentError("handler cannot be None")
        with self._handlers_lock:
            self._handlers.append(handler)

    def unsubscribe(self, handler: DependencyChangedHandler) -> bool:
        with self._handlers_lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                return False
            return True

    def _set_utc_last_modified(self, value: datetime) -> None:
        if not is_utc(value):
            raise InvalidArgumentError("utc_last_modified must be an aware UTC datetime")
        self._utc_last_modified = value

    def _raise_changed(self, event: DependencyEvent) -> None:
        # Handlers run outside the lock; one may unsubscribe another.
        with self._handlers_lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(self, event)
            except Exception:
                self._log.exception(
                    "dependency_handler_failed",
                    extra={"dependency": type(self).__name__},
                )

    def _dispose_resources(self) -> None:
        """Release resources acquired by ``start()``. Called at most once."""

    def dispose(self) -> None:
        with self._handlers_lock:
            if self._disposed:
                return
            self._disposed = True
            self._handlers.clear()
        self._dispose_resources()

    def __enter__(self) -> Dependency:
        return self

    def __exit__(self, *exc: object) -> None:
        self.dispose()
