"""cachekit.caching.entry

One stored value plus the rules that decide when it stops being valid.

An entry owns its dependencies: it starts them once and stops them once.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from cachekit.caching.policy import NO_EXPIRATION, ExpirationPolicy
from cachekit.core.time import utc_now
from cachekit.runtime.dependency import DependencyEvent, SupportsDependency

log = logging.getLogger(__name__)

ExpiredHandler = Callable[["CacheEntry"], None]
Dispatcher = Callable[[Callable[[], Any]], None]


class CacheEntry:
    """A cached value with absolute, sliding or dependency-driven expiration."""

    __slots__ = (
        "key",
        "group",
        "value",
        "dependencies",
        "policy",
        "created",
        "last_accessed",
        "on_expired",
        "_dispatch",
        "_lock",
        "_started",
        "_stopped",
        "_expired_raised",
        "_log",
    )

    def __init__(
        self,
        key: str,
        value: Any,
        *,
        group: str | None = None,
        policy: ExpirationPolicy = NO_EXPIRATION,
        dependencies: Iterable[SupportsDependency] | None = None,
        created: datetime | None = None,
        on_expired: ExpiredHandler | None = None,
        dispatch: Dispatcher | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.key = key
        self.group = group
        self.value = value
        self.policy = policy
        self.dependencies: tuple[SupportsDependency, ...] = tuple(dependencies or ())
        self.created = created or utc_now()
        self.last_accessed = self.created
        self.on_expired = on_expired
        self._dispatch = dispatch
        self._lock = threading.Lock()
        self._started = False
        self._stopped = False
        self._expired_raised = False
        self._log = logger or log

    def __repr__(self) -> str:
        return f"CacheEntry(key={self.key!r}, group={self.group!r}, can_expire={self.can_expire})"

    @property
    def composite_key(self) -> tuple[str, str | None]:
        return (self.key, self.group)

    @property
    def absolute_expiration(self) -> datetime | None:
        return self.policy.absolute_expiration

    @property
    def sliding_expiration(self) -> timedelta | None:
        return self.policy.sliding_expiration

    @property
    def uses_absolute_expiration(self) -> bool:
        return self.policy.uses_absolute_expiration

    @property
    def uses_sliding_expiration(self) -> bool:
        return self.policy.uses_sliding_expiration

    @property
    def uses_dependencies(self) -> bool:
        return len(self.dependencies) > 0

    @property
    def can_expire(self) -> bool:
        return self.uses_absolute_expiration or self.uses_sliding_expiration or self.uses_dependencies

    def has_expired(self, now: datetime) -> bool:
        if not self.can_expire:
            return False
        if self.uses_absolute_expiration:
            return now >= self.policy.absolute_expiration
        if self.uses_sliding_expiration:
            return (now - self.last_accessed) >= self.policy.sliding_expiration
        return any(d.has_changed for d in self.dependencies)

    def refresh(self, now: datetime) -> None:
        self.last_accessed = now

    def start_dependencies(self) -> None:
        """Subscribe to and start every dependency.

        Errors from ``start()`` propagate; the caller then owns calling
        ``stop_dependencies()`` for the ones already started.
        """

        with self._lock:
            if self._started or self._stopped:
                return
            self._started = True
        for dependency in self.dependencies:
            with self._lock:
                if self._stopped:
                    return
            dependency.subscribe(self._dependency_changed)
            dependency.start()

    def stop_dependencies(self) -> bool:
        """Unsubscribe from and dispose every dependency.

        Returns False when the dependencies were already stopped.
        """

        with self._lock:
            if self._stopped:
                return False
            self._stopped = True
        for dependency in self.dependencies:
            dependency.unsubscribe(self._dependency_changed)
            try:
                dependency.dispose()
            except Exception:
                self._log.exception(
                    "dependency_dispose_failed",
                    extra={"key": self.key, "group": self.group, "dependency": type(dependency).__name__},
                )
        return True

    def _dependency_changed(self, dependency: SupportsDependency, event: DependencyEvent) -> None:
        with self._lock:
            if self._expired_raised:
                return
            self._expired_raised = True
        handler = self.on_expired
        if handler is not None:
            try:
                handler(self)
            except Exception:
                self._log.exception("cache_entry_expired_handler_failed", extra={"key": self.key, "group": self.group})
        if self._dispatch is None:
            self.stop_dependencies()
        else:
            self._dispatch(self.stop_dependencies)
