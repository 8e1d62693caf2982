"""cachekit.core.exceptions

Errors are part of the interface.

Every error raised by the library derives from ``CachekitError``.
"""

from __future__ import annotations


class CachekitError(Exception):
    """Base exception for cachekit."""


class ConfigError(CachekitError):
    """Configuration is missing, invalid, or inconsistent."""


class InvalidArgumentError(CachekitError, ValueError):
    """An argument is missing or has an unusable value."""


class ArgumentOutOfRangeError(InvalidArgumentError):
    """An argument is outside its allowed range."""


class CacheError(CachekitError):
    """Cache store failures."""


class StoreClosedError(CacheError):
    """The store has been closed and no longer accepts operations."""


class DependencyError(CachekitError):
    """Dependency contract violations."""


class WatcherError(DependencyError):
    """A watcher could not observe its resource."""
