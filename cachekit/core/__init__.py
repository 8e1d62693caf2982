"""cachekit.core

Core primitives.

If a module needs to exist, it should probably depend only on this package.
"""

from .config import CacheConfig
from .exceptions import (
    ArgumentOutOfRangeError,
    CacheError,
    CachekitError,
    ConfigError,
    DependencyError,
    InvalidArgumentError,
    StoreClosedError,
    WatcherError,
)
from .logging import configure_logging
from .metrics import CacheStats, MetricsRegistry
from .time import ensure_utc, utc_now

__all__ = [
    "ArgumentOutOfRangeError",
    "CacheConfig",
    "CacheError",
    "CacheStats",
    "CachekitError",
    "ConfigError",
    "DependencyError",
    "InvalidArgumentError",
    "MetricsRegistry",
    "StoreClosedError",
    "WatcherError",
    "configure_logging",
    "ensure_utc",
    "utc_now",
]
