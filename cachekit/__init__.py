"""cachekit

In-process object cache with absolute, sliding and dependency-driven expiration.
"""

from cachekit.caching import CacheEntry, CacheStore, ExpirationPolicy
from cachekit.core import CacheConfig
from cachekit.runtime import Dependency, DependencyEvent, FileDependency, HttpDependency, WatcherDependency

__version__ = "0.1.0"

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "CacheStore",
    "Dependency",
    "DependencyEvent",
    "ExpirationPolicy",
    "FileDependency",
    "HttpDependency",
    "WatcherDependency",
    "__version__",
]
