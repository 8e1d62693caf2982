"""cachekit.caching

The in-process object cache.
"""

from .entry import CacheEntry
from .policy import ExpirationPolicy
from .store import CacheStore, CompositeKey
from .sweeper import ExpirationSweeper

__all__ = [
    "CacheEntry",
    "CacheStore",
    "CompositeKey",
    "ExpirationPolicy",
    "ExpirationSweeper",
]
