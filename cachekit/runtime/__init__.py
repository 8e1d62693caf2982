"""cachekit.runtime

Change signals that invalidate cache entries from the outside.
"""

from .dependency import Dependency, DependencyEvent, SupportsDependency
from .file_watcher import FileDependency, FileWatcher
from .http_watcher import HttpDependency, HttpWatcher
from .watcher import Watcher, WatcherEvent, WatcherOptions
from .watcher_dependency import WatcherDependency

__all__ = [
    "Dependency",
    "DependencyEvent",
    "FileDependency",
    "FileWatcher",
    "HttpDependency",
    "HttpWatcher",
    "SupportsDependency",
    "Watcher",
    "WatcherDependency",
    "WatcherEvent",
    "WatcherOptions",
]
