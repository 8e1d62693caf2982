"""cachekit.runtime.file_watcher

Polling file-system watcher.

A file is fingerprinted by the SHA-256 of its content. A directory is
fingerprinted by the names, sizes and modification times of its direct
children, optionally filtered by a glob pattern.
"""

from __future__ import annotations

import fnmatch
import hashlib
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from cachekit.core.exceptions import InvalidArgumentError
from cachekit.runtime.watcher import DEFAULT_CHECKSUM, Watcher, WatcherOptions
from cachekit.runtime.watcher_dependency import WatcherDependency

_CHUNK = 64 * 1024


def _file_checksum(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _directory_checksum(path: Path, pattern: str | None) -> str:
    digest = hashlib.sha256()
    for child in sorted(path.iterdir(), key=lambda p: p.name):
        if pattern and not fnmatch.fnmatch(child.name, pattern):
            continue
        try:
            st = child.stat()
        except FileNotFoundError:
            continue
        digest.update(f"{child.name}\0{st.st_size}\0{st.st_mtime_ns}\n".encode())
    return digest.hexdigest()


class FileWatcher(Watcher):
    """Watch a single file or the direct children of a directory."""

    def __init__(
        self,
        path: str | Path,
        pattern: str | None = None,
        options: WatcherOptions | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        if path is None or str(path) == "":
            raise InvalidArgumentError("path cannot be empty")
        self.path = Path(path)
        self.pattern = pattern
        super().__init__(options, logger=logger)

    def compute_checksum(self) -> str:
        """Return the current fingerprint; ``""`` when the path does not exist."""

        if self.path.is_dir():
            return _directory_checksum(self.path, self.pattern)
        if self.path.is_file():
            return _file_checksum(self.path)
        return ""

    def initial_checksum(self) -> str:
        return self.compute_checksum()

    def _modified_at(self) -> datetime | None:
        try:
            return datetime.fromtimestamp(self.path.stat().st_mtime, tz=UTC)
        except FileNotFoundError:
            return None

    def handle_signaling(self) -> None:
        current = self.compute_checksum()
        if self.checksum == DEFAULT_CHECKSUM:
            self.checksum = current
            return
        if current != self.checksum:
            self.checksum = current
            self.signal_changed(None if current == "" else self._modified_at())


class FileDependency(WatcherDependency):
    """Invalidate when any of the given files or directories change."""

    def __init__(
        self,
        paths: str | Path | Iterable[str | Path],
        pattern: str | None = None,
        options: WatcherOptions | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        if paths is None:
            raise InvalidArgumentError("paths cannot be None")
        if isinstance(paths, (str, Path)):
            paths = [paths]
        self.paths = tuple(Path(p) for p in paths if p and str(p))
        self.pattern = pattern
        self._options = options
        super().__init__(self._create_watchers, logger=logger)

    def _create_watchers(self) -> list[Watcher]:
        return [FileWatcher(p, self.pattern, self._options, logger=self._log) for p in self.paths]
