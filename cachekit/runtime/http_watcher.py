"""cachekit.runtime.http_watcher

Polling watcher for HTTP resources.

Two modes:
- HEAD (default): compare ``ETag`` and ``Last-Modified`` response headers
- GET (``use_response_data=True``): compare the SHA-256 of the response body
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from datetime import datetime
from email.utils import parsedate_to_datetime

import httpx

from cachekit.core.exceptions import InvalidArgumentError, WatcherError
from cachekit.core.time import ensure_utc, utc_now
from cachekit.runtime.watcher import DEFAULT_CHECKSUM, Watcher, WatcherOptions
from cachekit.runtime.watcher_dependency import WatcherDependency

DEFAULT_TIMEOUT_S = 20.0


class HttpWatcher(Watcher):
    def __init__(
        self,
        url: str,
        *,
        use_response_data: bool = False,
        options: WatcherOptions | None = None,
        client: httpx.Client | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        logger: logging.Logger | None = None,
    ) -> None:
        if not url:
            raise InvalidArgumentError("url cannot be empty")
        parsed = httpx.URL(url)
        if parsed.scheme not in ("http", "https"):
            raise InvalidArgumentError(
                f"unsupported scheme {parsed.scheme!r}; allowed schemes are http and https"
            )
        self.url = str(parsed)
        self.use_response_data = use_response_data
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_s, follow_redirects=True)
        self._utc_timestamp = utc_now()
        super().__init__(options, logger=logger)

    @property
    def listener_header(self) -> str:
        return f"cachekit.HttpWatcher; Interval={self.period.total_seconds():g} seconds"

    def _fetch(self) -> httpx.Response:
        method = "GET" if self.use_response_data else "HEAD"
        try:
            resp = self._client.request(method, self.url, headers={"Listener-Object": self.listener_header})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise WatcherError(f"{method} {self.url} failed: {e}") from e
        return resp

    def _last_modified(self, resp: httpx.Response) -> datetime | None:
        raw = resp.headers.get("last-modified")
        if not raw:
            return None
        try:
            return ensure_utc(parsedate_to_datetime(raw))
        except (TypeError, ValueError):
            self._log.warning("http_watcher_bad_last_modified", extra={"url": self.url, "value": raw})
            return None

    def handle_signaling(self) -> None:
        resp = self._fetch()
        last_modified: datetime | None = None

        if self.use_response_data:
            current = hashlib.sha256(resp.content).hexdigest()
        else:
            current = resp.headers.get("etag", "")
            last_modified = self._last_modified(resp)

        if self.checksum == DEFAULT_CHECKSUM:
            self.checksum = current

        if self.use_response_data:
            changed = current != self.checksum
        else:
            etag_moved = current != "" and current.lower() != self.checksum.lower()
            modified_moved = last_modified is not None and last_modified > self._utc_timestamp
            changed = etag_moved or modified_moved

        self.checksum = current
        if changed:
            if last_modified is not None:
                self._utc_timestamp = max(self._utc_timestamp, last_modified)
            self.signal_changed(last_modified or utc_now())

    def _dispose_resources(self) -> None:
        if self._owns_client:
            self._client.close()


class HttpDependency(WatcherDependency):
    """Invalidate when any of the given URLs change."""

    def __init__(
        self,
        urls: str | Iterable[str],
        *,
        use_response_data: bool = False,
        options: WatcherOptions | None = None,
        client: httpx.Client | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        logger: logging.Logger | None = None,
    ) -> None:
        if urls is None:
            raise InvalidArgumentError("urls cannot be None")
        if isinstance(urls, str):
            urls = [urls]
        self.urls = tuple(u for u in urls if u)
        self.use_response_data = use_response_data
        self._options = options
        self._client = client
        self._timeout_s = timeout_s
        super().__init__(self._create_watchers, logger=logger)

    def _create_watchers(self) -> list[HttpWatcher]:
        return [
            HttpWatcher(
                url,
                use_response_data=self.use_response_data,
                options=self._options,
                client=self._client,
                timeout_s=self._timeout_s,
                logger=self._log,
            )
            for url in self.urls
        ]
