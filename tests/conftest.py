from __future__ import annotations

import sys
from collections.abc import Iterator
from datetime import timedelta
from pathlib import Path

import pytest

# pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from cachekit.caching.store import CacheStore  # noqa: E402
from cachekit.core.config import CacheConfig  # noqa: E402
from tests.unit._cache_fakes import ManualClock  # noqa: E402


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def store(clock: ManualClock) -> Iterator[CacheStore]:
    """Store on a manual clock with a sweep interval long enough to never fire on its own."""

    cfg = CacheConfig(sweep={"interval_seconds": timedelta(hours=1).total_seconds()})
    s = CacheStore(cfg, clock=clock)
    yield s
    s.close()
