from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from cachekit.core.time import ensure_utc, is_utc, utc_now


def test_utc_now_is_aware_and_utc() -> None:
    now = utc_now()
    assert now.tzinfo is not None
    assert now.tzinfo == UTC


def test_ensure_utc_assumes_naive_is_utc() -> None:
    dt = ensure_utc(datetime(2026, 2, 17, 23, 33))
    assert dt.tzinfo == UTC
    assert dt.hour == 23


def test_ensure_utc_converts_offsets() -> None:
    cet = timezone(timedelta(hours=1))
    dt = ensure_utc(datetime(2026, 2, 17, 12, 0, tzinfo=cet))
    assert dt == datetime(2026, 2, 17, 11, 0, tzinfo=UTC)
    assert dt.tzinfo == UTC


def test_is_utc() -> None:
    assert is_utc(utc_now())
    assert not is_utc(datetime(2026, 1, 1))
    assert not is_utc(datetime(2026, 1, 1, tzinfo=timezone(timedelta(hours=2))))
