"""cachekit.caching.policy

Timing policy of a cache entry.

Absolute and sliding expiration are alternatives; at most one is set.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from cachekit.core.exceptions import ArgumentOutOfRangeError, InvalidArgumentError
from cachekit.core.time import ensure_utc

MAX_SLIDING_EXPIRATION = timedelta(days=365)


@dataclass(frozen=True, slots=True)
class ExpirationPolicy:
    absolute_expiration: datetime | None = None
    sliding_expiration: timedelta | None = None

    def __post_init__(self) -> None:
        sliding = self.sliding_expiration
        if sliding is not None:
            if not isinstance(sliding, timedelta):
                raise InvalidArgumentError("sliding_expiration must be a timedelta")
            if sliding < timedelta(0) or sliding > MAX_SLIDING_EXPIRATION:
                raise ArgumentOutOfRangeError(
                    "sliding_expiration cannot be less than zero or more than one year"
                )
            if sliding == timedelta(0):
                object.__setattr__(self, "sliding_expiration", None)

        absolute = self.absolute_expiration
        if absolute is not None:
            if not isinstance(absolute, datetime):
                raise InvalidArgumentError("absolute_expiration must be a datetime")
            object.__setattr__(self, "absolute_expiration", ensure_utc(absolute))

        if self.absolute_expiration is not None and self.sliding_expiration is not None:
            raise InvalidArgumentError("absolute_expiration and sliding_expiration are mutually exclusive")

    @classmethod
    def absolute(cls, at: datetime) -> ExpirationPolicy:
        return cls(absolute_expiration=at)

    @classmethod
    def sliding(cls, window: timedelta) -> ExpirationPolicy:
        return cls(sliding_expiration=window)

    @property
    def uses_absolute_expiration(self) -> bool:
        return self.absolute_expiration is not None

    @property
    def uses_sliding_expiration(self) -> bool:
        return self.sliding_expiration is not None


NO_EXPIRATION = ExpirationPolicy()
