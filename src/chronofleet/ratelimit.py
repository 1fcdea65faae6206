"""Fixed-window rate limiting for outbound provider calls.

The limiter counts calls per caller identity (forwarded client IP or
user id) inside a window that starts on the caller's first call and
resets completely once it elapses.

The default :class:`MemoryRateLimitStore` lives in process memory and
does not coordinate across server instances. Deployments running more
than one instance pass a store backed by a shared cache instead; call
sites stay unchanged.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Mapping
from typing import Any, Protocol

from chronofleet._constants import RATE_LIMIT_SWEEP_THRESHOLD, RATE_LIMIT_UNKNOWN_IDENTIFIER
from chronofleet.models.ratelimit import RateLimitRecord, RateLimitResult

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class RateLimitStore(Protocol):
    """Storage used by :class:`RateLimiter`."""

    def get(self, identifier: str) -> RateLimitRecord | None:
        ...

    def put(self, record: RateLimitRecord) -> None:
        ...

    def delete(self, identifier: str) -> None:
        ...

    def __len__(self) -> int:
        ...

    def __iter__(self) -> Iterator[RateLimitRecord]:
        ...


class MemoryRateLimitStore:
    """Process-local store keyed by caller identifier."""

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}

    def get(self, identifier: str) -> RateLimitRecord | None:
        return self._records.get(identifier)

    def put(self, record: RateLimitRecord) -> None:
        self._records[record.identifier] = record

    def delete(self, identifier: str) -> None:
        self._records.pop(identifier, None)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[RateLimitRecord]:
        return iter(list(self._records.values()))


class RateLimiter:
    """Fixed-window counter over an injectable store.

    Usage::

        limiter = RateLimiter()
        result = limiter.check(rate_limit_identifier(request.headers), limit=5, window_seconds=900)
        if not result.success:
            ...  # answer "try later"

    ``check`` never raises; exhaustion is reported through
    ``RateLimitResult.success``.
    """

    def __init__(
        self,
        store: RateLimitStore | None = None,
        *,
        clock: Callable[[], int] = _now_ms,
        sweep_threshold: int = RATE_LIMIT_SWEEP_THRESHOLD,
    ) -> None:
        self._store: RateLimitStore = store if store is not None else MemoryRateLimitStore()
        self._clock = clock
        self._sweep_threshold = sweep_threshold

    @property
    def store(self) -> RateLimitStore:
        return self._store

    def _sweep(self, now: int) -> None:
        """Drop expired windows once the store has grown past the threshold."""
        if len(self._store) <= self._sweep_threshold:
            return
        expired = [record.identifier for record in self._store if record.is_expired(now)]
        for identifier in expired:
            self._store.delete(identifier)
        _logger.debug("Rate limit sweep removed %d expired windows", len(expired))

    def check(self, identifier: str, limit: int = 10, window_seconds: float = 60) -> RateLimitResult:
        """Count one call for *identifier* and report whether it is allowed."""
        now = self._clock()
        window_ms = int(window_seconds * 1000)

        self._sweep(now)

        record = self._store.get(identifier)
        if record is None or record.is_expired(now):
            reset = now + window_ms
            self._store.put(RateLimitRecord(identifier=identifier, count=1, reset_time=reset))
            return RateLimitResult(success=True, remaining=limit - 1, reset=reset)

        if record.count >= limit:
            _logger.debug("Rate limit reached for %s (limit=%d)", identifier, limit)
            return RateLimitResult(success=False, remaining=0, reset=record.reset_time)

        updated = RateLimitRecord(identifier=identifier, count=record.count + 1, reset_time=record.reset_time)
        self._store.put(updated)
        return RateLimitResult(success=True, remaining=limit - updated.count, reset=updated.reset_time)


def rate_limit_identifier(headers: Mapping[str, Any] | None) -> str:
    """Derive the caller identity from request headers.

    Uses the first address of ``X-Forwarded-For``. Callers without one
    all share the ``"unknown"`` bucket.
    """
    if not headers:
        return RATE_LIMIT_UNKNOWN_IDENTIFIER
    forwarded: Any = None
    for key, value in headers.items():
        if str(key).lower() == "x-forwarded-for":
            forwarded = value
            break
    if not isinstance(forwarded, str):
        return RATE_LIMIT_UNKNOWN_IDENTIFIER
    first = forwarded.split(",")[0].strip()
    return first or RATE_LIMIT_UNKNOWN_IDENTIFIER
