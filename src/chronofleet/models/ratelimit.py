"""Rate limiter records and results."""

from __future__ import annotations

from dataclasses import dataclass

from chronofleet.models._base import ChronoBaseModel


@dataclass(frozen=True)
class RateLimitRecord:
    """Fixed-window counter for one caller.

    ``reset_time`` is epoch milliseconds. Records are replaced, not
    mutated, so any store can persist them as plain values.
    """

    identifier: str
    count: int
    reset_time: int

    def is_expired(self, now_ms: int) -> bool:
        return self.reset_time < now_ms


class RateLimitResult(ChronoBaseModel):
    """Outcome of :meth:`RateLimiter.check`.

    ``model_dump()`` yields the ``{success, remaining, reset}`` response
    shape, with ``reset`` in epoch milliseconds.
    """

    success: bool
    remaining: int
    reset: int
