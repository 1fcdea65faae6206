"""Position acceptance policy."""

from __future__ import annotations

from datetime import datetime


def should_accept_sample(cached_timestamp: datetime | None, incoming_timestamp: datetime) -> bool:
    """Accept only samples strictly newer than the one held.

    Equal timestamps are rejected too: a duplicate delivery must not
    recompute heading or notify listeners again.
    """
    if cached_timestamp is None:
        return True
    return incoming_timestamp > cached_timestamp
