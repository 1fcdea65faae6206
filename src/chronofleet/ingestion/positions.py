"""Driver payload ingestion.

Turns raw ``initial-drivers``, ``driver:online``, ``driver:offline`` and
``driver:position:update`` payloads into :class:`DriverPayload` and
:class:`PositionSample` objects. Malformed entries are dropped here so
the store only ever sees valid data.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from chronofleet.models.position import DriverPayload, PositionSample

_logger = logging.getLogger(__name__)


def parse_driver_payload(raw: Any) -> DriverPayload | None:
    if isinstance(raw, DriverPayload):
        return raw
    if not isinstance(raw, dict):
        _logger.debug("Ignoring non-object driver payload: %r", raw)
        return None
    try:
        return DriverPayload.model_validate(raw)
    except ValidationError:
        _logger.debug("Ignoring invalid driver payload", exc_info=True)
        return None


def parse_initial_drivers(raw: Any) -> list[DriverPayload]:
    """Parse the ``initial-drivers`` snapshot (a list, or ``{"drivers": [...]}``)."""
    entries = raw.get("drivers") if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        return []
    parsed = (parse_driver_payload(entry) for entry in entries)
    return [payload for payload in parsed if payload is not None]


def sample_from_payload(
    payload: DriverPayload,
    *,
    received_at: datetime,
    is_online: bool,
    is_available: bool,
) -> PositionSample | None:
    """Build a sample from a payload that carries coordinates.

    Flags the payload does not state fall back to the given values, and a
    payload without ``updated_at`` is stamped with *received_at*.
    """
    if not payload.has_position:
        return None
    assert payload.latitude is not None and payload.longitude is not None  # noqa: S101
    return PositionSample(
        entity_id=payload.user_id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        timestamp=payload.updated_at or received_at,
        is_online=payload.is_online if payload.is_online is not None else is_online,
        is_available=payload.is_available if payload.is_available is not None else is_available,
    )
