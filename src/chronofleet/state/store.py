"""Deterministic in-memory position store.

This is the only component allowed to merge incoming driver updates.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from chronofleet._constants import (
    EVENT_DRIVER_OFFLINE,
    EVENT_DRIVER_ONLINE,
    EVENT_DRIVER_POSITION,
    EVENT_INITIAL_DRIVERS,
)
from chronofleet.bearing import calculate_bearing
from chronofleet.events import EventBus, Unsubscribe
from chronofleet.ingestion.positions import parse_driver_payload, parse_initial_drivers, sample_from_payload
from chronofleet.models.position import DriverPayload, DriverState, PositionSample
from chronofleet.state.policy import should_accept_sample

_logger = logging.getLogger(__name__)

_CHANGE = "change"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EventSource(Protocol):
    def on(self, event: str, handler: Callable[[Any], None]) -> Unsubscribe:
        ...


class PositionStore:
    """Latest position, heading and status per driver.

    Given the same sequence of events the store produces the same
    snapshots. Samples that are not strictly newer than the held one are
    discarded silently, so late network deliveries never move a marker
    backwards.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._drivers: dict[str, DriverState] = {}
        self._bus = EventBus()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, entity_id: str) -> DriverState | None:
        return self._drivers.get(entity_id)

    def snapshot(self) -> dict[str, DriverState]:
        return dict(self._drivers)

    def online_drivers(self) -> list[DriverState]:
        return [state for state in self._drivers.values() if state.is_online]

    def __len__(self) -> int:
        return len(self._drivers)

    def on_change(self, handler: Callable[[DriverState], None]) -> Unsubscribe:
        """Be notified with the new :class:`DriverState` after each accepted change."""
        return self._bus.subscribe(_CHANGE, handler)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _commit(self, state: DriverState) -> DriverState:
        self._drivers[state.entity_id] = state
        self._bus.publish(_CHANGE, state)
        return state

    def apply_sample(self, sample: PositionSample) -> bool:
        """Apply *sample*; returns ``False`` when it was stale and dropped."""
        current = self._drivers.get(sample.entity_id)
        previous = current.sample if current is not None else None

        if previous is not None and not should_accept_sample(previous.timestamp, sample.timestamp):
            _logger.debug(
                "Dropping stale sample for %s (%s <= %s)",
                sample.entity_id,
                sample.timestamp.isoformat(),
                previous.timestamp.isoformat(),
            )
            return False

        heading = current.heading if current is not None else None
        if previous is not None:
            bearing = calculate_bearing(previous.coordinate, sample.coordinate)
            if bearing is not None:
                heading = bearing

        self._commit(
            DriverState(
                entity_id=sample.entity_id,
                sample=sample,
                heading=heading,
                is_online=sample.is_online,
                is_available=sample.is_available,
            )
        )
        return True

    def set_status(
        self,
        entity_id: str,
        *,
        is_online: bool | None = None,
        is_available: bool | None = None,
    ) -> DriverState:
        """Record a status transition without touching the last position."""
        current = self._drivers.get(entity_id) or DriverState(entity_id=entity_id)
        updates: dict[str, bool] = {}
        if is_online is not None:
            updates["is_online"] = is_online
        if is_available is not None:
            updates["is_available"] = is_available
        if not updates and entity_id in self._drivers:
            return current
        return self._commit(current.model_copy(update=updates))

    def apply_payload(self, payload: DriverPayload) -> bool:
        """Apply the position carried by *payload*, if any."""
        current = self._drivers.get(payload.user_id)
        sample = sample_from_payload(
            payload,
            received_at=self._clock(),
            is_online=current.is_online if current is not None else True,
            is_available=current.is_available if current is not None else False,
        )
        if sample is None:
            return False
        return self.apply_sample(sample)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def handle_initial_drivers(self, raw: Any) -> None:
        drivers = parse_initial_drivers(raw)
        _logger.debug("Initial driver snapshot with %d entries", len(drivers))
        for payload in drivers:
            self.set_status(
                payload.user_id,
                is_online=payload.is_online if payload.is_online is not None else False,
                is_available=payload.is_available,
            )
            self.apply_payload(payload)

    def handle_online(self, raw: Any) -> None:
        payload = parse_driver_payload(raw)
        if payload is None:
            return
        self.set_status(payload.user_id, is_online=True, is_available=payload.is_available)
        self.apply_payload(payload)

    def handle_offline(self, raw: Any) -> None:
        payload = parse_driver_payload(raw)
        if payload is None:
            return
        self.set_status(payload.user_id, is_online=False, is_available=False)

    def handle_position(self, raw: Any) -> None:
        payload = parse_driver_payload(raw)
        if payload is None:
            return
        self.apply_payload(payload)

    def attach(self, source: EventSource) -> Unsubscribe:
        """Subscribe to the driver events of *source*; returns one unsubscribe function."""
        unsubscribers = [
            source.on(EVENT_INITIAL_DRIVERS, self.handle_initial_drivers),
            source.on(EVENT_DRIVER_ONLINE, self.handle_online),
            source.on(EVENT_DRIVER_OFFLINE, self.handle_offline),
            source.on(EVENT_DRIVER_POSITION, self.handle_position),
        ]

        def detach() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return detach
