"""High-level async client for the dispatch realtime layer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from chronofleet._constants import (
    EVENT_CLIENT_JOIN,
    EVENT_CONNECTED,
    EVENT_ORDER_STATUS,
    EVENT_TRANSPORT_MQTT,
    EVENT_TRANSPORT_SOCKETIO,
)
from chronofleet._mqtt import EventTransport, MqttEventTransport
from chronofleet._socketio import SocketIoEventTransport
from chronofleet._transport import HttpTransport, Transport
from chronofleet.config import FleetConfig
from chronofleet.eta import EtaEngine, EtaRequestSequencer
from chronofleet.events import Handler, Unsubscribe
from chronofleet.exceptions import ChronoConfigError, ChronoError
from chronofleet.models._base import Coordinate
from chronofleet.models.connection import ConnectionState
from chronofleet.models.geocode import GeocodeResult
from chronofleet.models.order import OrderStatusUpdate
from chronofleet.models.position import DriverState
from chronofleet.models.route import EtaEstimate, VehicleType
from chronofleet.ratelimit import RateLimiter
from chronofleet.state.store import PositionStore
from chronofleet.supervisor import ConnectionSupervisor

_logger = logging.getLogger(__name__)


class FleetClient:
    """Async client tying the event stream, position store and ETA engine together.

    Usage::

        async with FleetClient(FleetConfig.from_env()) as client:
            await client.connect()
            estimate = await client.estimate_eta(pickup, dropoff, VehicleType.MOTO)
    """

    def __init__(
        self,
        config: FleetConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        event_transport: EventTransport | None = None,
        http_transport: Transport | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._event_transport = event_transport
        self._http_transport = http_transport
        self._rate_limiter = rate_limiter
        self._supervisor: ConnectionSupervisor | None = None
        self._engine: EtaEngine | None = None
        self._store = PositionStore()
        self._sequencer = EtaRequestSequencer()
        self._last_eta: dict[str, EtaEstimate] = {}
        self._unsubscribers: list[Unsubscribe] = []
        self._pending: set[asyncio.Task[bool]] = set()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetClient:
        if self._event_transport is None:
            self._event_transport = self._build_event_transport()
        if self._http_transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._http_transport = HttpTransport(self._http_session, timeout=self._config.http_timeout)

        self._supervisor = ConnectionSupervisor(
            self._event_transport,
            connect_timeout=self._config.connect_timeout,
            max_reconnect_attempts=self._config.max_reconnect_attempts,
        )
        self._engine = EtaEngine(self._config, self._http_transport, rate_limiter=self._rate_limiter)
        self._unsubscribers.append(self._store.attach(self._supervisor))
        if self._config.identity:
            self._unsubscribers.append(self._supervisor.on(EVENT_CONNECTED, self._announce))
        return self

    async def __aexit__(self, *exc: Any) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self._supervisor is not None:
            await self._supervisor.disconnect()
            self._supervisor = None
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._engine = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_event_transport(self) -> EventTransport:
        kind = self._config.event_transport
        if kind == EVENT_TRANSPORT_SOCKETIO:
            return SocketIoEventTransport(self._config, logger=_logger)
        if kind == EVENT_TRANSPORT_MQTT:
            return MqttEventTransport(self._config, logger=_logger)
        raise ChronoConfigError(f"Unknown event transport {kind!r}")

    def _require_supervisor(self) -> ConnectionSupervisor:
        if self._supervisor is None:
            raise ChronoError("Client not initialized. Use 'async with FleetClient(...) as client:'")
        return self._supervisor

    def _require_engine(self) -> EtaEngine:
        if self._engine is None:
            raise ChronoError("Client not initialized. Use 'async with FleetClient(...) as client:'")
        return self._engine

    def _announce(self, _payload: Any) -> None:
        """Join the server-side room for this client once connected."""
        supervisor = self._supervisor
        if supervisor is None:
            return
        task = asyncio.get_running_loop().create_task(
            supervisor.emit_to_server(EVENT_CLIENT_JOIN, self._config.identity)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    @property
    def connection_state(self) -> ConnectionState:
        return self._require_supervisor().state

    @property
    def store(self) -> PositionStore:
        return self._store

    async def connect(self) -> None:
        """Open the event stream. Failures arrive as ``connection-failed``."""
        await self._require_supervisor().connect()

    async def disconnect(self) -> None:
        await self._require_supervisor().disconnect()

    def is_connected(self) -> bool:
        return self._supervisor is not None and self._supervisor.is_connected()

    def on(self, event: str, handler: Handler) -> Unsubscribe:
        """Subscribe to a raw stream event (see :class:`ConnectionSupervisor`)."""
        return self._require_supervisor().on(event, handler)

    def on_driver_change(self, handler: Callable[[DriverState], None]) -> Unsubscribe:
        return self._store.on_change(handler)

    def on_order_status(self, handler: Callable[[OrderStatusUpdate], None]) -> Unsubscribe:
        """Subscribe to parsed ``order:status:update`` events."""

        def _parse(raw: Any) -> None:
            if not isinstance(raw, dict):
                _logger.debug("Ignoring non-object order update: %r", raw)
                return
            handler(OrderStatusUpdate.model_validate(raw))

        return self.on(EVENT_ORDER_STATUS, _parse)

    async def emit(self, event: str, data: Any = None) -> bool:
        return await self._require_supervisor().emit_to_server(event, data)

    # ------------------------------------------------------------------
    # Drivers
    # ------------------------------------------------------------------

    def drivers(self, *, online_only: bool = False) -> list[DriverState]:
        if online_only:
            return self._store.online_drivers()
        return list(self._store.snapshot().values())

    def get_driver(self, driver_id: str) -> DriverState | None:
        return self._store.get(driver_id)

    # ------------------------------------------------------------------
    # ETA and geocoding
    # ------------------------------------------------------------------

    async def estimate_eta(
        self,
        origin: Coordinate,
        destination: Coordinate,
        vehicle_type: VehicleType = VehicleType.VEHICULE,
        *,
        caller: str | None = None,
    ) -> EtaEstimate | None:
        return await self._require_engine().estimate(origin, destination, vehicle_type, caller=caller)

    async def refresh_eta(
        self,
        key: str,
        origin: Coordinate,
        destination: Coordinate,
        vehicle_type: VehicleType = VehicleType.VEHICULE,
        *,
        caller: str | None = None,
    ) -> EtaEstimate | None:
        """Refresh the estimate held under *key*; the latest request wins.

        Returns ``None`` when the request was superseded while in flight or
        produced no estimate. In both cases :meth:`last_eta` keeps the
        previous good value.
        """
        ticket = self._sequencer.begin(key)
        estimate = await self.estimate_eta(origin, destination, vehicle_type, caller=caller)
        if not self._sequencer.is_latest(key, ticket):
            _logger.debug("Discarding superseded ETA for %s (ticket %d)", key, ticket)
            return None
        if estimate is not None:
            self._last_eta[key] = estimate
        return estimate

    async def refresh_driver_eta(
        self,
        driver_id: str,
        destination: Coordinate,
        vehicle_type: VehicleType = VehicleType.VEHICULE,
        *,
        caller: str | None = None,
    ) -> EtaEstimate | None:
        """Refresh the ETA from a driver's latest known position to *destination*."""
        state = self._store.get(driver_id)
        origin = state.coordinate if state is not None else None
        if origin is None:
            _logger.debug("No known position for driver %s", driver_id)
            return None
        return await self.refresh_eta(driver_id, origin, destination, vehicle_type, caller=caller)

    def last_eta(self, key: str) -> EtaEstimate | None:
        return self._last_eta.get(key)

    def forget_eta(self, key: str) -> None:
        self._sequencer.forget(key)
        self._last_eta.pop(key, None)

    async def geocode(
        self,
        address: str,
        *,
        country: str | None = None,
        caller: str | None = None,
    ) -> GeocodeResult | None:
        return await self._require_engine().geocode(address, country=country, caller=caller)

    async def reverse_geocode(self, coordinate: Coordinate, *, caller: str | None = None) -> GeocodeResult | None:
        return await self._require_engine().reverse_geocode(coordinate, caller=caller)
