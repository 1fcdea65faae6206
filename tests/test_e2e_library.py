from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest

from chronofleet._mqtt import TransportListener
from chronofleet.client import FleetClient
from chronofleet.config import FleetConfig
from chronofleet.exceptions import ChronoError
from chronofleet.models import Coordinate, DriverState, OrderStatusUpdate, VehicleType

PICKUP = Coordinate(lat=14.6937, lng=-17.4441)
DROPOFF = Coordinate(lat=14.7167, lng=-17.4677)


@dataclass
class FakeDispatchServer:
    """Event transport that accepts every connect and records client events."""

    url: str = "mqtt://dispatch.test:1883"
    listener: TransportListener | None = None
    sent: list[tuple[str, Any]] = field(default_factory=list)
    closed: int = 0

    async def open(self, listener: TransportListener) -> None:
        self.listener = listener
        asyncio.get_running_loop().call_soon(listener.transport_connected)

    async def close(self) -> None:
        self.closed += 1

    async def send(self, event: str, payload: Any) -> None:
        self.sent.append((event, payload))

    def push(self, event: str, data: Any) -> None:
        assert self.listener is not None
        self.listener.transport_message(event, data)


@dataclass
class FakeRoutingProvider:
    duration: float = 600.0
    delays: list[float] = field(default_factory=list)
    calls: int = 0

    async def get_json(self, url: str, params: Mapping[str, str]) -> Any:
        self.calls += 1
        if self.delays:
            await asyncio.sleep(self.delays.pop(0))
        return {
            "code": "Ok",
            "routes": [
                {
                    "geometry": {"coordinates": [[-17.4441, 14.6937], [-17.4677, 14.7167]]},
                    "legs": [{"duration": self.duration, "duration_typical": 500.0, "distance": 3000.0}],
                }
            ],
        }


def _client(server: FakeDispatchServer, provider: FakeRoutingProvider, **config: Any) -> FleetClient:
    values: dict[str, Any] = {"mapbox_access_token": "pk.test"}
    values.update(config)
    return FleetClient(FleetConfig(**values), event_transport=server, http_transport=provider)


@pytest.mark.asyncio
async def test_connect_track_and_estimate() -> None:
    server = FakeDispatchServer()
    provider = FakeRoutingProvider()
    changes: list[DriverState] = []

    async with _client(server, provider, identity="admin-1") as client:
        client.on_driver_change(changes.append)
        await client.connect()
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert client.is_connected()
        assert server.sent == [("admin-connect", "admin-1")]

        server.push(
            "initial-drivers",
            [
                {
                    "userId": "d1",
                    "is_online": True,
                    "is_available": True,
                    "current_latitude": 14.6937,
                    "current_longitude": -17.4441,
                    "updated_at": "2026-01-01T12:00:00Z",
                }
            ],
        )
        server.push(
            "driver:position:update",
            {"userId": "d1", "current_latitude": 14.70, "current_longitude": -17.4441, "updated_at": "2026-01-01T12:00:05Z"},
        )
        server.push(
            "driver:position:update",
            {"userId": "d1", "current_latitude": 10.0, "current_longitude": 10.0, "updated_at": "2026-01-01T11:59:00Z"},
        )

        driver = client.get_driver("d1")
        assert driver is not None and driver.sample is not None
        assert driver.sample.latitude == 14.70
        assert driver.heading == pytest.approx(0.0, abs=1e-6)
        assert [d.entity_id for d in client.drivers(online_only=True)] == ["d1"]
        assert changes

        estimate = await client.refresh_driver_eta("d1", DROPOFF, VehicleType.MOTO)
        assert estimate is not None
        assert estimate.seconds == 510
        assert estimate.text == "9 min"
        assert client.last_eta("d1") == estimate

    assert server.closed >= 1


@pytest.mark.asyncio
async def test_order_status_updates_are_parsed() -> None:
    server = FakeDispatchServer()
    received: list[OrderStatusUpdate] = []

    async with _client(server, FakeRoutingProvider()) as client:
        client.on_order_status(received.append)
        await client.connect()
        await asyncio.sleep(0)
        server.push("order:status:update", {"order": {"id": "ord-9", "status": "delivered"}})
        server.push("order:status:update", "not an object")

    assert [(u.order_id, u.status) for u in received] == [("ord-9", "delivered")]


@pytest.mark.asyncio
async def test_refresh_eta_keeps_only_latest_result() -> None:
    provider = FakeRoutingProvider(delays=[0.05, 0.0])

    async with _client(FakeDispatchServer(), provider) as client:
        slow = asyncio.create_task(client.refresh_eta("order-1", PICKUP, DROPOFF))
        await asyncio.sleep(0)
        fast = asyncio.create_task(client.refresh_eta("order-1", PICKUP, DROPOFF, VehicleType.CARGO))
        slow_result, fast_result = await asyncio.gather(slow, fast)

        assert slow_result is None
        assert fast_result is not None
        assert client.last_eta("order-1") == fast_result
        assert provider.calls == 2


@pytest.mark.asyncio
async def test_no_identity_means_no_join_event() -> None:
    server = FakeDispatchServer()
    async with _client(server, FakeRoutingProvider()) as client:
        await client.connect()
        await asyncio.sleep(0)
        assert client.is_connected()
    assert server.sent == []


@pytest.mark.asyncio
async def test_methods_require_context_manager() -> None:
    client = _client(FakeDispatchServer(), FakeRoutingProvider())
    with pytest.raises(ChronoError):
        await client.connect()
    with pytest.raises(ChronoError):
        await client.estimate_eta(PICKUP, DROPOFF)


@dataclass
class StalledDispatchServer(FakeDispatchServer):
    """Accepts the connect but never acknowledges client events."""

    send_cancelled: bool = False

    async def send(self, event: str, payload: Any) -> None:
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.send_cancelled = True
            raise


@pytest.mark.asyncio
async def test_exit_waits_for_cancelled_join() -> None:
    server = StalledDispatchServer()
    async with _client(server, FakeRoutingProvider(), identity="admin-1") as client:
        await client.connect()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert client.is_connected()

    assert server.send_cancelled
