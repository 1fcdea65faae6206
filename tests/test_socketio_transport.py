from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from chronofleet._socketio import SocketIoEventTransport
from chronofleet.client import FleetClient
from chronofleet.config import FleetConfig
from chronofleet.exceptions import ChronoConfigError, ChronoConnectionError

SOCKET_URL = "http://dispatch.test:4000"


class _Listener:
    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def transport_connected(self) -> None:
        self.calls.append(("connected", ()))

    def transport_disconnected(self, reason: str) -> None:
        self.calls.append(("disconnected", (reason,)))

    def transport_failed(self, message: str) -> None:
        self.calls.append(("failed", (message,)))

    def transport_message(self, event: str, payload: Any) -> None:
        self.calls.append(("message", (event, payload)))


class FakeAsyncClient:
    """Records what the transport asks of ``socketio.AsyncClient``."""

    refuse = False
    instances: list[FakeAsyncClient] = []

    def __init__(self, **options: Any) -> None:
        self.options = options
        self.handlers: dict[str, Callable[..., Any]] = {}
        self.connected = False
        self.connect_args: tuple[str, dict[str, Any]] | None = None
        self.emitted: list[tuple[str, Any]] = []
        self.shut_down = False
        FakeAsyncClient.instances.append(self)

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, **options: Any) -> None:
        self.connect_args = (url, options)
        if self.refuse:
            self.handlers["connect_error"]("Connection refused")
            raise SocketIOConnectionError("Connection refused")
        self.connected = True
        self.handlers["connect"]()

    async def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))

    async def shutdown(self) -> None:
        self.shut_down = True
        self.connected = False


@pytest.fixture
def fake_sio(monkeypatch: pytest.MonkeyPatch) -> type[FakeAsyncClient]:
    FakeAsyncClient.instances = []
    FakeAsyncClient.refuse = False
    monkeypatch.setattr(socketio, "AsyncClient", FakeAsyncClient)
    return FakeAsyncClient


def _transport(**overrides: Any) -> SocketIoEventTransport:
    values: dict[str, Any] = {"event_transport": "socketio", "socket_url": SOCKET_URL}
    values.update(overrides)
    return SocketIoEventTransport(FleetConfig(**values))


def test_socket_url_is_required() -> None:
    with pytest.raises(ChronoConfigError):
        SocketIoEventTransport(FleetConfig(event_transport="socketio"))


@pytest.mark.asyncio
async def test_open_connects_and_relays_events(fake_sio: type[FakeAsyncClient]) -> None:
    transport = _transport(connect_timeout=5.0)
    listener = _Listener()

    await transport.open(listener)
    (client,) = fake_sio.instances
    assert client.connect_args == (
        SOCKET_URL,
        {"transports": ["websocket", "polling"], "socketio_path": "socket.io", "wait_timeout": 5.0},
    )
    assert client.options["reconnection_attempts"] == 0

    client.handlers["*"]("admin:initial-drivers", [{"userId": "d1"}])
    client.handlers["*"]("driver:offline")
    client.handlers["disconnect"]("transport close")
    client.handlers["connect_error"]("xhr poll error")

    assert listener.calls == [
        ("connected", ()),
        ("message", ("initial-drivers", [{"userId": "d1"}])),
        ("message", ("driver:offline", None)),
        ("disconnected", ("transport close",)),
        ("failed", ("Could not reach server: xhr poll error",)),
    ]


@pytest.mark.asyncio
async def test_refused_open_raises_once(fake_sio: type[FakeAsyncClient]) -> None:
    fake_sio.refuse = True
    transport = _transport()
    listener = _Listener()

    with pytest.raises(ChronoConnectionError):
        await transport.open(listener)

    assert listener.calls == []
    assert not transport.is_running


@pytest.mark.asyncio
async def test_send_and_close(fake_sio: type[FakeAsyncClient]) -> None:
    transport = _transport()
    with pytest.raises(ChronoConnectionError):
        await transport.send("admin-connect", "admin-1")

    await transport.open(_Listener())
    await transport.send("admin-connect", "admin-1")
    (client,) = fake_sio.instances
    assert client.emitted == [("admin-connect", "admin-1")]

    await transport.close()
    assert client.shut_down
    assert not transport.is_running
    with pytest.raises(ChronoConnectionError):
        await transport.send("admin-connect", "admin-1")


@pytest.mark.asyncio
async def test_client_speaks_socketio_when_configured(fake_sio: type[FakeAsyncClient]) -> None:
    config = FleetConfig(event_transport="socketio", socket_url=SOCKET_URL, identity="admin-1")
    async with FleetClient(config, http_transport=object()) as client:  # type: ignore[arg-type]
        await client.connect()
        assert client.is_connected()
    (sio,) = fake_sio.instances
    assert sio.connect_args is not None and sio.connect_args[0] == SOCKET_URL
    assert sio.shut_down


@pytest.mark.asyncio
async def test_unknown_event_transport_is_rejected() -> None:
    client = FleetClient(FleetConfig(event_transport="carrier-pigeon"))
    with pytest.raises(ChronoConfigError):
        await client.__aenter__()
