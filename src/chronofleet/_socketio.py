"""Event-stream transport over Socket.IO.

The dispatch server's native protocol: named Socket.IO events carrying one
JSON argument each. python-socketio's :class:`socketio.AsyncClient` runs
on the caller's event loop, so listener callbacks are invoked directly.
The client library retries dropped connections on its own; every failed
retry surfaces as ``connect_error`` and is reported to the listener.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError
from socketio.exceptions import SocketIOError

from chronofleet._constants import EVENT_ALIASES
from chronofleet._mqtt import TransportListener
from chronofleet._redact import redact_for_log
from chronofleet.config import FleetConfig
from chronofleet.exceptions import ChronoConfigError, ChronoConnectionError

_RECONNECT_MIN_DELAY = 2
_RECONNECT_MAX_DELAY = 10
_TRANSPORTS = ["websocket", "polling"]


class SocketIoEventTransport:
    """Socket.IO transport backed by :class:`socketio.AsyncClient`."""

    def __init__(self, config: FleetConfig, *, logger: logging.Logger | None = None) -> None:
        if not config.socket_url:
            raise ChronoConfigError("socket_url is required for the socketio event transport")
        self._config = config
        self._logger = logger or logging.getLogger(__name__)
        self._client: socketio.AsyncClient | None = None
        self._listener: TransportListener | None = None
        self._opening = False
        self._lifecycle_lock = asyncio.Lock()

    @property
    def url(self) -> str:
        return self._config.socket_url or ""

    @property
    def is_running(self) -> bool:
        return self._client is not None

    def _build_client(self) -> socketio.AsyncClient:
        client = socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=0,
            reconnection_delay=_RECONNECT_MIN_DELAY,
            reconnection_delay_max=_RECONNECT_MAX_DELAY,
            logger=self._logger,
            engineio_logger=False,
        )
        client.on("connect", self._on_connect)
        client.on("disconnect", self._on_disconnect)
        client.on("connect_error", self._on_connect_error)
        client.on("*", self._on_event)
        return client

    # ------------------------------------------------------------------
    # Socket.IO handlers
    # ------------------------------------------------------------------

    def _on_connect(self) -> None:
        self._logger.debug("Socket.IO connected url=%s", self.url)
        if self._listener is not None:
            self._listener.transport_connected()

    def _on_disconnect(self, *args: Any) -> None:
        reason = str(args[0]) if args else "transport close"
        self._logger.debug("Socket.IO disconnected: %s", reason)
        if self._listener is not None:
            self._listener.transport_disconnected(reason)

    def _on_connect_error(self, data: Any = None) -> None:
        # The initial attempt reports its failure by raising from open().
        if self._opening or self._listener is None:
            return
        self._logger.debug("Socket.IO reconnect attempt failed: %s", data)
        self._listener.transport_failed(f"Could not reach server: {data}")

    def _on_event(self, event: str, *args: Any) -> None:
        data = args[0] if args else None
        name = EVENT_ALIASES.get(event, event)
        self._logger.debug("Socket.IO event=%s data=%s", name, redact_for_log(data))
        if self._listener is not None:
            self._listener.transport_message(name, data)

    # ------------------------------------------------------------------
    # EventTransport
    # ------------------------------------------------------------------

    async def open(self, listener: TransportListener) -> None:
        async with self._lifecycle_lock:
            await self._close_unlocked()
            self._listener = listener
            client = self._build_client()
            self._client = client
            options: dict[str, Any] = {"transports": _TRANSPORTS, "socketio_path": self._config.socket_path}
            if self._config.connect_timeout > 0:
                options["wait_timeout"] = self._config.connect_timeout
            self._opening = True
            try:
                await client.connect(self.url, **options)
            except SocketIOConnectionError as exc:
                self._client = None
                raise ChronoConnectionError(f"Could not connect to {self.url}: {exc}", url=self.url) from exc
            finally:
                self._opening = False

    async def close(self) -> None:
        """Disconnect and stop retrying, waiting for an in-flight ``open`` first."""
        async with self._lifecycle_lock:
            await self._close_unlocked()

    async def _close_unlocked(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        await client.shutdown()
        self._logger.debug("Socket.IO client shut down")

    async def send(self, event: str, payload: Any) -> None:
        client = self._client
        if client is None or not client.connected:
            raise ChronoConnectionError("Event stream is not open", url=self.url)
        self._logger.debug("Socket.IO emit event=%s data=%s", event, redact_for_log(payload))
        try:
            await client.emit(event, payload)
        except SocketIOError as exc:
            raise ChronoConnectionError(f"Emit of {event} failed: {exc}", url=self.url) from exc
