"""Event-stream transport over MQTT.

The dispatch server publishes JSON envelopes ``{"event": ..., "data": ...}``
on ``<topic_prefix>/events``; clients publish theirs on
``<topic_prefix>/client``. paho-mqtt runs its network loop in a thread and
every callback is handed to the asyncio loop with
``call_soon_threadsafe``, so listeners only ever run on the loop thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt

from chronofleet._constants import EVENT_ALIASES
from chronofleet._redact import redact_for_log
from chronofleet.config import FleetConfig
from chronofleet.exceptions import ChronoConnectionError, ChronoError

_RECONNECT_MIN_DELAY = 2
_RECONNECT_MAX_DELAY = 10


class TransportListener(Protocol):
    """Callbacks a transport delivers on the event loop thread."""

    def transport_connected(self) -> None:
        ...

    def transport_disconnected(self, reason: str) -> None:
        ...

    def transport_failed(self, message: str) -> None:
        ...

    def transport_message(self, event: str, payload: Any) -> None:
        ...


class EventTransport(Protocol):
    """Structural interface of an event-stream transport.

    ``open`` starts a connection attempt and returns without waiting for
    the outcome; success and failure arrive through the listener. It may
    raise :class:`ChronoConnectionError` when the attempt cannot even
    start (DNS failure, refused socket).
    """

    @property
    def url(self) -> str:
        ...

    async def open(self, listener: TransportListener) -> None:
        ...

    async def close(self) -> None:
        ...

    async def send(self, event: str, payload: Any) -> None:
        ...


@dataclass(frozen=True)
class StreamEvent:
    """Decoded event envelope."""

    event: str
    data: Any


def decode_event_envelope(payload: bytes) -> StreamEvent:
    """Decode an MQTT payload into a :class:`StreamEvent`."""
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ChronoError("Event payload is not a JSON object")
    name = parsed.get("event")
    if not isinstance(name, str) or not name.strip():
        raise ChronoError("Event payload has no event name")
    name = name.strip()
    return StreamEvent(event=EVENT_ALIASES.get(name, name), data=parsed.get("data"))


def encode_event_envelope(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": data}, separators=(",", ":"), default=str)


class MqttEventTransport:
    """Threaded paho-mqtt transport that reports onto an asyncio loop."""

    def __init__(self, config: FleetConfig, *, logger: logging.Logger | None = None) -> None:
        self._config = config
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._listener: TransportListener | None = None
        self._running = False
        self._lifecycle_lock = asyncio.Lock()
        prefix = config.topic_prefix.rstrip("/")
        self._events_topic = f"{prefix}/events"
        self._client_topic = f"{prefix}/client"

    @property
    def url(self) -> str:
        return self._config.broker_url

    @property
    def is_running(self) -> bool:
        """Whether the network loop is active."""
        return self._running

    def _dispatch(self, method: str, *args: Any) -> None:
        """Call a listener method on the event loop thread."""
        loop = self._loop
        listener = self._listener
        if loop is None or listener is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(getattr(listener, method), *args)

    def _build_client(self) -> mqtt.Client:
        client_id = self._config.client_id or f"chronofleet_{secrets.token_hex(6)}"
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if self._config.broker_username:
            client.username_pw_set(self._config.broker_username, self._config.broker_password)
        if self._config.broker_tls:
            client.tls_set()
        client.reconnect_delay_set(min_delay=_RECONNECT_MIN_DELAY, max_delay=_RECONNECT_MAX_DELAY)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect refused: %s", reason_code)
                self._dispatch("transport_failed", f"Broker refused connection: {reason_code}")
                return
            self._logger.debug("MQTT connected, subscribing topic=%s", self._events_topic)
            c.subscribe(self._events_topic, qos=1)
            self._dispatch("transport_connected")

        def on_connect_fail(_c: mqtt.Client, _userdata: Any) -> None:
            self._logger.debug("MQTT reconnect attempt failed")
            self._dispatch("transport_failed", "Could not reach broker")

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                event = decode_event_envelope(msg.payload)
            except (ChronoError, UnicodeDecodeError, ValueError):
                self._logger.debug("MQTT payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            self._logger.debug("MQTT event=%s data=%s", event.event, redact_for_log(event.data))
            self._dispatch("transport_message", event.event, event.data)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)
                self._dispatch("transport_disconnected", str(reason_code))

        client.on_connect = on_connect
        client.on_connect_fail = on_connect_fail
        client.on_message = on_message
        client.on_disconnect = on_disconnect
        return client

    def _start(self) -> None:
        client = self._build_client()
        self._logger.debug(
            "MQTT start requested host=%s port=%s topic=%s",
            self._config.broker_host,
            self._config.broker_port,
            self._events_topic,
        )
        try:
            client.connect(self._config.broker_host, self._config.broker_port, keepalive=self._config.keepalive)
        except (OSError, ValueError) as exc:
            raise ChronoConnectionError(f"Could not connect to {self.url}: {exc}", url=self.url) from exc
        client.loop_start()
        self._client = client
        self._running = True

    def _stop(self) -> None:
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        if client is None:
            return
        try:
            if was_running:
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    async def open(self, listener: TransportListener) -> None:
        loop = asyncio.get_running_loop()
        async with self._lifecycle_lock:
            await self._close_unlocked()
            self._loop = loop
            self._listener = listener
            await loop.run_in_executor(None, self._start)

    async def close(self) -> None:
        """Stop the network loop, waiting for an in-flight ``open`` first."""
        async with self._lifecycle_lock:
            await self._close_unlocked()

    async def _close_unlocked(self) -> None:
        if self._client is None:
            return
        loop = self._loop or asyncio.get_running_loop()
        await loop.run_in_executor(None, self._stop)

    async def send(self, event: str, payload: Any) -> None:
        client = self._client
        if client is None or not self._running:
            raise ChronoConnectionError("Event stream is not open", url=self.url)
        self._logger.debug("MQTT publish event=%s data=%s", event, redact_for_log(payload))
        info = client.publish(self._client_topic, encode_event_envelope(event, payload), qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ChronoConnectionError(f"Publish of {event} failed rc={info.rc}", url=self.url)
