"""Connection supervisor for the dispatch event stream.

One supervisor owns one logical session over an injected
:class:`EventTransport`. It is the only writer of
:class:`ConnectionState`::

    disconnected --connect()--> connecting --success--> connected
    connecting   --failure----> failed     --connect()--> connecting
    connected    --drop-------> disconnected   (transport may reconnect)
    connected    --failure----> disconnected   (guard reset)

Failures never propagate out of :meth:`connect`; they are published as
``connection-failed`` with a ``{message, url}`` payload. Retrying after a
failed attempt is the caller's decision.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from chronofleet._constants import EVENT_CONNECTED, EVENT_CONNECTION_FAILED, EVENT_DISCONNECTED
from chronofleet._mqtt import EventTransport
from chronofleet.events import EventBus, Handler, Unsubscribe
from chronofleet.exceptions import ChronoConnectionError
from chronofleet.models.connection import ConnectionFailure, ConnectionState

_logger = logging.getLogger(__name__)

_LIFECYCLE_EVENTS = frozenset({EVENT_CONNECTED, EVENT_DISCONNECTED, EVENT_CONNECTION_FAILED})


class ConnectionSupervisor:
    """Maintains exactly one event-stream session and fans out its events.

    Parameters
    ----------
    transport : EventTransport
        The stream transport. Its listener callbacks must arrive on the
        event loop thread.
    connect_timeout : float
        Seconds a connect attempt may stay pending before it fails.
        ``0`` disables the timeout.
    max_reconnect_attempts : int
        Consecutive failed background reconnects tolerated after a drop.
    """

    def __init__(
        self,
        transport: EventTransport,
        *,
        connect_timeout: float = 20.0,
        max_reconnect_attempts: int = 5,
    ) -> None:
        self._transport = transport
        self._connect_timeout = connect_timeout
        self._max_reconnect_attempts = max_reconnect_attempts
        self._bus = EventBus()
        self._state = ConnectionState.DISCONNECTED
        self._attempt_in_progress = False
        self._session_open = False
        self._reconnect_failures = 0
        self._timeout_handle: asyncio.TimerHandle | None = None
        self._close_tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def url(self) -> str:
        return self._transport.url

    def is_connected(self) -> bool:
        """Whether the last transport callback left the session connected."""
        return self._state == ConnectionState.CONNECTED

    def on(self, event: str, handler: Handler) -> Unsubscribe:
        """Subscribe to a lifecycle or domain event.

        Handlers run synchronously, in subscription order. Call the
        returned function on teardown.
        """
        return self._bus.subscribe(event, handler)

    async def connect(self) -> None:
        """Start a connection attempt unless one is pending or established."""
        if self._attempt_in_progress or self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            _logger.debug("connect() ignored, state=%s", self._state)
            return

        self._attempt_in_progress = True
        self._session_open = True
        self._reconnect_failures = 0
        self._set_state(ConnectionState.CONNECTING)
        self._arm_timeout()

        # A close scheduled by the previous session must not land after open().
        if self._close_tasks:
            await asyncio.gather(*self._close_tasks, return_exceptions=True)

        try:
            await self._transport.open(self)
        except ChronoConnectionError as exc:
            self._fail_attempt(str(exc))
        except Exception as exc:
            _logger.debug("Transport open raised", exc_info=True)
            self._fail_attempt(f"Transport error: {exc}")

    async def disconnect(self) -> None:
        """Close the session. Subscriptions are kept."""
        self._session_open = False
        self._attempt_in_progress = False
        self._cancel_timeout()
        try:
            await self._transport.close()
        finally:
            if self._state != ConnectionState.DISCONNECTED:
                self._set_state(ConnectionState.DISCONNECTED)
                self._bus.publish(EVENT_DISCONNECTED, {"reason": "client disconnect"})

    async def emit_to_server(self, event: str, data: Any = None) -> bool:
        """Send a client event. Returns ``False`` when it could not be sent."""
        if not self.is_connected():
            _logger.warning("Dropping %s: event stream not connected", event)
            return False
        try:
            await self._transport.send(event, data)
        except ChronoConnectionError:
            _logger.warning("Sending %s failed", event, exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # TransportListener
    # ------------------------------------------------------------------

    def transport_connected(self) -> None:
        if not self._session_open:
            return
        self._cancel_timeout()
        self._attempt_in_progress = False
        self._reconnect_failures = 0
        if self._state == ConnectionState.CONNECTED:
            return
        self._set_state(ConnectionState.CONNECTED)
        self._bus.publish(EVENT_CONNECTED, None)

    def transport_disconnected(self, reason: str) -> None:
        if not self._session_open:
            return
        if self._state == ConnectionState.CONNECTING:
            self._fail_attempt(f"Disconnected while connecting: {reason}")
            return
        if self._state == ConnectionState.CONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)
            self._bus.publish(EVENT_DISCONNECTED, {"reason": reason})

    def transport_failed(self, message: str) -> None:
        if not self._session_open:
            return
        if self._state == ConnectionState.CONNECTING:
            self._fail_attempt(message)
            return
        if self._state == ConnectionState.CONNECTED:
            self._attempt_in_progress = False
            self._set_state(ConnectionState.DISCONNECTED)
            self._report_failure(message)
            self._end_session()
            return

        # Dropped earlier; the transport is retrying in the background.
        self._reconnect_failures += 1
        _logger.debug(
            "Reconnect attempt %d/%d failed: %s",
            self._reconnect_failures,
            self._max_reconnect_attempts,
            message,
        )
        if self._reconnect_failures >= self._max_reconnect_attempts:
            _logger.warning("Giving up on %s after %d reconnect attempts", self.url, self._reconnect_failures)
            self._report_failure(message)
            self._end_session()

    def transport_message(self, event: str, payload: Any) -> None:
        if not self._session_open:
            return
        if event in _LIFECYCLE_EVENTS:
            _logger.debug("Ignoring server event with reserved name %s", event)
            return
        self._bus.publish(event, payload)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            _logger.debug("Connection state %s -> %s", self._state, state)
        self._state = state

    def _report_failure(self, message: str) -> None:
        failure = ConnectionFailure(message=message, url=self.url)
        self._bus.publish(EVENT_CONNECTION_FAILED, failure.model_dump())

    def _fail_attempt(self, message: str) -> None:
        _logger.warning("Connection to %s failed: %s", self.url, message)
        self._cancel_timeout()
        self._attempt_in_progress = False
        self._set_state(ConnectionState.FAILED)
        self._report_failure(message)
        self._end_session()

    def _end_session(self) -> None:
        """Stop the transport so it does not keep retrying on its own."""
        self._session_open = False
        self._cancel_timeout()
        task = asyncio.get_running_loop().create_task(self._transport.close())
        self._close_tasks.add(task)
        task.add_done_callback(self._close_done)

    def _close_done(self, task: asyncio.Task[None]) -> None:
        self._close_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            _logger.debug("Transport close failed", exc_info=task.exception())

    def _arm_timeout(self) -> None:
        self._cancel_timeout()
        if self._connect_timeout > 0:
            loop = asyncio.get_running_loop()
            self._timeout_handle = loop.call_later(self._connect_timeout, self._on_connect_timeout)

    def _cancel_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def _on_connect_timeout(self) -> None:
        self._timeout_handle = None
        if self._state == ConnectionState.CONNECTING:
            self._fail_attempt(f"Timed out after {self._connect_timeout:g}s")
