"""Named-channel publish/subscribe.

Each channel holds an ordered list of handlers. ``publish`` calls them
synchronously, in subscription order, inside the publishing call. A
handler that raises is logged and skipped; later handlers still run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

Handler = Callable[[Any], None]
Unsubscribe = Callable[[], None]

_logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def subscribe(self, channel: str, handler: Handler) -> Unsubscribe:
        """Register *handler* on *channel* and return its unsubscribe function.

        Subscribing the same handler twice registers it twice; each
        returned function removes exactly one registration.
        """
        handlers = self._handlers.setdefault(channel, [])
        handlers.append(handler)
        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            removed = True
            current = self._handlers.get(channel)
            if current is None:
                return
            for index, candidate in enumerate(current):
                if candidate is handler:
                    del current[index]
                    break
            if not current:
                self._handlers.pop(channel, None)

        return unsubscribe

    def publish(self, channel: str, payload: Any = None) -> None:
        # Snapshot so handlers may unsubscribe while being called.
        for handler in list(self._handlers.get(channel, ())):
            try:
                handler(payload)
            except Exception:
                _logger.exception("Handler for %s raised", channel)

    def handler_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, ()))
