"""Connection lifecycle models."""

from __future__ import annotations

from enum import StrEnum

from chronofleet.models._base import ChronoBaseModel


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class ConnectionFailure(ChronoBaseModel):
    """Payload of the ``connection-failed`` event."""

    message: str
    url: str = ""
