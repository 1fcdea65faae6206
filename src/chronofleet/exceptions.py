"""Custom exception hierarchy for chronofleet."""

from __future__ import annotations


class ChronoError(Exception):
    """Base exception for all chronofleet errors."""


class ChronoConfigError(ChronoError):
    """Invalid or missing configuration."""


class ChronoTransportError(ChronoError):
    """HTTP-level failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class ChronoProviderError(ChronoError):
    """Routing or geocoding provider returned an unusable response."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(message)


class ChronoConnectionError(ChronoError):
    """Event-stream transport could not be established.

    Raised by transports from ``open()``.  The connection supervisor
    converts it into a ``connection-failed`` event; it never reaches
    callers of :meth:`ConnectionSupervisor.connect`.
    """

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)
