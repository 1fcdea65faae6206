"""Traffic-aware ETA engine.

Produces best-effort, vehicle-adjusted arrival estimates for a
pickup -> dropoff pair. Provider outages, missing credentials, malformed
responses and rate-limit denials all end in ``None``: callers render
"Calculating..." or their last good value, they never handle an
exception from this module.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from chronofleet._api.directions import fetch_directions
from chronofleet._api.geocoding import geocode_forward, geocode_reverse
from chronofleet._api.legacy_directions import LegacyRoute, fetch_legacy_directions
from chronofleet._constants import is_usable_credential
from chronofleet._transport import Transport
from chronofleet.bearing import route_heading
from chronofleet.config import FleetConfig
from chronofleet.models._base import Coordinate
from chronofleet.models.geocode import GeocodeResult
from chronofleet.models.route import EtaEstimate, RouteResult, TrafficEstimate, VehicleType
from chronofleet.ratelimit import RateLimiter
from chronofleet.traffic import (
    calculate_eta_with_traffic,
    extract_route_traffic,
    format_eta,
    prefer_traffic_estimate,
)

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class EtaEngine:
    """Routes and estimates against the configured providers.

    Parameters
    ----------
    config : FleetConfig
        Supplies provider credentials, base URLs and rate-limit settings.
    transport : Transport
        HTTP transport used for every provider call.
    rate_limiter : RateLimiter or None
        When set, calls made with a ``caller`` identifier are counted
        against ``config.rate_limit`` per ``config.rate_limit_window``.
    """

    def __init__(
        self,
        config: FleetConfig,
        transport: Transport,
        *,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._rate_limiter = rate_limiter

    @property
    def has_primary_credential(self) -> bool:
        return is_usable_credential(self._config.mapbox_access_token)

    @property
    def has_legacy_credential(self) -> bool:
        return is_usable_credential(self._config.google_api_key)

    def _allowed(self, caller: str | None) -> bool:
        if self._rate_limiter is None or caller is None:
            return True
        result = self._rate_limiter.check(caller, self._config.rate_limit, self._config.rate_limit_window)
        if not result.success:
            _logger.warning("Provider call rate limited for %s until %d", caller, result.reset)
        return result.success

    async def _guarded(self, what: str, call: Callable[[], Awaitable[T]]) -> T | None:
        """Run a provider call, turning any failure into ``None``."""
        try:
            return await call()
        except Exception:
            _logger.warning("%s failed", what, exc_info=True)
            return None

    async def _primary_route(self, origin: Coordinate, destination: Coordinate) -> RouteResult | None:
        token = self._config.mapbox_access_token
        if not is_usable_credential(token):
            return None
        assert token is not None  # noqa: S101
        return await self._guarded(
            "Directions request",
            lambda: fetch_directions(self._transport, self._config.directions_base_url, origin, destination, token),
        )

    async def _legacy_route(self, origin: Coordinate, destination: Coordinate) -> LegacyRoute | None:
        key = self._config.google_api_key
        if not is_usable_credential(key):
            return None
        assert key is not None  # noqa: S101
        return await self._guarded(
            "Legacy directions request",
            lambda: fetch_legacy_directions(
                self._transport,
                self._config.legacy_directions_base_url,
                origin,
                destination,
                key,
            ),
        )

    async def fetch_route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        *,
        caller: str | None = None,
    ) -> RouteResult | None:
        """Fetch a traffic-aware route, or ``None``."""
        if not self.has_primary_credential:
            _logger.warning("Routing access token not configured")
            return None
        if not self._allowed(caller):
            return None
        return await self._primary_route(origin, destination)

    async def estimate(
        self,
        origin: Coordinate,
        destination: Coordinate,
        vehicle_type: VehicleType = VehicleType.VEHICULE,
        *,
        caller: str | None = None,
    ) -> EtaEstimate | None:
        """Estimate the arrival time from *origin* to *destination*.

        The traffic-aware route is always tried first. The legacy
        provider is consulted only when that produced no usable duration.
        A rate-limited *caller* is charged once per estimate, even when
        both providers are called.
        """
        if not self.has_primary_credential and not self.has_legacy_credential:
            _logger.warning("No routing credential configured; ETA unavailable")
            return None
        if not self._allowed(caller):
            return None

        route = await self._primary_route(origin, destination)
        route_traffic: TrafficEstimate | None = extract_route_traffic(route) if route is not None else None

        legacy: LegacyRoute | None = None
        if route_traffic is None or route_traffic.is_empty:
            legacy = await self._legacy_route(origin, destination)
            if legacy is not None:
                _logger.debug("Using legacy directions for ETA")

        chosen = prefer_traffic_estimate(route_traffic, legacy.traffic if legacy is not None else None)
        if chosen is None:
            return None
        chosen_route = route if chosen is route_traffic else (legacy.route if legacy is not None else None)

        seconds = calculate_eta_with_traffic(chosen, vehicle_type)
        if seconds is None:
            return None

        return EtaEstimate(
            seconds=seconds,
            text=format_eta(seconds),
            vehicle_type=vehicle_type,
            traffic=chosen,
            route=chosen_route,
            heading=route_heading(chosen_route.coordinates) if chosen_route is not None else None,
        )

    async def geocode(
        self,
        address: str,
        *,
        country: str | None = None,
        caller: str | None = None,
    ) -> GeocodeResult | None:
        """Resolve an address to coordinates, or ``None``."""
        token = self._config.mapbox_access_token
        if not is_usable_credential(token) or not address.strip():
            return None
        if not self._allowed(caller):
            return None
        assert token is not None  # noqa: S101
        return await self._guarded(
            "Forward geocoding",
            lambda: geocode_forward(self._transport, self._config.geocoding_base_url, address, token, country=country),
        )

    async def reverse_geocode(self, coordinate: Coordinate, *, caller: str | None = None) -> GeocodeResult | None:
        """Resolve coordinates to an address, or ``None``."""
        token = self._config.mapbox_access_token
        if not is_usable_credential(token):
            return None
        if not self._allowed(caller):
            return None
        assert token is not None  # noqa: S101
        return await self._guarded(
            "Reverse geocoding",
            lambda: geocode_reverse(self._transport, self._config.geocoding_base_url, coordinate, token),
        )


class EtaRequestSequencer:
    """Per-key tickets for "last request wins" ETA refreshes.

    A caller takes a ticket before awaiting an estimate and applies the
    result only if its ticket is still the latest for that key.
    """

    def __init__(self) -> None:
        self._latest: dict[str, int] = {}

    def begin(self, key: str) -> int:
        ticket = self._latest.get(key, 0) + 1
        self._latest[key] = ticket
        return ticket

    def is_latest(self, key: str, ticket: int) -> bool:
        return self._latest.get(key) == ticket

    def forget(self, key: str) -> None:
        self._latest.pop(key, None)
