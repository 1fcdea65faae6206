"""Legacy directions endpoint, used as fallback provider.

Endpoint:
  - GET {base}/json?origin=lat,lng&destination=lat,lng&mode=driving
    &departure_time=<now>&traffic_model=best_guess

Legs report ``{duration: {value}, duration_in_traffic: {value}}``;
geometry is an encoded polyline (latitude-first, 1e-5 precision).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import polyline

from chronofleet._transport import Transport
from chronofleet.exceptions import ChronoProviderError
from chronofleet.ingestion.normalize import safe_float
from chronofleet.models._base import Coordinate
from chronofleet.models.route import RouteResult, TrafficEstimate
from chronofleet.traffic import extract_legacy_traffic

_logger = logging.getLogger(__name__)

_ENDPOINT = "legacy-directions"
_ENDPOINT_EPSILON = 0.0001


@dataclass(frozen=True)
class LegacyRoute:
    """Route geometry plus the leg durations it came with."""

    route: RouteResult
    traffic: TrafficEstimate


def decode_polyline(encoded: str) -> list[Coordinate]:
    """Decode an encoded polyline string into coordinates."""
    try:
        pairs = polyline.decode(encoded)
    except IndexError as exc:
        raise ValueError("truncated polyline") from exc
    return [Coordinate(lat=lat, lng=lng) for lat, lng in pairs]


def _almost_equal(a: Coordinate, b: Coordinate) -> bool:
    return abs(a.lat - b.lat) < _ENDPOINT_EPSILON and abs(a.lng - b.lng) < _ENDPOINT_EPSILON


def _anchor(points: list[Coordinate], origin: Coordinate, destination: Coordinate) -> list[Coordinate]:
    """Make the drawn line start at the pickup and end at the dropoff."""
    if not points:
        return points
    if not _almost_equal(points[0], origin):
        points = [origin, *points]
    if not _almost_equal(points[-1], destination):
        points = [*points, destination]
    return points


def parse_legacy_response(data: Any, origin: Coordinate, destination: Coordinate) -> LegacyRoute | None:
    """Parse a legacy directions body; ``None`` when no route was found."""
    if not isinstance(data, dict):
        raise ChronoProviderError("Legacy directions response is not an object", endpoint=_ENDPOINT)

    routes = data.get("routes")
    if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
        _logger.debug("Legacy directions returned no route status=%s", data.get("status"))
        return None

    route = routes[0]
    legs = route.get("legs")
    leg: dict[str, Any] = legs[0] if isinstance(legs, list) and legs and isinstance(legs[0], dict) else {}
    traffic = extract_legacy_traffic(leg)

    points: list[Coordinate] = []
    overview = route.get("overview_polyline")
    encoded = overview.get("points") if isinstance(overview, dict) else None
    if isinstance(encoded, str) and encoded:
        try:
            points = _anchor(decode_polyline(encoded), origin, destination)
        except ValueError as exc:
            raise ChronoProviderError(f"Legacy polyline is malformed: {exc}", endpoint=_ENDPOINT) from exc

    distance_entry = leg.get("distance")
    distance = safe_float(distance_entry.get("value")) if isinstance(distance_entry, dict) else None

    live = traffic.duration_in_traffic if traffic.duration_in_traffic is not None else traffic.duration_base
    return LegacyRoute(
        route=RouteResult(
            coordinates=tuple(points),
            duration_seconds=live or 0.0,
            duration_typical_seconds=traffic.duration_base,
            distance_meters=distance or 0.0,
        ),
        traffic=traffic,
    )


async def fetch_legacy_directions(
    transport: Transport,
    base_url: str,
    origin: Coordinate,
    destination: Coordinate,
    api_key: str,
    *,
    departure_time: int | None = None,
) -> LegacyRoute | None:
    """Request a driving route with a best-guess traffic model."""
    if departure_time is None:
        departure_time = int(time.time())
    params = {
        "origin": origin.as_lat_lng(),
        "destination": destination.as_lat_lng(),
        "mode": "driving",
        "departure_time": str(departure_time),
        "traffic_model": "best_guess",
        "key": api_key,
    }
    data = await transport.get_json(f"{base_url.rstrip('/')}/json", params)
    return parse_legacy_response(data, origin, destination)
