"""Traffic-aware directions endpoint.

Endpoint:
  - GET {base}/driving-traffic/{lng1},{lat1};{lng2},{lat2}?geometries=geojson

The provider speaks longitude-first; this module is the boundary where
coordinates become :class:`Coordinate` and nothing past it sees
``[lng, lat]`` pairs.
"""

from __future__ import annotations

import logging
from typing import Any

from chronofleet._constants import DIRECTIONS_PROFILE
from chronofleet._transport import Transport
from chronofleet.exceptions import ChronoProviderError
from chronofleet.ingestion.normalize import safe_float
from chronofleet.models._base import Coordinate
from chronofleet.models.route import RouteResult

_logger = logging.getLogger(__name__)


def build_directions_url(base_url: str, origin: Coordinate, destination: Coordinate) -> str:
    coords = f"{origin.as_lng_lat()};{destination.as_lng_lat()}"
    return f"{base_url.rstrip('/')}/{DIRECTIONS_PROFILE}/{coords}"


def _parse_geometry(route: dict[str, Any]) -> tuple[Coordinate, ...]:
    geometry = route.get("geometry")
    if not isinstance(geometry, dict):
        return ()
    raw_coords = geometry.get("coordinates")
    if not isinstance(raw_coords, list):
        return ()
    return tuple(Coordinate.from_lng_lat(pair) for pair in raw_coords)


def parse_directions_response(data: Any) -> RouteResult | None:
    """Parse a directions response body.

    Returns ``None`` when the provider found no route (``code != "Ok"`` or
    an empty ``routes`` list). Raises :class:`ChronoProviderError` when the
    body is not an object or its geometry is malformed.
    """
    if not isinstance(data, dict):
        raise ChronoProviderError("Directions response is not an object", endpoint=DIRECTIONS_PROFILE)

    code = str(data.get("code", ""))
    routes = data.get("routes")
    if code != "Ok" or not isinstance(routes, list) or not routes:
        _logger.debug("Directions returned no route code=%s message=%s", code, data.get("message"))
        return None

    route = routes[0]
    if not isinstance(route, dict):
        raise ChronoProviderError("Directions route is not an object", code=code, endpoint=DIRECTIONS_PROFILE)

    legs = route.get("legs")
    leg: dict[str, Any] = legs[0] if isinstance(legs, list) and legs and isinstance(legs[0], dict) else {}

    try:
        coordinates = _parse_geometry(route)
    except (TypeError, ValueError) as exc:
        raise ChronoProviderError(
            f"Directions geometry is malformed: {exc}",
            code=code,
            endpoint=DIRECTIONS_PROFILE,
        ) from exc

    duration = safe_float(leg.get("duration"))
    if duration is None:
        duration = safe_float(route.get("duration"))
    distance = safe_float(leg.get("distance"))
    if distance is None:
        distance = safe_float(route.get("distance"))

    return RouteResult(
        coordinates=coordinates,
        duration_seconds=duration or 0.0,
        duration_typical_seconds=safe_float(leg.get("duration_typical")),
        distance_meters=distance or 0.0,
    )


async def fetch_directions(
    transport: Transport,
    base_url: str,
    origin: Coordinate,
    destination: Coordinate,
    access_token: str,
) -> RouteResult | None:
    """Request a live-traffic driving route between two points."""
    url = build_directions_url(base_url, origin, destination)
    params = {"geometries": "geojson", "access_token": access_token}
    data = await transport.get_json(url, params)
    return parse_directions_response(data)
