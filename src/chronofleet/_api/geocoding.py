"""Geocoding endpoints.

Endpoints:
  - GET {base}/forward?q=...   (address -> coordinates)
  - GET {base}/reverse?longitude=...&latitude=...   (coordinates -> address)

Feature geometry is longitude-first and is normalized here.
"""

from __future__ import annotations

from typing import Any

from chronofleet._constants import GEOCODING_LANGUAGE
from chronofleet._transport import Transport
from chronofleet.exceptions import ChronoProviderError
from chronofleet.models._base import Coordinate
from chronofleet.models.geocode import GeocodeResult


def parse_geocode_response(data: Any) -> GeocodeResult | None:
    """Return the first feature of a geocoding response, if any."""
    if not isinstance(data, dict):
        raise ChronoProviderError("Geocoding response is not an object", endpoint="geocode")
    features = data.get("features")
    if not isinstance(features, list) or not features or not isinstance(features[0], dict):
        return None

    feature = features[0]
    geometry = feature.get("geometry")
    coords = geometry.get("coordinates") if isinstance(geometry, dict) else None
    if not isinstance(coords, list):
        return None
    try:
        coordinate = Coordinate.from_lng_lat(coords)
    except (TypeError, ValueError) as exc:
        raise ChronoProviderError(f"Geocoding geometry is malformed: {exc}", endpoint="geocode") from exc

    properties = feature.get("properties")
    address = properties.get("full_address") if isinstance(properties, dict) else None
    return GeocodeResult(coordinate=coordinate, address=address if isinstance(address, str) else None)


async def geocode_forward(
    transport: Transport,
    base_url: str,
    address: str,
    access_token: str,
    *,
    country: str | None = None,
    limit: int = 1,
) -> GeocodeResult | None:
    params = {
        "q": address.strip(),
        "access_token": access_token,
        "language": GEOCODING_LANGUAGE,
        "limit": str(limit),
    }
    if country:
        params["country"] = country
    data = await transport.get_json(f"{base_url.rstrip('/')}/forward", params)
    return parse_geocode_response(data)


async def geocode_reverse(
    transport: Transport,
    base_url: str,
    coordinate: Coordinate,
    access_token: str,
) -> GeocodeResult | None:
    params = {
        "longitude": str(coordinate.lng),
        "latitude": str(coordinate.lat),
        "access_token": access_token,
        "language": GEOCODING_LANGUAGE,
    }
    data = await transport.get_json(f"{base_url.rstrip('/')}/reverse", params)
    result = parse_geocode_response(data)
    if result is not None and result.address is None:
        # Reverse lookups always return an address; fall back to "lat,lng".
        return GeocodeResult(coordinate=result.coordinate, address=result.coordinate.as_lat_lng())
    return result
