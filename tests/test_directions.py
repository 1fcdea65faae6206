from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import polyline
import pytest

from chronofleet._api.directions import build_directions_url, fetch_directions, parse_directions_response
from chronofleet._api.geocoding import geocode_forward, geocode_reverse, parse_geocode_response
from chronofleet._api.legacy_directions import decode_polyline, fetch_legacy_directions, parse_legacy_response
from chronofleet.exceptions import ChronoProviderError
from chronofleet.models import Coordinate

PICKUP = Coordinate(lat=14.6937, lng=-17.4441)
DROPOFF = Coordinate(lat=14.7167, lng=-17.4677)


@dataclass
class FakeTransport:
    response: Any
    calls: list[tuple[str, dict[str, str]]] = field(default_factory=list)

    async def get_json(self, url: str, params: Mapping[str, str]) -> Any:
        self.calls.append((url, dict(params)))
        return self.response


def _directions_body() -> dict[str, Any]:
    return {
        "code": "Ok",
        "routes": [
            {
                "duration": 999.0,
                "distance": 4000.0,
                "geometry": {"coordinates": [[-17.4441, 14.6937], [-17.45, 14.70], [-17.4677, 14.7167]]},
                "legs": [{"duration": 720.0, "duration_typical": 600.0, "distance": 3500.0}],
            }
        ],
    }


def test_directions_url_is_longitude_first() -> None:
    url = build_directions_url("https://api.example.com/directions/v5/mapbox/", PICKUP, DROPOFF)
    assert url == "https://api.example.com/directions/v5/mapbox/driving-traffic/-17.4441,14.6937;-17.4677,14.7167"


def test_geometry_is_normalized_to_lat_lng() -> None:
    route = parse_directions_response(_directions_body())
    assert route is not None
    assert route.coordinates[0] == PICKUP
    assert route.coordinates[-1] == DROPOFF
    assert route.coordinates[1].lat == pytest.approx(14.70)


def test_leg_durations_win_over_route_totals() -> None:
    route = parse_directions_response(_directions_body())
    assert route is not None
    assert route.duration_seconds == 720.0
    assert route.duration_typical_seconds == 600.0
    assert route.distance_meters == 3500.0


@pytest.mark.parametrize(
    "body",
    [
        {"code": "NoRoute", "message": "No route found", "routes": []},
        {"code": "Ok", "routes": []},
        {"code": "Ok"},
    ],
)
def test_no_route_is_none(body: dict[str, Any]) -> None:
    assert parse_directions_response(body) is None


def test_malformed_directions_body_raises() -> None:
    with pytest.raises(ChronoProviderError):
        parse_directions_response(["not", "an", "object"])
    with pytest.raises(ChronoProviderError):
        parse_directions_response({"code": "Ok", "routes": [{"geometry": {"coordinates": [[1.0]]}}]})


@pytest.mark.asyncio
async def test_fetch_directions_sends_token_and_geojson() -> None:
    transport = FakeTransport(_directions_body())
    route = await fetch_directions(transport, "https://api.example.com/d", PICKUP, DROPOFF, "pk.test")
    assert route is not None
    (url, params), = transport.calls
    assert url.endswith("/driving-traffic/-17.4441,14.6937;-17.4677,14.7167")
    assert params == {"geometries": "geojson", "access_token": "pk.test"}


def test_decode_polyline() -> None:
    points = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")
    assert [(p.lat, p.lng) for p in points] == [
        pytest.approx((38.5, -120.2)),
        pytest.approx((40.7, -120.95)),
        pytest.approx((43.252, -126.453)),
    ]


def test_truncated_polyline_raises() -> None:
    with pytest.raises(ValueError):
        decode_polyline("_p~iF")


def test_decode_polyline_matches_library_decoder() -> None:
    encoded = polyline.encode([(14.6937, -17.4441), (14.7167, -17.4677)])
    points = decode_polyline(encoded)
    assert [(p.lat, p.lng) for p in points] == polyline.decode(encoded)


def test_legacy_response_anchors_line_and_reads_leg() -> None:
    origin = Coordinate(lat=38.0, lng=-120.0)
    destination = Coordinate(lat=43.252, lng=-126.453)
    body = {
        "status": "OK",
        "routes": [
            {
                "overview_polyline": {"points": "_p~iF~ps|U_ulLnnqC_mqNvxq`@"},
                "legs": [
                    {
                        "duration": {"value": 900},
                        "duration_in_traffic": {"value": 1200},
                        "distance": {"value": 5000},
                    }
                ],
            }
        ],
    }
    legacy = parse_legacy_response(body, origin, destination)
    assert legacy is not None
    assert legacy.route.coordinates[0] == origin
    assert len(legacy.route.coordinates) == 4
    assert legacy.route.duration_seconds == 1200.0
    assert legacy.route.distance_meters == 5000.0
    assert legacy.traffic.has_traffic_data is True


def test_legacy_without_routes_is_none() -> None:
    assert parse_legacy_response({"status": "ZERO_RESULTS", "routes": []}, PICKUP, DROPOFF) is None


@pytest.mark.asyncio
async def test_fetch_legacy_directions_params() -> None:
    transport = FakeTransport({"status": "ZERO_RESULTS", "routes": []})
    await fetch_legacy_directions(
        transport,
        "https://maps.example.com/directions/",
        PICKUP,
        DROPOFF,
        "g-key",
        departure_time=1700000000,
    )
    (url, params), = transport.calls
    assert url == "https://maps.example.com/directions/json"
    assert params == {
        "origin": "14.6937,-17.4441",
        "destination": "14.7167,-17.4677",
        "mode": "driving",
        "departure_time": "1700000000",
        "traffic_model": "best_guess",
        "key": "g-key",
    }


def _feature(address: str | None) -> dict[str, Any]:
    properties = {"full_address": address} if address is not None else {}
    return {"features": [{"geometry": {"coordinates": [-17.4441, 14.6937]}, "properties": properties}]}


def test_parse_geocode_response() -> None:
    result = parse_geocode_response(_feature("Place de l'Indépendance, Dakar"))
    assert result is not None
    assert result.coordinate == PICKUP
    assert result.address == "Place de l'Indépendance, Dakar"
    assert parse_geocode_response({"features": []}) is None


@pytest.mark.asyncio
async def test_geocode_forward_params() -> None:
    transport = FakeTransport(_feature("Dakar"))
    result = await geocode_forward(transport, "https://geo.example.com/v6", " Dakar ", "pk.test", country="sn")
    assert result is not None
    (url, params), = transport.calls
    assert url == "https://geo.example.com/v6/forward"
    assert params["q"] == "Dakar"
    assert params["country"] == "sn"
    assert params["limit"] == "1"


@pytest.mark.asyncio
async def test_reverse_geocode_falls_back_to_coordinates() -> None:
    transport = FakeTransport(_feature(None))
    result = await geocode_reverse(transport, "https://geo.example.com/v6", PICKUP, "pk.test")
    assert result is not None
    assert result.address == "14.6937,-17.4441"
    (url, params), = transport.calls
    assert url == "https://geo.example.com/v6/reverse"
    assert params["longitude"] == "-17.4441"
    assert params["latitude"] == "14.6937"
