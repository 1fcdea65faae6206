from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pytest

from chronofleet.config import FleetConfig
from chronofleet.eta import EtaEngine, EtaRequestSequencer
from chronofleet.exceptions import ChronoTransportError
from chronofleet.models import Coordinate, VehicleType
from chronofleet.ratelimit import RateLimiter

PICKUP = Coordinate(lat=14.6937, lng=-17.4441)
DROPOFF = Coordinate(lat=14.7167, lng=-17.4677)


class RoutingBackend:
    """Answers directions and legacy directions requests by URL."""

    def __init__(
        self,
        *,
        primary: Any = None,
        legacy: Any = None,
        primary_error: Exception | None = None,
    ) -> None:
        self.primary = primary
        self.legacy = legacy
        self.primary_error = primary_error
        self.urls: list[str] = []

    async def get_json(self, url: str, params: Mapping[str, str]) -> Any:
        self.urls.append(url)
        if "driving-traffic" in url:
            if self.primary_error is not None:
                raise self.primary_error
            return self.primary
        if url.endswith("/json"):
            return self.legacy
        return {"features": [{"geometry": {"coordinates": [-17.4441, 14.6937]}, "properties": {}}]}


def _primary_body(duration: float = 600.0, typical: float | None = 480.0) -> dict[str, Any]:
    leg: dict[str, Any] = {"duration": duration, "distance": 3000.0}
    if typical is not None:
        leg["duration_typical"] = typical
    return {
        "code": "Ok",
        "routes": [
            {
                "geometry": {"coordinates": [[-17.4441, 14.6937], [-17.4441, 14.6937], [-17.4677, 14.7167]]},
                "legs": [leg],
            }
        ],
    }


def _legacy_body() -> dict[str, Any]:
    return {
        "status": "OK",
        "routes": [{"legs": [{"duration": {"value": 900}, "duration_in_traffic": {"value": 1200}}]}],
    }


def _config(**overrides: Any) -> FleetConfig:
    values: dict[str, Any] = {"mapbox_access_token": "pk.test"}
    values.update(overrides)
    return FleetConfig(**values)


@pytest.mark.asyncio
async def test_estimate_applies_vehicle_multiplier() -> None:
    engine = EtaEngine(_config(), RoutingBackend(primary=_primary_body()))
    estimate = await engine.estimate(PICKUP, DROPOFF, VehicleType.CARGO)
    assert estimate is not None
    assert estimate.seconds == 750
    assert estimate.text == "13 min"
    assert estimate.traffic.has_traffic_data is True
    assert estimate.route is not None
    assert estimate.heading is not None
    assert 0.0 <= estimate.heading < 360.0


@pytest.mark.parametrize("token", [None, "", "   ", "<YOUR_MAPBOX_TOKEN>"])
@pytest.mark.asyncio
async def test_missing_credential_returns_none_without_request(token: str | None) -> None:
    backend = RoutingBackend(primary=_primary_body())
    engine = EtaEngine(_config(mapbox_access_token=token), backend)
    assert await engine.estimate(PICKUP, DROPOFF) is None
    assert await engine.fetch_route(PICKUP, DROPOFF) is None
    assert backend.urls == []


@pytest.mark.asyncio
async def test_transport_failure_returns_none() -> None:
    backend = RoutingBackend(primary_error=ChronoTransportError("HTTP 500", status_code=500))
    engine = EtaEngine(_config(), backend)
    assert await engine.estimate(PICKUP, DROPOFF) is None


@pytest.mark.asyncio
async def test_malformed_body_returns_none() -> None:
    engine = EtaEngine(_config(), RoutingBackend(primary="<html>oops</html>"))
    assert await engine.estimate(PICKUP, DROPOFF) is None


@pytest.mark.asyncio
async def test_no_route_returns_none() -> None:
    engine = EtaEngine(_config(), RoutingBackend(primary={"code": "NoRoute", "routes": []}))
    assert await engine.estimate(PICKUP, DROPOFF) is None


@pytest.mark.asyncio
async def test_legacy_provider_is_used_when_primary_has_nothing() -> None:
    backend = RoutingBackend(primary={"code": "NoRoute", "routes": []}, legacy=_legacy_body())
    engine = EtaEngine(_config(google_api_key="g-key"), backend)
    estimate = await engine.estimate(PICKUP, DROPOFF, VehicleType.MOTO)
    assert estimate is not None
    assert estimate.seconds == 1020
    assert estimate.traffic.duration_in_traffic == 1200.0
    assert any(url.endswith("/json") for url in backend.urls)


@pytest.mark.asyncio
async def test_primary_route_wins_over_legacy() -> None:
    backend = RoutingBackend(primary=_primary_body(typical=None), legacy=_legacy_body())
    engine = EtaEngine(_config(google_api_key="g-key"), backend)
    estimate = await engine.estimate(PICKUP, DROPOFF)
    assert estimate is not None
    assert estimate.seconds == 600
    assert estimate.traffic.has_traffic_data is False
    assert not any(url.endswith("/json") for url in backend.urls)


@pytest.mark.asyncio
async def test_rate_limited_caller_gets_none() -> None:
    backend = RoutingBackend(primary=_primary_body())
    limiter = RateLimiter(clock=lambda: 1_000)
    engine = EtaEngine(_config(rate_limit=2, rate_limit_window=60), backend, rate_limiter=limiter)

    assert await engine.estimate(PICKUP, DROPOFF, caller="10.0.0.1") is not None
    assert await engine.estimate(PICKUP, DROPOFF, caller="10.0.0.1") is not None
    assert await engine.estimate(PICKUP, DROPOFF, caller="10.0.0.1") is None
    assert await engine.estimate(PICKUP, DROPOFF, caller="10.0.0.2") is not None
    assert len(backend.urls) == 3


@pytest.mark.asyncio
async def test_fallback_estimate_is_charged_once() -> None:
    backend = RoutingBackend(primary={"code": "NoRoute", "routes": []}, legacy=_legacy_body())
    limiter = RateLimiter(clock=lambda: 1_000)
    engine = EtaEngine(
        _config(google_api_key="g-key", rate_limit=1, rate_limit_window=60),
        backend,
        rate_limiter=limiter,
    )

    assert await engine.estimate(PICKUP, DROPOFF, caller="10.0.0.1") is not None
    assert len(backend.urls) == 2
    assert await engine.estimate(PICKUP, DROPOFF, caller="10.0.0.1") is None
    assert len(backend.urls) == 2


@pytest.mark.asyncio
async def test_geocoding_needs_credential_and_address() -> None:
    backend = RoutingBackend()
    engine = EtaEngine(_config(), backend)
    assert await engine.geocode("   ") is None
    result = await engine.reverse_geocode(PICKUP)
    assert result is not None
    assert result.address == "14.6937,-17.4441"

    no_token = EtaEngine(_config(mapbox_access_token=None), backend)
    assert await no_token.geocode("Dakar") is None


@pytest.mark.asyncio
async def test_sequencer_discards_superseded_result() -> None:
    sequencer = EtaRequestSequencer()
    applied: list[int] = []

    async def refresh(delay: float, value: int) -> None:
        ticket = sequencer.begin("order-1")
        await asyncio.sleep(delay)
        if sequencer.is_latest("order-1", ticket):
            applied.append(value)

    await asyncio.gather(refresh(0.05, 1), refresh(0.0, 2))
    assert applied == [2]
