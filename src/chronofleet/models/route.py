"""Routing and ETA models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from chronofleet.models._base import ChronoBaseModel, Coordinate

_VEHICLE_MULTIPLIERS: dict[str, float] = {
    "moto": 0.85,
    "vehicule": 1.0,
    "cargo": 1.25,
}


class VehicleType(StrEnum):
    """Delivery vehicle class.

    Two-wheelers get through traffic faster than the provider's car
    baseline; cargo vans are slower.
    """

    MOTO = "moto"
    VEHICULE = "vehicule"
    CARGO = "cargo"

    @property
    def multiplier(self) -> float:
        return _VEHICLE_MULTIPLIERS[self.value]


class RouteResult(ChronoBaseModel):
    """A route returned by a directions provider.

    Parameters
    ----------
    coordinates : tuple of Coordinate
        Route geometry, already normalized to ``{lat, lng}``.
    duration_seconds : float
        Live (traffic-weighted) duration.
    duration_typical_seconds : float or None
        Traffic-free baseline, when the provider reports one.
    distance_meters : float
        Route length.
    """

    coordinates: tuple[Coordinate, ...] = ()
    duration_seconds: float = 0.0
    duration_typical_seconds: float | None = None
    distance_meters: float = 0.0


class TrafficEstimate(ChronoBaseModel):
    """Durations extracted from a provider response, in seconds."""

    duration_in_traffic: float | None = None
    duration_base: float | None = None
    has_traffic_data: bool = False

    @property
    def is_empty(self) -> bool:
        return not _positive(self.duration_in_traffic) and not _positive(self.duration_base)


class EtaEstimate(ChronoBaseModel):
    """Final, vehicle-adjusted arrival estimate."""

    seconds: int = Field(ge=0)
    text: str
    vehicle_type: VehicleType = VehicleType.VEHICULE
    traffic: TrafficEstimate
    route: RouteResult | None = None
    heading: float | None = None


def _positive(value: float | None) -> bool:
    return value is not None and value > 0
