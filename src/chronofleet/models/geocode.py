"""Geocoding models."""

from __future__ import annotations

from chronofleet.models._base import ChronoBaseModel, Coordinate


class GeocodeResult(ChronoBaseModel):
    """A resolved address."""

    coordinate: Coordinate
    address: str | None = None

    @property
    def latitude(self) -> float:
        return self.coordinate.lat

    @property
    def longitude(self) -> float:
        return self.coordinate.lng
