"""Base model and shared coordinate type.

Every chronofleet model inherits from :class:`ChronoBaseModel`, which is
frozen: samples, routes and estimates are superseded by new instances,
never mutated in place.

:class:`Coordinate` is the only coordinate convention used past the
provider boundary. Providers that speak longitude-first are converted
with :meth:`Coordinate.from_lng_lat` as soon as their payload is read.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChronoBaseModel(BaseModel):
    """Base for chronofleet models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )


class Coordinate(ChronoBaseModel):
    """A WGS84 point in ``{lat, lng}`` order."""

    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)

    @model_validator(mode="before")
    @classmethod
    def _accept_long_names(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        if "lat" not in merged and "latitude" in merged:
            merged["lat"] = merged.pop("latitude")
        if "lng" not in merged:
            for key in ("longitude", "lon"):
                if key in merged:
                    merged["lng"] = merged.pop(key)
                    break
        return merged

    @classmethod
    def from_lng_lat(cls, pair: Sequence[float]) -> Coordinate:
        """Build from a longitude-first ``[lng, lat]`` pair (GeoJSON order)."""
        if len(pair) < 2:
            raise ValueError(f"expected [lng, lat], got {pair!r}")
        return cls(lat=float(pair[1]), lng=float(pair[0]))

    def as_lng_lat(self) -> str:
        """Format as ``"lng,lat"`` for longitude-first provider URLs."""
        return f"{self.lng},{self.lat}"

    def as_lat_lng(self) -> str:
        """Format as ``"lat,lng"`` for latitude-first provider URLs."""
        return f"{self.lat},{self.lng}"
