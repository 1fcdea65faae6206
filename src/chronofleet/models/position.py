"""Driver position and status models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from chronofleet.ingestion.normalize import parse_timestamp, safe_bool, safe_float, safe_str
from chronofleet.models._base import ChronoBaseModel, Coordinate


class PositionSample(ChronoBaseModel):
    """One accepted-or-candidate position of a tracked entity.

    Parameters
    ----------
    entity_id : str
        Driver (or vehicle) identifier.
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    timestamp : datetime
        UTC time the position was recorded.
    is_online : bool
        Online flag carried with the sample.
    is_available : bool
        Availability flag carried with the sample.
    """

    entity_id: str
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    timestamp: datetime
    is_online: bool = True
    is_available: bool = False

    @field_validator("entity_id")
    @classmethod
    def _normalize_entity_id(cls, value: str) -> str:
        entity_id = value.strip()
        if not entity_id:
            raise ValueError("entity_id must be non-empty")
        return entity_id

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        parsed = parse_timestamp(value)
        return parsed if parsed is not None else value

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(lat=self.latitude, lng=self.longitude)


class DriverState(ChronoBaseModel):
    """Latest known view of one driver, as held by the position store."""

    entity_id: str
    sample: PositionSample | None = None
    heading: float | None = None
    is_online: bool = False
    is_available: bool = False

    @property
    def coordinate(self) -> Coordinate | None:
        return self.sample.coordinate if self.sample is not None else None


class DriverPayload(ChronoBaseModel):
    """A driver entry as sent on the event stream.

    Used for ``initial-drivers`` entries, ``driver:online`` /
    ``driver:offline`` and ``driver:position:update``. Fields the server
    omitted stay ``None`` so they never overwrite known state.
    """

    user_id: str = Field(validation_alias=AliasChoices("userId", "user_id", "driverId", "driver_id", "id"))
    is_online: bool | None = Field(default=None, validation_alias=AliasChoices("is_online", "isOnline"))
    is_available: bool | None = Field(default=None, validation_alias=AliasChoices("is_available", "isAvailable"))
    latitude: float | None = Field(
        default=None,
        validation_alias=AliasChoices("current_latitude", "latitude", "lat"),
    )
    longitude: float | None = Field(
        default=None,
        validation_alias=AliasChoices("current_longitude", "longitude", "lng", "lon"),
    )
    updated_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("updated_at", "updatedAt", "timestamp"),
    )
    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        location = values.get("location")
        if isinstance(location, dict):
            for key in ("latitude", "longitude"):
                if key in location and key not in merged:
                    merged[key] = location[key]
        merged.setdefault("raw", values)
        return merged

    @field_validator("user_id", mode="before")
    @classmethod
    def _coerce_user_id(cls, value: Any) -> str:
        user_id = safe_str(value)
        if user_id is None:
            raise ValueError("userId must be non-empty")
        return user_id

    @field_validator("is_online", "is_available", mode="before")
    @classmethod
    def _coerce_flags(cls, value: Any) -> bool | None:
        if value is None:
            return None
        return safe_bool(value)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("updated_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @property
    def has_position(self) -> bool:
        if self.latitude is None or self.longitude is None:
            return False
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0
