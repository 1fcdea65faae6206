"""Order lifecycle event model."""

from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from chronofleet.ingestion.normalize import safe_float, safe_str
from chronofleet.models._base import ChronoBaseModel, Coordinate


def _coordinate_from(value: Any) -> Coordinate | None:
    """Read ``{latitude, longitude}`` either directly or under ``coordinates``."""
    if not isinstance(value, dict):
        return None
    nested = value.get("coordinates")
    source = nested if isinstance(nested, dict) else value
    lat = safe_float(source.get("latitude", source.get("lat")))
    lng = safe_float(source.get("longitude", source.get("lng")))
    if lat is None or lng is None:
        return None
    try:
        return Coordinate(lat=lat, lng=lng)
    except ValueError:
        return None


class OrderStatusUpdate(ChronoBaseModel):
    """Payload of ``order:status:update``.

    The server sends a nested ``{order, user, driver, location}`` object;
    only the fields the realtime layer needs are lifted out, the rest
    stays available in ``raw``.
    """

    order_id: str | None = None
    status: str | None = None
    user_id: str | None = None
    driver_id: str | None = None
    pickup: Coordinate | None = None
    dropoff: Coordinate | None = None
    location: Coordinate | None = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, values: Any) -> Any:
        if not isinstance(values, dict) or "raw" in values:
            return values
        order = values.get("order")
        order = order if isinstance(order, dict) else {}
        user = values.get("user")
        driver = values.get("driver")
        return {
            "order_id": safe_str(order.get("id") or values.get("orderId")),
            "status": safe_str(order.get("status") or values.get("status")),
            "user_id": safe_str(user.get("id") if isinstance(user, dict) else order.get("user_id")),
            "driver_id": safe_str(driver.get("id") if isinstance(driver, dict) else order.get("driver_id")),
            "pickup": _coordinate_from(order.get("pickup")),
            "dropoff": _coordinate_from(order.get("dropoff")),
            "location": _coordinate_from(values.get("location")),
            "raw": values,
        }
