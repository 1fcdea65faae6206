"""Data models shared across the fleet realtime and ETA layers."""

from chronofleet.models._base import ChronoBaseModel, Coordinate
from chronofleet.models.connection import ConnectionFailure, ConnectionState
from chronofleet.models.geocode import GeocodeResult
from chronofleet.models.order import OrderStatusUpdate
from chronofleet.models.position import DriverPayload, DriverState, PositionSample
from chronofleet.models.ratelimit import RateLimitRecord, RateLimitResult
from chronofleet.models.route import EtaEstimate, RouteResult, TrafficEstimate, VehicleType

__all__ = [
    "ChronoBaseModel",
    "ConnectionFailure",
    "ConnectionState",
    "Coordinate",
    "DriverPayload",
    "DriverState",
    "EtaEstimate",
    "GeocodeResult",
    "OrderStatusUpdate",
    "PositionSample",
    "RateLimitRecord",
    "RateLimitResult",
    "RouteResult",
    "TrafficEstimate",
    "VehicleType",
]
