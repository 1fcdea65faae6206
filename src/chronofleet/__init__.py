"""chronofleet - Async realtime fleet tracking and traffic-aware ETA client."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("chronofleet")
except PackageNotFoundError:
    __version__ = "0+local"
from chronofleet.client import FleetClient
from chronofleet.config import FleetConfig
from chronofleet.delivery_id import format_delivery_id, format_order_number
from chronofleet.eta import EtaEngine, EtaRequestSequencer
from chronofleet.events import EventBus
from chronofleet.exceptions import (
    ChronoConfigError,
    ChronoConnectionError,
    ChronoError,
    ChronoProviderError,
    ChronoTransportError,
)
from chronofleet.models import (
    ConnectionFailure,
    ConnectionState,
    Coordinate,
    DriverPayload,
    DriverState,
    EtaEstimate,
    GeocodeResult,
    OrderStatusUpdate,
    PositionSample,
    RateLimitRecord,
    RateLimitResult,
    RouteResult,
    TrafficEstimate,
    VehicleType,
)
from chronofleet.ratelimit import MemoryRateLimitStore, RateLimiter, rate_limit_identifier
from chronofleet.state.store import PositionStore
from chronofleet.supervisor import ConnectionSupervisor
from chronofleet.traffic import calculate_eta_with_traffic, format_eta

__all__ = [
    "__version__",
    "ChronoConfigError",
    "ChronoConnectionError",
    "ChronoError",
    "ChronoProviderError",
    "ChronoTransportError",
    "ConnectionFailure",
    "ConnectionState",
    "ConnectionSupervisor",
    "Coordinate",
    "DriverPayload",
    "DriverState",
    "EtaEngine",
    "EtaEstimate",
    "EtaRequestSequencer",
    "EventBus",
    "FleetClient",
    "FleetConfig",
    "GeocodeResult",
    "MemoryRateLimitStore",
    "OrderStatusUpdate",
    "PositionSample",
    "PositionStore",
    "RateLimitRecord",
    "RateLimitResult",
    "RateLimiter",
    "RouteResult",
    "TrafficEstimate",
    "VehicleType",
    "calculate_eta_with_traffic",
    "format_delivery_id",
    "format_eta",
    "format_order_number",
    "rate_limit_identifier",
]
