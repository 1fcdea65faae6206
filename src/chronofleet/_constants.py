"""Internal constants shared across the library."""

MAPBOX_DIRECTIONS_URL = "https://api.mapbox.com/directions/v5/mapbox"
MAPBOX_GEOCODING_URL = "https://api.mapbox.com/search/geocode/v6"
GOOGLE_DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions"

DIRECTIONS_PROFILE = "driving-traffic"
GEOCODING_LANGUAGE = "fr"

# ------------------------------------------------------------------
# Event-stream channel names
# ------------------------------------------------------------------

EVENT_CONNECTED = "connected"
EVENT_DISCONNECTED = "disconnected"
EVENT_CONNECTION_FAILED = "connection-failed"
EVENT_INITIAL_DRIVERS = "initial-drivers"
EVENT_DRIVER_ONLINE = "driver:online"
EVENT_DRIVER_OFFLINE = "driver:offline"
EVENT_DRIVER_POSITION = "driver:position:update"
EVENT_ORDER_STATUS = "order:status:update"
EVENT_CLIENT_JOIN = "admin-connect"

EVENT_TRANSPORT_MQTT = "mqtt"
EVENT_TRANSPORT_SOCKETIO = "socketio"

# Some deployments prefix admin-room events ("admin:initial-drivers").
EVENT_ALIASES: dict[str, str] = {
    "admin:initial-drivers": EVENT_INITIAL_DRIVERS,
}

# ------------------------------------------------------------------
# Delivery identifiers
# ------------------------------------------------------------------

DELIVERY_ID_PREFIX = "CHLV"
DELIVERY_ID_SEPARATOR = "–"  # en dash
ORDER_NUMBER_PREFIX = "CMD"

# ------------------------------------------------------------------
# Rate limiting
# ------------------------------------------------------------------

RATE_LIMIT_SWEEP_THRESHOLD = 1000
RATE_LIMIT_UNKNOWN_IDENTIFIER = "unknown"

ETA_PLACEHOLDER = "Calculating..."


def is_usable_credential(value: str | None) -> bool:
    """Return ``True`` for a non-empty credential that is not a ``<placeholder>``."""
    if value is None:
        return False
    stripped = value.strip()
    return bool(stripped) and not stripped.startswith("<")
