"""Client configuration for chronofleet."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from chronofleet._constants import (
    EVENT_TRANSPORT_MQTT,
    EVENT_TRANSPORT_SOCKETIO,
    GOOGLE_DIRECTIONS_URL,
    MAPBOX_DIRECTIONS_URL,
    MAPBOX_GEOCODING_URL,
)
from chronofleet.exceptions import ChronoConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(value)
    except ValueError as exc:
        raise ChronoConfigError(f"{env_key} must be numeric, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class FleetConfig:
    """Client configuration.

    Parameters
    ----------
    broker_host : str
        Hostname of the dispatch event broker.
    broker_port : int
        Broker port (``8883`` is the usual TLS port).
    broker_tls : bool
        Wrap the broker connection in TLS.
    broker_username : str or None
        Broker username, if the broker requires authentication.
    broker_password : str or None
        Broker password.
    topic_prefix : str
        Topic namespace. Server events are read from
        ``<topic_prefix>/events``; client events are published on
        ``<topic_prefix>/client``.
    client_id : str or None
        Broker client id. A random id is generated when ``None``.
    keepalive : int
        Broker keepalive in seconds.
    connect_timeout : float
        Seconds to wait for a connect attempt to succeed or fail before
        treating it as failed.
    max_reconnect_attempts : int
        Consecutive background reconnect failures tolerated after a drop
        before ``connection-failed`` is emitted and the stream is closed.
    mapbox_access_token : str or None
        Credential for the traffic-aware routing and geocoding provider.
    google_api_key : str or None
        Credential for the legacy directions provider used as fallback.
    directions_base_url : str
        Base URL of the traffic-aware directions API.
    legacy_directions_base_url : str
        Base URL of the legacy directions API.
    geocoding_base_url : str
        Base URL of the geocoding API.
    http_timeout : float
        Total timeout in seconds for provider HTTP calls.
    rate_limit : int
        Provider calls allowed per caller per window.
    rate_limit_window : int
        Rate-limit window length in seconds.
    identity : str or None
        Identifier announced to the dispatch server after connecting.
    event_transport : str
        Event-stream protocol, ``"mqtt"`` or ``"socketio"``.
    socket_url : str or None
        Socket.IO server URL, required when ``event_transport`` is
        ``"socketio"``.
    socket_path : str
        Socket.IO endpoint path on the server.
    """

    broker_host: str = "localhost"
    broker_port: int = 1883
    broker_tls: bool = False
    broker_username: str | None = None
    broker_password: str | None = None
    topic_prefix: str = "chrono/fleet"
    client_id: str | None = None
    keepalive: int = 60
    connect_timeout: float = 20.0
    max_reconnect_attempts: int = 5
    mapbox_access_token: str | None = None
    google_api_key: str | None = None
    directions_base_url: str = MAPBOX_DIRECTIONS_URL
    legacy_directions_base_url: str = GOOGLE_DIRECTIONS_URL
    geocoding_base_url: str = MAPBOX_GEOCODING_URL
    http_timeout: float = 10.0
    rate_limit: int = 10
    rate_limit_window: int = 60
    identity: str | None = None
    event_transport: str = EVENT_TRANSPORT_MQTT
    socket_url: str | None = None
    socket_path: str = "socket.io"

    @property
    def broker_url(self) -> str:
        scheme = "mqtts" if self.broker_tls else "mqtt"
        return f"{scheme}://{self.broker_host}:{self.broker_port}"

    @property
    def stream_url(self) -> str:
        """URL of the configured event stream."""
        if self.event_transport == EVENT_TRANSPORT_SOCKETIO:
            return self.socket_url or ""
        return self.broker_url

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetConfig:
        """Create configuration from environment variables.

        Reads ``CHRONO_*`` variables (and the conventional
        ``MAPBOX_ACCESS_TOKEN``). Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        FleetConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "CHRONO_BROKER_HOST": "broker_host",
            "CHRONO_BROKER_USERNAME": "broker_username",
            "CHRONO_BROKER_PASSWORD": "broker_password",
            "CHRONO_TOPIC_PREFIX": "topic_prefix",
            "CHRONO_CLIENT_ID": "client_id",
            "CHRONO_GOOGLE_API_KEY": "google_api_key",
            "CHRONO_IDENTITY": "identity",
            "CHRONO_EVENT_TRANSPORT": "event_transport",
            "CHRONO_SOCKET_URL": "socket_url",
            "CHRONO_SOCKET_PATH": "socket_path",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        token = env.get("CHRONO_MAPBOX_ACCESS_TOKEN") or env.get("MAPBOX_ACCESS_TOKEN")
        if token is not None:
            config_kwargs["mapbox_access_token"] = token

        _ENV_INT_MAP = {
            "CHRONO_BROKER_PORT": "broker_port",
            "CHRONO_KEEPALIVE": "keepalive",
            "CHRONO_MAX_RECONNECT_ATTEMPTS": "max_reconnect_attempts",
            "CHRONO_RATE_LIMIT": "rate_limit",
            "CHRONO_RATE_LIMIT_WINDOW": "rate_limit_window",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, int)

        _ENV_FLOAT_MAP = {
            "CHRONO_CONNECT_TIMEOUT": "connect_timeout",
            "CHRONO_HTTP_TIMEOUT": "http_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, float)

        if "broker_tls" not in overrides:
            config_kwargs["broker_tls"] = _env_bool(env.get("CHRONO_BROKER_TLS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
