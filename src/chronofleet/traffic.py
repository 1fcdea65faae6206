"""Traffic-aware duration extraction and ETA formatting.

Two provider shapes are supported and mapped onto :class:`TrafficEstimate`:

* the traffic-aware route (``duration`` is live, ``duration_typical`` is
  the historical baseline),
* the legacy leg shape ``{duration: {value}, duration_in_traffic: {value}}``.

Everything downstream (multiplier, rounding, text) is provider-agnostic.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from chronofleet._constants import ETA_PLACEHOLDER
from chronofleet.ingestion.normalize import safe_float
from chronofleet.models.route import RouteResult, TrafficEstimate, VehicleType


def round_half_up(value: float) -> int:
    """Round halves away from zero for positive values (``2.5 -> 3``)."""
    return math.floor(value + 0.5)


def _positive_or_none(value: Any) -> float | None:
    parsed = safe_float(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def _distinct(live: float | None, baseline: float | None) -> bool:
    return live is not None and baseline is not None and baseline != live


def extract_route_traffic(route: RouteResult) -> TrafficEstimate:
    """Map a traffic-aware route onto a :class:`TrafficEstimate`.

    The baseline falls back to the live duration when the provider has
    no typical value; in that case the estimate does not claim traffic
    insight.
    """
    live = _positive_or_none(route.duration_seconds)
    typical = _positive_or_none(route.duration_typical_seconds)
    return TrafficEstimate(
        duration_in_traffic=live,
        duration_base=typical if typical is not None else live,
        has_traffic_data=_distinct(live, typical),
    )


def _leg_value(leg: Mapping[str, Any], key: str) -> float | None:
    entry = leg.get(key)
    if isinstance(entry, Mapping):
        return _positive_or_none(entry.get("value"))
    return None


def extract_legacy_traffic(leg: Mapping[str, Any] | None) -> TrafficEstimate:
    """Map a legacy directions leg onto a :class:`TrafficEstimate`."""
    if not isinstance(leg, Mapping):
        return TrafficEstimate()
    in_traffic = _leg_value(leg, "duration_in_traffic")
    base = _leg_value(leg, "duration")
    return TrafficEstimate(
        duration_in_traffic=in_traffic,
        duration_base=base,
        has_traffic_data=_distinct(in_traffic, base),
    )


def prefer_traffic_estimate(
    route_estimate: TrafficEstimate | None,
    legacy_estimate: TrafficEstimate | None,
) -> TrafficEstimate | None:
    """Pick between the two extraction paths; the traffic-aware route wins.

    The legacy estimate is only used when the route estimate is missing or
    carries no usable duration.
    """
    if route_estimate is not None and not route_estimate.is_empty:
        return route_estimate
    if legacy_estimate is not None and not legacy_estimate.is_empty:
        return legacy_estimate
    return None


def calculate_eta_with_traffic(
    estimate: TrafficEstimate,
    vehicle: VehicleType | float = VehicleType.VEHICULE,
) -> int | None:
    """Vehicle-adjusted ETA in whole seconds, or ``None`` without a duration.

    Uses the in-traffic duration when present, else the baseline.
    """
    multiplier = vehicle.multiplier if isinstance(vehicle, VehicleType) else float(vehicle)
    duration = _positive_or_none(estimate.duration_in_traffic)
    if duration is None:
        duration = _positive_or_none(estimate.duration_base)
    if duration is None:
        return None
    return round_half_up(duration * multiplier)


def format_eta(eta_seconds: float | None) -> str:
    """Human-readable ETA.

    >>> format_eta(45), format_eta(125), format_eta(3600), format_eta(3665)
    ('45 sec', '2 min', '1h', '1h 1 min')
    """
    if eta_seconds is None:
        return ETA_PLACEHOLDER
    if eta_seconds < 60:
        return f"{round_half_up(eta_seconds)} sec"

    minutes = round_half_up(eta_seconds / 60)
    if minutes < 60:
        return f"{minutes} min"

    hours, remaining_minutes = divmod(minutes, 60)
    if remaining_minutes == 0:
        return f"{hours}h"
    return f"{hours}h {remaining_minutes} min"
