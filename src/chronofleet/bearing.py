"""Great-circle heading between two coordinates.

Bearings are clockwise from true north in degrees, normalized into
``[0, 360)``: 0 is north, 90 east, 180 south, 270 west.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from chronofleet.models._base import Coordinate


def calculate_bearing(origin: Coordinate, target: Coordinate) -> float | None:
    """Return the initial bearing from *origin* to *target*.

    Returns ``None`` for coincident points, where ``atan2(0, 0)`` carries
    no direction. Callers keep their previous heading in that case.
    """
    lat1 = math.radians(origin.lat)
    lat2 = math.radians(target.lat)
    delta_lng = math.radians(target.lng - origin.lng)

    y = math.sin(delta_lng) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(delta_lng)
    if math.isclose(x, 0.0, abs_tol=1e-15) and math.isclose(y, 0.0, abs_tol=1e-15):
        return None

    bearing = math.degrees(math.atan2(y, x)) % 360.0
    # -0.0 % 360 and values a hair under 360 both round onto 360.0.
    return 0.0 if bearing >= 360.0 else bearing


def shortest_angle_difference(current: float, target: float) -> float:
    """Signed rotation in ``[-180, 180]`` that turns *current* into *target*.

    Useful to animate a marker through the short way round.
    """
    diff = target - current
    if diff > 180.0:
        diff -= 360.0
    elif diff < -180.0:
        diff += 360.0
    return diff


def route_heading(coordinates: Sequence[Coordinate]) -> float | None:
    """Bearing of the first non-degenerate segment of a route geometry."""
    for start, end in zip(coordinates, coordinates[1:]):
        bearing = calculate_bearing(start, end)
        if bearing is not None:
            return bearing
    return None
