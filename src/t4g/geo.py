"""Great-circle distance and geofence checks."""

from __future__ import annotations

import math
from typing import NamedTuple

from t4g.errors import InvalidCoordinate

EARTH_RADIUS_M = 6_371_000.0


class Coordinate(NamedTuple):
    latitude: float
    longitude: float


def validate_coordinate(latitude: float, longitude: float) -> Coordinate:
    """Return a Coordinate or raise InvalidCoordinate.

    Accepts anything ``float()`` understands; NaN and infinities are rejected.
    """
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError) as exc:
        raise InvalidCoordinate() from exc

    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidCoordinate()
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(f"Latitude {lat} out of range [-90, 90]")
    if not -180.0 <= lon <= 180.0:
        raise InvalidCoordinate(f"Longitude {lon} out of range [-180, 180]")
    return Coordinate(lat, lon)


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def is_within_radius(point: Coordinate, anchor: Coordinate, radius_m: float) -> bool:
    """True when ``point`` lies inside or exactly on the geofence boundary."""
    return distance_meters(point.latitude, point.longitude, anchor.latitude, anchor.longitude) <= radius_m
