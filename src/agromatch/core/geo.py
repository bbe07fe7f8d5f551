from __future__ import annotations
from dataclasses import dataclass
from math import asin, cos, isfinite, radians, sin, sqrt

from agromatch.core.errors import ValidationError

"""
Geospatial helpers.

All proximity checks (clustering, ranking) go through `distance_km` so every module
agrees on the same great-circle math. Inputs are range-checked first: a bad coordinate
raises `ValidationError` instead of silently producing a NaN distance.
"""

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lng: float


def validate_coordinates(lat: float, lng: float) -> GeoPoint:
    """Return a `GeoPoint` for (lat, lng) or raise `ValidationError` if out of range."""
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Coordinates must be numeric, got ({lat!r}, {lng!r})") from e
    if not (isfinite(lat_f) and isfinite(lng_f)):
        raise ValidationError(f"Coordinates must be finite, got ({lat_f}, {lng_f})")
    if not -90.0 <= lat_f <= 90.0:
        raise ValidationError(f"Latitude {lat_f} is outside [-90, 90]")
    if not -180.0 <= lng_f <= 180.0:
        raise ValidationError(f"Longitude {lng_f} is outside [-180, 180]")
    return GeoPoint(lat=lat_f, lng=lng_f)


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Compute great-circle distance in kilometers between two points."""
    lat1 = radians(a.lat)
    lng1 = radians(a.lng)
    lat2 = radians(b.lat)
    lng2 = radians(b.lng)

    dlat = lat2 - lat1
    dlng = lng2 - lng1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    # Rounding can push h a hair above 1.0 for antipodal points.
    return 2 * EARTH_RADIUS_KM * asin(sqrt(min(1.0, h)))


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Validated great-circle distance in kilometers."""
    a = validate_coordinates(a.lat, a.lng)
    b = validate_coordinates(b.lat, b.lng)
    return haversine_km(a, b)


def centroid(points: list[GeoPoint]) -> GeoPoint:
    """Arithmetic mean of latitudes and longitudes."""
    if not points:
        raise ValidationError("centroid() needs at least one point")
    n = len(points)
    return GeoPoint(lat=sum(p.lat for p in points) / n, lng=sum(p.lng for p in points) / n)
