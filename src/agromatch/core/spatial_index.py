"""
Lightweight spatial bucketing for lat/lng points.

Used by the cluster engine to avoid a full pairwise scan when an item partition grows
to thousands of requests. Points are bucketed into latitude bands: the great-circle
distance between two points is never smaller than the arc spanned by their latitude
difference, so only neighbouring bands can hold matches. Every candidate is then
confirmed with an exact haversine check, so results match the pairwise scan.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from agromatch.core.geo import EARTH_RADIUS_KM, GeoPoint, haversine_km

T = TypeVar("T")

KM_PER_DEGREE_LAT = EARTH_RADIUS_KM * math.pi / 180.0


@dataclass(frozen=True)
class _Entry(Generic[T]):
    item: T
    point: GeoPoint


class SpatialBandIndex(Generic[T]):
    def __init__(
        self,
        items: list[T],
        *,
        get_point: Callable[[T], GeoPoint],
        band_height_km: float = 10.0,
    ):
        if float(band_height_km) <= 0:
            raise ValueError("band_height_km must be > 0")
        self._band_deg = float(band_height_km) / KM_PER_DEGREE_LAT
        self._bands: dict[int, list[_Entry[T]]] = {}

        for it in items:
            p = get_point(it)
            self._bands.setdefault(self._band_key(p.lat), []).append(_Entry(item=it, point=p))

    def _band_key(self, lat: float) -> int:
        return int(math.floor(float(lat) / self._band_deg))

    def __len__(self) -> int:
        return sum(len(b) for b in self._bands.values())

    def query_within(self, origin: GeoPoint, *, radius_km: float) -> list[T]:
        """Return items whose great-circle distance to `origin` is <= `radius_km`."""
        r = float(radius_km)
        if r < 0:
            return []
        key = self._band_key(origin.lat)
        steps = int(math.ceil((r / KM_PER_DEGREE_LAT) / self._band_deg))

        out: list[T] = []
        for k in range(key - steps, key + steps + 1):
            for e in self._bands.get(k, ()):
                if haversine_km(origin, e.point) <= r:
                    out.append(e.item)
        return out
