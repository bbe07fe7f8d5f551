"""
Distance ranking for farmers.

Pure functions: they attach a great-circle distance from the viewer's origin and sort
ascending. Ties are broken newest-first (`created_at` descending) and finally by id so
repeated calls over the same snapshot always return the same order.
"""

from __future__ import annotations

from agromatch.config.settings import RankingSettings, get_settings
from agromatch.core.errors import ValidationError
from agromatch.core.geo import GeoPoint as CoreGeoPoint
from agromatch.core.geo import distance_km, validate_coordinates
from agromatch.domain.models import Cluster, GeoPoint, NecessityRequest, RankedRequest


def _origin_point(origin: GeoPoint | CoreGeoPoint | tuple[float, float]) -> CoreGeoPoint:
    if isinstance(origin, (tuple, list)):
        if len(origin) != 2:
            raise ValidationError(f"origin must be a (lat, lng) pair, got {len(origin)} values")
        return validate_coordinates(origin[0], origin[1])
    return validate_coordinates(origin.lat, origin.lng)


def rank_by_distance(
    requests: list[NecessityRequest],
    origin: GeoPoint | CoreGeoPoint | tuple[float, float],
    *,
    max_distance_km: float | None = None,
    limit: int | None = None,
) -> list[RankedRequest]:
    """Return requests ordered by distance from `origin` (nearest first)."""
    o = _origin_point(origin)
    ranked = [RankedRequest(request=r, distance_km=distance_km(o, r.point)) for r in requests]
    if max_distance_km is not None:
        ranked = [rr for rr in ranked if rr.distance_km <= float(max_distance_km)]

    # Stable sorts applied from the least to the most significant key.
    ranked.sort(key=lambda rr: rr.request.id)
    ranked.sort(key=lambda rr: rr.request.created_at, reverse=True)
    ranked.sort(key=lambda rr: rr.distance_km)

    if limit is not None:
        ranked = ranked[: max(0, int(limit))]
    return ranked


def rank_clusters_by_distance(
    clusters: list[Cluster],
    origin: GeoPoint | CoreGeoPoint | tuple[float, float],
    *,
    max_distance_km: float | None = None,
    settings: RankingSettings | None = None,
) -> list[Cluster]:
    """Clusters whose center lies within `max_distance_km` of `origin`, nearest first.

    `max_distance_km` defaults to `ranking.nearby_radius_km`.
    """
    cfg = settings or get_settings().ranking
    radius = float(max_distance_km) if max_distance_km is not None else cfg.nearby_radius_km
    o = _origin_point(origin)

    out: list[Cluster] = []
    for c in clusters:
        d = distance_km(o, c.center.to_point())
        if d <= radius:
            out.append(c.model_copy(update={"distance_km": d}))
    out.sort(key=lambda c: (c.distance_km, c.item.casefold(), c.member_request_ids[0]))
    return out
