"""
Demand clustering.

Groups outstanding requests into same-item geographic clusters for prioritization views:

1. drop rejected requests (and fulfilled ones, by policy),
2. partition by item name (a multi-item request joins several partitions),
3. link two requests of a partition when they are within `radius_km` of each other,
4. report each connected component with at least `min_members` requests.

Connectivity (not "distance to an anchor") makes the result independent of input order.
The reported center is the centroid of the members.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass

from agromatch.config.settings import ClusteringSettings, get_settings
from agromatch.core.geo import GeoPoint as CoreGeoPoint
from agromatch.core.geo import centroid, validate_coordinates
from agromatch.core.spatial_index import SpatialBandIndex
from agromatch.domain.models import (
    Cluster,
    ClusterPriority,
    GeoPoint,
    NecessityRequest,
    RequestStatus,
    Urgency,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Member:
    request: NecessityRequest
    point: CoreGeoPoint
    display_name: str
    quantity_by_unit: dict[str, float]

    @property
    def quantity(self) -> float:
        return sum(self.quantity_by_unit.values())


def item_key(name: str) -> str:
    """Normalize an item name for partitioning ("  Rice " and "rice" are the same item)."""
    return " ".join(name.split()).casefold()


def _is_open_demand(request: NecessityRequest, cfg: ClusteringSettings) -> bool:
    if request.status == RequestStatus.REJECTED:
        return False
    if request.status == RequestStatus.FULFILLED and cfg.exclude_fulfilled:
        return False
    return True


def _partition_by_item(requests: list[NecessityRequest]) -> dict[str, list[_Member]]:
    partitions: dict[str, list[_Member]] = {}
    # Oldest first, so the earliest spelling of an item name becomes its display name.
    for r in sorted(requests, key=lambda x: (x.created_at, x.id)):
        point = validate_coordinates(r.location.coordinates.lat, r.location.coordinates.lng)
        per_item: dict[str, tuple[str, dict[str, float]]] = {}
        for it in r.items:
            key = item_key(it.name)
            _, by_unit = per_item.setdefault(key, (it.name.strip(), {}))
            by_unit[it.unit] = by_unit.get(it.unit, 0.0) + float(it.quantity)
        for key, (display, by_unit) in per_item.items():
            partitions.setdefault(key, []).append(
                _Member(request=r, point=point, display_name=display, quantity_by_unit=by_unit)
            )
    return partitions


def _connected_components(members: list[_Member], *, radius_km: float) -> list[list[_Member]]:
    index = SpatialBandIndex(
        list(range(len(members))),
        get_point=lambda i: members[i].point,
        band_height_km=radius_km,
    )
    seen: set[int] = set()
    components: list[list[_Member]] = []
    for start in range(len(members)):
        if start in seen:
            continue
        seen.add(start)
        frontier = [start]
        component = [start]
        while frontier:
            current = frontier.pop()
            for nb in index.query_within(members[current].point, radius_km=radius_km):
                if nb not in seen:
                    seen.add(nb)
                    frontier.append(nb)
                    component.append(nb)
        components.append([members[i] for i in sorted(component)])
    return components


def _priority(component: list[_Member], cfg: ClusteringSettings) -> ClusterPriority:
    if len(component) >= cfg.high_priority_members:
        return ClusterPriority.HIGH
    if any(m.request.urgency == Urgency.HIGH for m in component):
        return ClusterPriority.HIGH
    return ClusterPriority.MEDIUM


def _build_cluster(component: list[_Member], cfg: ClusteringSettings) -> Cluster:
    demand_by_unit: dict[str, float] = {}
    unit_votes: Counter[str] = Counter()
    for m in component:
        for unit, qty in m.quantity_by_unit.items():
            demand_by_unit[unit] = demand_by_unit.get(unit, 0.0) + qty
            unit_votes[unit] += 1
    unit = min(unit_votes.items(), key=lambda kv: (-kv[1], kv[0]))[0]
    center = centroid([m.point for m in component])

    return Cluster(
        item=component[0].display_name,
        unit=unit,
        center=GeoPoint(lat=center.lat, lng=center.lng),
        member_request_ids=sorted(m.request.id for m in component),
        member_count=len(component),
        total_demand=sum(m.quantity for m in component),
        demand_by_unit=dict(sorted(demand_by_unit.items())),
        priority=_priority(component, cfg),
    )


def _cluster_sort_key(c: Cluster) -> tuple:
    return (
        0 if c.priority == ClusterPriority.HIGH else 1,
        -c.total_demand,
        item_key(c.item),
        c.member_request_ids[0],
    )


def compute_clusters(
    requests: list[NecessityRequest],
    *,
    settings: ClusteringSettings | None = None,
) -> list[Cluster]:
    """Group open same-item requests into clusters (see module docstring)."""
    cfg = settings or get_settings().clustering
    open_requests = [r for r in requests if _is_open_demand(r, cfg)]
    partitions = _partition_by_item(open_requests)

    clusters: list[Cluster] = []
    for members in partitions.values():
        if len(members) < cfg.min_members:
            continue
        for component in _connected_components(members, radius_km=cfg.radius_km):
            if len(component) >= cfg.min_members:
                clusters.append(_build_cluster(component, cfg))

    clusters.sort(key=_cluster_sort_key)
    logger.debug(
        "Computed %d clusters from %d open requests across %d items",
        len(clusters),
        len(open_requests),
        len(partitions),
    )
    return clusters
