from datetime import datetime, timedelta, timezone

import pytest

from agromatch.config.settings import ClusteringSettings, get_settings
from agromatch.core.errors import ValidationError
from agromatch.domain.models import ClusterPriority, NecessityRequest
from agromatch.matching.clusters import compute_clusters, item_key

T0 = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def _request(
    rid: str,
    lat: float,
    lng: float,
    items: list[tuple[str, float]] | list[tuple[str, float, str]],
    *,
    urgency: str = "medium",
    status: str = "pending",
    minutes: int = 0,
) -> NecessityRequest:
    lines = []
    for it in items:
        name, qty = it[0], it[1]
        unit = it[2] if len(it) > 2 else "kg"
        lines.append({"name": name, "quantity": qty, "unit": unit})
    committed = status in {"accepted", "fulfilled"}
    return NecessityRequest(
        id=rid,
        consumer_id=f"consumer-{rid}",
        consumer_name=f"Consumer {rid}",
        items=lines,
        urgency=urgency,
        time_needed="this week",
        location={"name": f"Place {rid}", "coordinates": [lat, lng]},
        status=status,
        accepted_by="farmer-1" if committed else None,
        delivery_time="2 days" if committed else None,
        created_at=T0 + timedelta(minutes=minutes),
    )


def _rice_triangle() -> list[NecessityRequest]:
    return [
        _request("r1", 10.00, 10.00, [("Rice", 10)], minutes=0),
        _request("r2", 10.01, 10.01, [("Rice", 20)], minutes=1),
        _request("r3", 10.02, 10.02, [("Rice", 15)], minutes=2),
    ]


def test_three_nearby_rice_requests_form_one_cluster():
    clusters = compute_clusters(_rice_triangle())

    assert len(clusters) == 1
    c = clusters[0]
    assert c.item == "Rice"
    assert c.member_count == 3
    assert c.total_demand == 45
    assert c.member_request_ids == ["r1", "r2", "r3"]
    assert c.unit == "kg"
    assert c.center.lat == pytest.approx(10.01)
    assert c.center.lng == pytest.approx(10.01)
    # Three members without a high-urgency request: elevated, but not high.
    assert c.priority == ClusterPriority.MEDIUM


def test_empty_input_yields_no_clusters():
    assert compute_clusters([]) == []


def test_isolated_request_and_small_groups_produce_no_cluster():
    requests = _rice_triangle() + [
        # Far away from the Rice group (hundreds of km).
        _request("far", 15.0, 15.0, [("Rice", 99)]),
        # Only two tomato requests anywhere.
        _request("t1", 10.00, 10.00, [("Tomatoes", 5)]),
        _request("t2", 10.01, 10.00, [("Tomatoes", 5)]),
    ]
    clusters = compute_clusters(requests)

    assert [c.item for c in clusters] == ["Rice"]
    assert "far" not in clusters[0].member_request_ids


def test_connectivity_chains_requests_beyond_the_radius_of_the_first():
    # ~8.9 km steps along a meridian: a-b and b-c are neighbours, a-c (~17.8 km) are not.
    step = 0.08
    requests = [
        _request("a", 0.0, 0.0, [("Maize", 1)]),
        _request("b", step, 0.0, [("Maize", 1)]),
        _request("c", 2 * step, 0.0, [("Maize", 1)]),
    ]
    clusters = compute_clusters(requests)
    assert len(clusters) == 1
    assert clusters[0].member_request_ids == ["a", "b", "c"]


def test_result_does_not_depend_on_input_order():
    requests = _rice_triangle() + [
        _request("r4", 10.03, 10.03, [("Rice", 5)], minutes=3),
        _request("x1", 20.0, 20.0, [("Wheat", 2)], minutes=4),
        _request("x2", 20.01, 20.0, [("Wheat", 2)], minutes=5),
        _request("x3", 20.02, 20.0, [("Wheat", 2)], minutes=6),
    ]
    forward = compute_clusters(requests)
    backward = compute_clusters(list(reversed(requests)))
    assert [c.model_dump() for c in forward] == [c.model_dump() for c in backward]


def test_multi_item_request_joins_each_item_partition():
    requests = [
        _request("m1", 10.00, 10.00, [("Rice", 10), ("Onions", 1)]),
        _request("m2", 10.01, 10.00, [("Rice", 10), ("Onions", 2)]),
        _request("m3", 10.02, 10.00, [("rice ", 10), ("Onions", 3)]),
    ]
    clusters = {item_key(c.item): c for c in compute_clusters(requests)}

    assert set(clusters) == {"rice", "onions"}
    assert clusters["rice"].total_demand == 30
    assert clusters["onions"].total_demand == 6
    assert clusters["rice"].item == "Rice"


def test_rejected_and_fulfilled_requests_are_not_demand():
    requests = [
        _request("p1", 10.00, 10.00, [("Rice", 1)]),
        _request("p2", 10.01, 10.00, [("Rice", 1)], status="accepted"),
        _request("p3", 10.02, 10.00, [("Rice", 1)], status="rejected"),
        _request("p4", 10.03, 10.00, [("Rice", 1)], status="fulfilled"),
    ]
    assert compute_clusters(requests) == []

    keep_fulfilled = ClusteringSettings(exclude_fulfilled=False)
    clusters = compute_clusters(requests, settings=keep_fulfilled)
    assert clusters[0].member_request_ids == ["p1", "p2", "p4"]


def test_priority_high_for_large_groups_or_high_urgency():
    big = [_request(f"b{i}", 10.0 + i * 0.001, 10.0, [("Rice", 1)]) for i in range(5)]
    assert compute_clusters(big)[0].priority == ClusterPriority.HIGH

    urgent = _rice_triangle()
    urgent[1] = _request("r2", 10.01, 10.01, [("Rice", 20)], urgency="high", minutes=1)
    assert compute_clusters(urgent)[0].priority == ClusterPriority.HIGH


def test_clusters_are_sorted_high_priority_first_then_by_demand():
    requests = [
        _request("a1", 0.00, 0.00, [("Beans", 100)]),
        _request("a2", 0.01, 0.00, [("Beans", 100)]),
        _request("a3", 0.02, 0.00, [("Beans", 100)]),
        _request("b1", 5.00, 5.00, [("Millet", 1)], urgency="high"),
        _request("b2", 5.01, 5.00, [("Millet", 1)]),
        _request("b3", 5.02, 5.00, [("Millet", 1)]),
    ]
    assert [c.item for c in compute_clusters(requests)] == ["Millet", "Beans"]


def test_mixed_units_are_reported_per_unit():
    requests = [
        _request("u1", 10.00, 10.00, [("Milk", 2, "l")]),
        _request("u2", 10.01, 10.00, [("Milk", 3, "l")]),
        _request("u3", 10.02, 10.00, [("Milk", 1, "can")]),
    ]
    c = compute_clusters(requests)[0]
    assert c.unit == "l"
    assert c.demand_by_unit == {"can": 1, "l": 5}


def test_radius_and_minimum_size_come_from_settings():
    requests = _rice_triangle()
    tight = get_settings().clustering.model_copy(update={"radius_km": 1.0})
    assert compute_clusters(requests, settings=tight) == []

    pairs = get_settings().clustering.model_copy(update={"min_members": 2})
    two = requests[:2]
    assert len(compute_clusters(two, settings=pairs)) == 1


def test_malformed_coordinates_are_rejected():
    bad = _rice_triangle()
    broken_location = bad[0].location.model_construct(
        name="Nowhere", coordinates=bad[0].location.coordinates.model_construct(lat=123.0, lng=0.0)
    )
    bad[0] = bad[0].model_copy(update={"location": broken_location})
    with pytest.raises(ValidationError):
        compute_clusters(bad)
