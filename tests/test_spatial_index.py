import random

import pytest

from agromatch.core.geo import GeoPoint, haversine_km
from agromatch.core.spatial_index import SpatialBandIndex


def test_query_within_matches_bruteforce_scan():
    rng = random.Random(42)
    points = [GeoPoint(lat=rng.uniform(17.0, 18.0), lng=rng.uniform(78.0, 79.0)) for _ in range(300)]
    index = SpatialBandIndex(points, get_point=lambda p: p, band_height_km=10.0)
    assert len(index) == 300

    for origin in points[:40]:
        expected = {id(p) for p in points if haversine_km(origin, p) <= 10.0}
        got = {id(p) for p in index.query_within(origin, radius_km=10.0)}
        assert got == expected


def test_query_radius_larger_than_band_height_scans_more_bands():
    points = [GeoPoint(lat=0.0, lng=0.0), GeoPoint(lat=0.2, lng=0.0)]  # ~22 km apart
    index = SpatialBandIndex(points, get_point=lambda p: p, band_height_km=5.0)

    assert index.query_within(points[0], radius_km=25.0) == points
    assert index.query_within(points[0], radius_km=10.0) == [points[0]]


def test_negative_radius_returns_nothing_and_bad_band_height_rejected():
    index = SpatialBandIndex([GeoPoint(0.0, 0.0)], get_point=lambda p: p)
    assert index.query_within(GeoPoint(0.0, 0.0), radius_km=-1) == []
    with pytest.raises(ValueError):
        SpatialBandIndex([], get_point=lambda p: p, band_height_km=0)
