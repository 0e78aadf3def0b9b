from __future__ import annotations

import math

import pytest

from bunda.core.geo import (
    GeoPoint,
    bounding_box,
    centroid,
    cluster_centroids,
    cluster_points,
    format_address,
    format_postcode_locality,
    geojson_feature_collection,
    geojson_point,
    geojson_polygon,
    haversine_km,
    interpolate_points,
    lambert72_to_wgs84,
    point_in_bounding_box,
    to_degrees,
    to_radians,
)

BRUSSELS = GeoPoint(lat=50.8503, lon=4.3517)
ANTWERP = GeoPoint(lat=51.2194, lon=4.4025)
GHENT = GeoPoint(lat=51.0543, lon=3.7174)


def test_radians_degrees_inverse():
    assert to_radians(180) == pytest.approx(math.pi)
    assert to_degrees(to_radians(50.8503)) == pytest.approx(50.8503)


def test_haversine_brussels_antwerp_known_value():
    assert haversine_km(BRUSSELS, ANTWERP) == pytest.approx(41.2, abs=1.0)


def test_haversine_is_symmetric_and_zero_on_identity():
    assert haversine_km(BRUSSELS, GHENT) == pytest.approx(haversine_km(GHENT, BRUSSELS))
    assert haversine_km(BRUSSELS, BRUSSELS) == 0.0


def test_haversine_antipodal_points_stay_finite():
    d = haversine_km(GeoPoint(0, 0), GeoPoint(0, 180))
    assert d == pytest.approx(math.pi * 6371.0, rel=1e-9)


def test_bounding_box_contains_center_and_scales_longitude():
    box = bounding_box(BRUSSELS, 10)
    assert point_in_bounding_box(BRUSSELS, box)
    assert box.max_lat - box.min_lat == pytest.approx(2 * 10 / 111.32)
    # Longitude degrees are shorter away from the equator, so the span is wider.
    assert (box.max_lon - box.min_lon) > (box.max_lat - box.min_lat)
    assert not point_in_bounding_box(ANTWERP, box)


def test_bounding_box_at_pole_does_not_divide_by_zero():
    box = bounding_box(GeoPoint(90, 0), 5)
    assert box.min_lon == -180.0
    assert box.max_lon == 180.0


def test_centroid_of_empty_or_incomplete_input_is_none():
    assert centroid([]) is None
    assert centroid(None) is None
    assert centroid([{"lat": 50.0}, {"lon": 4.0}, None]) is None


def test_centroid_accepts_mappings_and_objects():
    c = centroid([{"lat": 50.0, "lon": 4.0}, {"latitude": 52.0, "longitude": 4.0}, GeoPoint(51.0, 4.0)])
    assert c is not None
    assert c.lat == pytest.approx(51.0, abs=0.01)
    assert c.lon == pytest.approx(4.0, abs=1e-9)


def test_centroid_across_antimeridian():
    c = centroid([GeoPoint(0, 179), GeoPoint(0, -179)])
    assert abs(c.lon) == pytest.approx(180.0)


def test_cluster_points_groups_by_chain_of_neighbours():
    # a-b and b-c are ~0.8 km apart, a-c ~1.6 km: single linkage keeps them together.
    a = GeoPoint(50.8500, 4.3500)
    b = GeoPoint(50.8572, 4.3500)
    c = GeoPoint(50.8644, 4.3500)
    far = ANTWERP
    clusters = cluster_points([a, far, c, b], threshold_km=1.0)
    assert sorted(len(cl) for cl in clusters) == [1, 3]
    big = next(cl for cl in clusters if len(cl) == 3)
    assert set(big) == {a, b, c}


def test_cluster_points_keeps_points_without_coordinates_apart():
    items = [{"lat": 50.85, "lon": 4.35}, {"lat": None, "lon": None}, {"lat": 50.8501, "lon": 4.3501}]
    clusters = cluster_points(items, threshold_km=1.0)
    assert [len(c) for c in clusters] == [2, 1]


def test_cluster_points_sort_key_makes_output_deterministic():
    pts = [GHENT, BRUSSELS, ANTWERP]
    one = cluster_points(pts, 1.0, sort_key=lambda p: (p.lat, p.lon))
    two = cluster_points(list(reversed(pts)), 1.0, sort_key=lambda p: (p.lat, p.lon))
    assert one == two
    assert one[0] == [BRUSSELS]


def test_cluster_centroids_report_size():
    clusters = cluster_points([BRUSSELS, GeoPoint(50.8504, 4.3518), ANTWERP], threshold_km=1.0)
    summaries = cluster_centroids(clusters)
    assert [s.size for s in summaries] == [2, 1]
    assert summaries[1].center.lat == pytest.approx(ANTWERP.lat)


def test_interpolate_points_includes_both_ends():
    pts = interpolate_points(BRUSSELS, ANTWERP, count=4)
    assert len(pts) == 5
    assert pts[0] == BRUSSELS
    assert pts[-1].lat == pytest.approx(ANTWERP.lat)
    assert pts[2].lat == pytest.approx((BRUSSELS.lat + ANTWERP.lat) / 2)
    assert interpolate_points(BRUSSELS, ANTWERP, count=0) == [BRUSSELS]


def test_geojson_builders_use_lon_lat_order():
    feature = geojson_point(BRUSSELS, {"id": 1})
    assert feature["geometry"]["coordinates"] == [4.3517, 50.8503]
    assert feature["properties"] == {"id": 1}

    fc = geojson_feature_collection([(BRUSSELS, None), (ANTWERP, {"id": 2})])
    assert fc["type"] == "FeatureCollection"
    assert len(fc["features"]) == 2
    assert fc["features"][0]["properties"] == {}

    poly = geojson_polygon(bounding_box(BRUSSELS, 1))
    ring = poly["geometry"]["coordinates"][0]
    assert ring[0] == ring[-1]
    assert len(ring) == 5


def test_lambert72_origin_maps_to_projection_reference():
    p = lambert72_to_wgs84(150000.01256, 5400088.4378)
    assert p.lat == pytest.approx(50.797815)
    assert p.lon == pytest.approx(4.367486666666667)


@pytest.mark.parametrize(
    ("postal_code", "locality", "expected"),
    [
        ("1000", "Brussel", "1000 Brussel"),
        (2000, "Antwerpen", "2000 Antwerpen"),
        ("75001", "Paris", "Paris"),
        (None, "Gent", ""),
        ("9000", None, ""),
    ],
)
def test_format_postcode_locality(postal_code, locality, expected):
    assert format_postcode_locality(postal_code, locality) == expected


def test_format_address():
    assert format_address("Wetstraat", "16", "1000", "Brussel") == "Wetstraat 16, 1000 Brussel"
    assert format_address("Meir", None, "2000", "Antwerpen") == "Meir, 2000 Antwerpen"
    assert format_address(None, "16", "1000", "Brussel") == "1000 Brussel"
    assert format_address("Wetstraat", "16", None, None) == "Wetstraat 16"
    assert format_address(None, None, None, None) == ""
