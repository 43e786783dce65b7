from math import asin, atan2, cos, degrees, pi, radians, sin

import pytest

from spotmap.core.geo import BoundingBox, bounding_box, haversine_km, split_antimeridian


def _destination(lat: float, lon: float, bearing_deg: float, distance_km: float) -> tuple[float, float]:
    d = distance_km / 6371.0
    phi1, lam1, theta = radians(lat), radians(lon), radians(bearing_deg)
    phi2 = asin(sin(phi1) * cos(d) + cos(phi1) * sin(d) * cos(theta))
    lam2 = lam1 + atan2(sin(theta) * sin(d) * cos(phi1), cos(d) - sin(phi1) * sin(phi2))
    lon2 = (degrees(lam2) + 540.0) % 360.0 - 180.0
    return degrees(phi2), lon2


def _inside(box: BoundingBox, lat: float, lon: float, eps: float = 1e-9) -> bool:
    if not (box.min_lat - eps <= lat <= box.max_lat + eps):
        return False
    if box.crosses_antimeridian:
        return lon >= box.min_lon - eps or lon <= box.max_lon + eps
    return box.min_lon - eps <= lon <= box.max_lon + eps


def test_haversine_identity_and_symmetry():
    assert haversine_km(52.37, 4.90, 52.37, 4.90) == 0.0
    a = haversine_km(52.3676, 4.9041, 48.8566, 2.3522)
    b = haversine_km(48.8566, 2.3522, 52.3676, 4.9041)
    assert a == pytest.approx(b)
    assert a == pytest.approx(430, abs=5)


def test_haversine_quarter_meridian():
    assert haversine_km(0, 0, 90, 0) == pytest.approx(pi / 2 * 6371.0, rel=1e-9)


def test_haversine_antipodal_does_not_fail():
    assert haversine_km(0, 0, 0, 180) == pytest.approx(pi * 6371.0, rel=1e-9)


@pytest.mark.parametrize(
    "center",
    [(52.3676, 4.9041), (0.0, 0.0), (70.0, 179.5), (-60.0, -179.9), (-33.9, 151.2)],
)
@pytest.mark.parametrize("radius_km", [1.0, 50.0, 500.0])
def test_bounding_box_contains_circle(center, radius_km):
    lat, lon = center
    box = bounding_box(lat, lon, radius_km)
    assert _inside(box, lat, lon)
    for bearing in range(0, 360, 5):
        p_lat, p_lon = _destination(lat, lon, bearing, radius_km)
        assert _inside(box, p_lat, p_lon), (bearing, p_lat, p_lon, box)


def test_bounding_box_wraps_across_antimeridian():
    box = bounding_box(0.0, 179.0, 200.0)
    assert box.crosses_antimeridian
    assert box.min_lon > 170
    assert box.max_lon < -170

    west, east = split_antimeridian(box)
    assert (west.min_lon, west.max_lon) == (box.min_lon, 180.0)
    assert (east.min_lon, east.max_lon) == (-180.0, box.max_lon)
    assert west.min_lat == east.min_lat == box.min_lat
    assert west.max_lat == east.max_lat == box.max_lat


def test_split_leaves_ordinary_box_alone():
    box = BoundingBox(min_lat=50, max_lat=53, min_lon=3, max_lon=7)
    assert split_antimeridian(box) == [box]


def test_bounding_box_near_pole_spans_all_longitudes():
    box = bounding_box(89.9, 12.0, 50.0)
    assert (box.min_lon, box.max_lon) == (-180.0, 180.0)
    assert box.max_lat == 90.0
    assert box.min_lat < 89.9


def test_bounding_box_zero_radius_is_the_point():
    box = bounding_box(10.0, 20.0, 0.0)
    assert box.min_lat == box.max_lat == 10.0
    assert box.min_lon == box.max_lon == 20.0


def test_bounding_box_rejects_negative_radius():
    with pytest.raises(ValueError):
        bounding_box(0.0, 0.0, -1.0)


def test_contains_handles_seam_crossing_boxes():
    box = BoundingBox(min_lat=-10, max_lat=10, min_lon=170, max_lon=-170)
    assert box.contains(0, 175)
    assert box.contains(0, -175)
    assert not box.contains(0, 0)
    assert not box.contains(20, 175)
