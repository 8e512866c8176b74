import pytest

from app.services.geo import bounding_box, haversine_m


def test_haversine_zero_distance():
    assert haversine_m(47.37, 8.54, 47.37, 8.54) == 0


def test_haversine_known_distance():
    # one degree of latitude is ~111.2 km on the mean-radius sphere
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111195, rel=1e-3)


@pytest.mark.parametrize(
    "lat,lng,other",
    [
        (47.37, 8.54, (47.38, 8.55)),
        (-33.87, 151.21, (-33.88, 151.20)),
        (0.0, 0.0, (0.01, -0.01)),
    ],
)
def test_bounding_box_contains_points_inside_radius(lat, lng, other):
    radius = haversine_m(lat, lng, *other)
    min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius)

    assert min_lat <= other[0] <= max_lat
    assert min_lng <= other[1] <= max_lng


def test_bounding_box_drops_longitude_across_antimeridian():
    _, _, min_lng, max_lng = bounding_box(0.0, 179.99, 5000)
    assert min_lng is None and max_lng is None


def test_bounding_box_drops_longitude_near_pole():
    min_lat, max_lat, min_lng, max_lng = bounding_box(89.99, 10.0, 5000)
    assert max_lat == 90.0
    assert min_lng is None and max_lng is None
