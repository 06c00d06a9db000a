import math

import pytest

from safety_analytics.core.errors import InvalidCoordinates
from safety_analytics.utils.geodesy import (
    bearing_degrees,
    coerce_number,
    distance_meters,
    is_within_radius,
    parse_coordinates,
)

POINTS = [
    (40.7580, -73.9855),
    (40.7520, -73.9860),
    (0.0, 0.0),
    (-33.8688, 151.2093),
    (51.5074, -0.1278),
    (89.9, 179.9),
]


def test_distance_regression_value():
    """Two demo users near Times Square are roughly 667 meters apart."""
    assert abs(distance_meters(40.7580, -73.9855, 40.7520, -73.9860) - 667) <= 5


def test_distance_identical_points_is_zero():
    for lat, lng in POINTS:
        assert distance_meters(lat, lng, lat, lng) == 0


def test_distance_is_symmetric():
    for lat1, lng1 in POINTS:
        for lat2, lng2 in POINTS:
            assert distance_meters(lat1, lng1, lat2, lng2) == distance_meters(lat2, lng2, lat1, lng1)


def test_distance_returns_rounded_integer():
    distance = distance_meters(0, 0, 0, 0.001)
    assert isinstance(distance, int)
    assert distance == 111


def test_distance_antipodal_points():
    # Half the circumference of a 6,371 km sphere
    assert distance_meters(0, 0, 0, 180) == round(math.pi * 6_371_000)


def test_distance_non_finite_input_yields_nan():
    assert math.isnan(distance_meters(float("nan"), 0, 0, 0))


@pytest.mark.parametrize("lat2,lng2,expected", [
    (1, 0, 0),
    (0, 1, 90),
    (-1, 0, 180),
    (0, -1, 270),
])
def test_bearing_cardinal_directions(lat2, lng2, expected):
    assert bearing_degrees(0, 0, lat2, lng2) == pytest.approx(expected, abs=1e-9)


def test_bearing_is_within_range():
    for lat1, lng1 in POINTS:
        for lat2, lng2 in POINTS:
            assert 0 <= bearing_degrees(lat1, lng1, lat2, lng2) < 360


def test_is_within_radius_boundary_is_inclusive():
    center, point = (0, 0), (0, 0.001)
    assert is_within_radius(center, point, 111)
    assert not is_within_radius(center, point, 110)


def test_coerce_number():
    assert coerce_number(12) == 12.0
    assert coerce_number("26.85") == 26.85
    assert coerce_number(" -3 ") == -3.0
    assert coerce_number(0) == 0.0
    assert coerce_number(None) is None
    assert coerce_number(True) is None
    assert coerce_number("") is None
    assert coerce_number("north") is None
    assert coerce_number(float("inf")) is None
    assert coerce_number("nan") is None
    assert coerce_number([1]) is None


def test_parse_coordinates_accepts_zero():
    assert parse_coordinates(0, 0) == (0.0, 0.0)


@pytest.mark.parametrize("lat,lng", [
    (91, 0),
    (-90.5, 0),
    (0, 180.1),
    (0, -181),
    (None, 0),
    ("abc", 10),
    (float("nan"), 10),
])
def test_parse_coordinates_rejects_invalid(lat, lng):
    with pytest.raises(InvalidCoordinates) as exc_info:
        parse_coordinates(lat, lng)
    assert exc_info.value.reason == "invalid_coordinates"
