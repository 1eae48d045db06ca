import math

import pytest

from domain.models import Coordinate
from services.geo import (
    bounding_box,
    haversine_km,
    is_valid_coordinate,
    radius_degrees_for_zoom,
    radius_km_for_zoom,
    search_window,
    to_coordinate,
)


def test_haversine_zero_distance():
    assert haversine_km(40.7128, -74.006, 40.7128, -74.006) == 0.0


def test_haversine_one_degree_latitude():
    # 2 * pi * 6371 / 360
    assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, abs=0.01)


def test_haversine_is_symmetric():
    a = haversine_km(51.5, -0.12, 48.85, 2.35)
    b = haversine_km(48.85, 2.35, 51.5, -0.12)
    assert a == pytest.approx(b)
    assert 340 < a < 345


def test_haversine_antipodal_points():
    lat, lon = -3.5604986972286667, -104.21804908156534
    distance = haversine_km(lat, lon, -lat, lon + 180.0)
    assert distance == pytest.approx(math.pi * 6371.0, rel=1e-6)
    assert haversine_km(3.5605, 75.7820, -3.5605, -104.2180) == pytest.approx(math.pi * 6371.0, rel=1e-6)


def test_radius_doubles_per_zoom_level_out():
    assert radius_degrees_for_zoom(14) == pytest.approx(0.01)
    assert radius_degrees_for_zoom(13) == pytest.approx(0.02)
    assert radius_degrees_for_zoom(15) == pytest.approx(0.005)
    assert radius_km_for_zoom(14) == pytest.approx(1.11)


def test_radius_accepts_custom_base():
    assert radius_degrees_for_zoom(12, base_radius=0.005) == pytest.approx(0.02)


def test_bounding_box_is_centered():
    bbox = bounding_box(40.0, -74.0, 0.04)
    assert bbox.south == pytest.approx(39.96)
    assert bbox.north == pytest.approx(40.04)
    assert bbox.west == pytest.approx(-74.04)
    assert bbox.east == pytest.approx(-73.96)


@pytest.mark.parametrize(
    "lat, lon",
    [
        (0, 0),
        (90, 180),
        (-90, -180),
        ("40.5", "-74.1"),
    ],
)
def test_valid_coordinates(lat, lon):
    assert is_valid_coordinate(lat, lon)


@pytest.mark.parametrize(
    "lat, lon",
    [
        (None, 0),
        (0, None),
        (91, 0),
        (0, -180.5),
        (math.nan, 0),
        (0, math.inf),
        (True, 0),
        ("abc", 0),
    ],
)
def test_invalid_coordinates(lat, lon):
    assert not is_valid_coordinate(lat, lon)


def test_to_coordinate_keeps_zero_values():
    assert to_coordinate(0, 0) == Coordinate(0.0, 0.0)
    assert to_coordinate(100, 0) is None


def test_search_window_contains_circle_edge():
    center = Coordinate(60.0, 10.0)
    radius = 5.0
    min_lat, max_lat, lon_range = search_window(center, radius)
    assert lon_range is not None
    # a point due east exactly on the circle must survive the prefilter
    east_lon = lon_range[1]
    assert haversine_km(60.0, 10.0, 60.0, east_lon) >= radius
    assert min_lat < 60.0 - radius / 111.2 < max_lat


def test_search_window_drops_lon_filter_at_antimeridian():
    _, _, lon_range = search_window(Coordinate(0.0, 179.99), 5.0)
    assert lon_range is None


def test_search_window_drops_lon_filter_near_pole():
    min_lat, max_lat, lon_range = search_window(Coordinate(89.99, 0.0), 5.0)
    assert lon_range is None
    assert max_lat == 90.0
