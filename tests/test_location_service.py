import math

import pytest

from laundryops.services import location_service
from laundryops.services.location_service import DEPOT, Coordinates

ISTANBUL = Coordinates(41.0082, 28.9784)
ANKARA = Coordinates(39.9334, 32.8597)


def test_distance_between_istanbul_and_ankara():
    distance = location_service.calculate_distance(ISTANBUL, ANKARA)
    assert 345 < distance < 355


def test_distance_to_same_point_is_zero():
    assert location_service.calculate_distance(ISTANBUL, ISTANBUL) == 0


def test_travel_time_uses_average_city_speed():
    assert location_service.estimate_travel_time(15) == 30
    assert location_service.estimate_travel_time(10, average_speed_kmh=60) == 10


def test_find_nearest_skips_items_without_coordinates():
    items = [
        {"name": "none", "point": None},
        {"name": "ankara", "point": ANKARA},
        {"name": "kadikoy", "point": Coordinates(40.99, 29.03)},
    ]
    nearest, distance = location_service.find_nearest(ISTANBUL, items, key=lambda i: i["point"])
    assert nearest["name"] == "kadikoy"
    assert distance < 10


def test_find_nearest_with_no_candidates():
    nearest, distance = location_service.find_nearest(ISTANBUL, [], key=lambda i: i)
    assert nearest is None
    assert math.isinf(distance)


def test_sort_by_distance_drops_unlocated_items():
    items = [ANKARA, None, Coordinates(40.99, 29.03)]
    ordered = location_service.sort_by_distance(ISTANBUL, items, key=lambda p: p)
    assert [point for point, _ in ordered] == [Coordinates(40.99, 29.03), ANKARA]


def test_bounding_box_and_center():
    box = location_service.get_bounding_box([ISTANBUL, ANKARA])
    assert box["north"] == ISTANBUL.latitude
    assert box["west"] == ISTANBUL.longitude
    assert box["center"] == location_service.get_center_point([ISTANBUL, ANKARA])


def test_bounding_box_rejects_empty_input():
    with pytest.raises(ValueError):
        location_service.get_bounding_box([])
    with pytest.raises(ValueError):
        location_service.get_center_point([])


@pytest.mark.parametrize(
    "latitude, longitude, expected",
    [
        (41.0, 29.0, True),
        (-90, 180, True),
        (91, 0, False),
        (0, -181, False),
        ("41", 29, False),
        (True, 29, False),
    ],
)
def test_is_valid_coordinates(latitude, longitude, expected):
    assert location_service.is_valid_coordinates(latitude, longitude) is expected


def test_route_distance_sums_legs():
    assert location_service.calculate_route_distance([ISTANBUL]) == 0.0
    middle = Coordinates(40.5, 30.9)
    total = location_service.calculate_route_distance([ISTANBUL, middle, ANKARA])
    assert total == pytest.approx(
        location_service.calculate_distance(ISTANBUL, middle) + location_service.calculate_distance(middle, ANKARA)
    )


def test_optimize_route_is_nearest_neighbour():
    far = Coordinates(41.5, 29.5)
    near = Coordinates(41.01, 28.98)
    mid = Coordinates(41.2, 29.2)
    ordered = location_service.optimize_route(ISTANBUL, [far, near, mid], key=lambda p: p)
    assert ordered == [near, mid, far]


def test_geocode_uses_city_then_address_then_depot():
    assert location_service.geocode_address("Kızılay", "Ankara") == ANKARA
    assert location_service.geocode_address("Alsancak Mah., İzmir") == location_service.TURKISH_CITY_CENTERS["izmir"]
    assert location_service.geocode_address("Somewhere", "Atlantis") == DEPOT
    assert location_service.geocode_address(None) == DEPOT


def test_format_coordinates():
    assert location_service.format_coordinates(ISTANBUL) == "41.0082, 28.9784"
    assert location_service.format_coordinates(ISTANBUL, precision=1) == "41.0, 29.0"
