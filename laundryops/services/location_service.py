"""
Location utilities for route planning

Distances use the haversine formula on a spherical earth. Travel time is a
flat average city speed estimate. Geocoding is a city-centre lookup: it is
good enough to cluster orders by city but not to navigate.
"""

import logging
import math
from typing import Callable, Iterable, NamedTuple, Optional, TypeVar

from ..config import DEPOT_LATITUDE, DEPOT_LONGITUDE

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371
AVERAGE_CITY_SPEED_KMH = 30

T = TypeVar("T")


class Coordinates(NamedTuple):
    latitude: float
    longitude: float


DEPOT = Coordinates(DEPOT_LATITUDE, DEPOT_LONGITUDE)

TURKISH_CITY_CENTERS = {
    "istanbul": Coordinates(41.0082, 28.9784),
    "ankara": Coordinates(39.9334, 32.8597),
    "izmir": Coordinates(38.4237, 27.1428),
    "bursa": Coordinates(40.1885, 29.061),
    "antalya": Coordinates(36.8969, 30.7133),
    "adana": Coordinates(37.0, 35.3213),
    "konya": Coordinates(37.8713, 32.4846),
    "sanliurfa": Coordinates(37.1674, 38.7955),
    "gaziantep": Coordinates(37.0662, 37.3833),
    "kayseri": Coordinates(38.7312, 35.4787),
}

_TURKISH_ASCII = str.maketrans("İIıŞşĞğÜüÖöÇç", "iiissgguuoocc")


def coordinates_of(latitude: Optional[float], longitude: Optional[float]) -> Optional[Coordinates]:
    """Build Coordinates from nullable columns"""
    if latitude is None or longitude is None:
        return None
    return Coordinates(latitude, longitude)


def calculate_distance(point1: Coordinates, point2: Coordinates) -> float:
    """Great circle distance in kilometers"""
    d_lat = math.radians(point2.latitude - point1.latitude)
    d_lon = math.radians(point2.longitude - point1.longitude)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(point1.latitude))
        * math.cos(math.radians(point2.latitude))
        * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def estimate_travel_time(distance_km: float, average_speed_kmh: float = AVERAGE_CITY_SPEED_KMH) -> int:
    """Travel time in whole minutes"""
    return round(distance_km / average_speed_kmh * 60)


def find_nearest(
    current: Coordinates, items: Iterable[T], key: Callable[[T], Optional[Coordinates]]
) -> tuple[Optional[T], float]:
    """Return the closest item with coordinates and its distance (inf when none)"""
    nearest = None
    min_distance = math.inf
    for item in items:
        point = key(item)
        if point is None:
            continue
        distance = calculate_distance(current, point)
        if distance < min_distance:
            nearest, min_distance = item, distance
    return nearest, min_distance


def sort_by_distance(
    reference: Coordinates, items: Iterable[T], key: Callable[[T], Optional[Coordinates]]
) -> list[tuple[T, float]]:
    """
    Pair each item with its distance from ``reference``, nearest first.

    Items without coordinates are dropped.
    """
    with_distance = []
    for item in items:
        point = key(item)
        if point is not None:
            with_distance.append((item, calculate_distance(reference, point)))
    with_distance.sort(key=lambda pair: pair[1])
    return with_distance


def is_within_radius(center: Coordinates, point: Coordinates, radius_km: float) -> bool:
    return calculate_distance(center, point) <= radius_km


def get_bounding_box(points: list[Coordinates]) -> dict:
    """North/south/east/west extents and their midpoint"""
    if not points:
        raise ValueError("Cannot create bounding box for empty coordinates list")

    north = max(p.latitude for p in points)
    south = min(p.latitude for p in points)
    east = max(p.longitude for p in points)
    west = min(p.longitude for p in points)
    return {
        "north": north,
        "south": south,
        "east": east,
        "west": west,
        "center": Coordinates((north + south) / 2, (east + west) / 2),
    }


def get_center_point(points: list[Coordinates]) -> Coordinates:
    """Arithmetic mean of the coordinates"""
    if not points:
        raise ValueError("Cannot calculate center of empty coordinates list")
    return Coordinates(
        sum(p.latitude for p in points) / len(points),
        sum(p.longitude for p in points) / len(points),
    )


def is_valid_coordinates(latitude, longitude) -> bool:
    if isinstance(latitude, bool) or isinstance(longitude, bool):
        return False
    if not isinstance(latitude, (int, float)) or not isinstance(longitude, (int, float)):
        return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def format_coordinates(point: Coordinates, precision: int = 4) -> str:
    return f"{point.latitude:.{precision}f}, {point.longitude:.{precision}f}"


def calculate_route_distance(waypoints: list[Coordinates]) -> float:
    """Sum of consecutive leg distances, 0 for fewer than two waypoints"""
    if len(waypoints) < 2:
        return 0.0
    return sum(calculate_distance(a, b) for a, b in zip(waypoints, waypoints[1:]))


def optimize_route(
    start: Coordinates, destinations: list[T], key: Callable[[T], Coordinates]
) -> list[T]:
    """
    Greedy nearest neighbour ordering of ``destinations`` starting at ``start``.

    Ties keep the earlier destination.
    """
    unvisited = list(destinations)
    ordered = []
    current = start
    while unvisited:
        nearest_index = min(
            range(len(unvisited)), key=lambda i: calculate_distance(current, key(unvisited[i]))
        )
        nearest = unvisited.pop(nearest_index)
        ordered.append(nearest)
        current = key(nearest)
    return ordered


def normalize_city(city: str) -> str:
    return city.strip().translate(_TURKISH_ASCII).lower()


def geocode_address(address: Optional[str], city: Optional[str] = None) -> Coordinates:
    """
    Resolve an address to coordinates.

    Only the city is used. Unknown cities fall back to the depot. When no
    city is given, the last comma separated part of the address is tried.
    """
    candidates = []
    if city:
        candidates.append(city)
    if address:
        candidates.append(address.split(",")[-1])

    for candidate in candidates:
        center = TURKISH_CITY_CENTERS.get(normalize_city(candidate))
        if center:
            return center

    logger.warning(f"⚠️ Could not geocode address: {address}, city: {city}")
    return DEPOT
