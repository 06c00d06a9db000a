import math
from typing import Any, Tuple

from ..core.errors import InvalidCoordinates

# Mean Earth radius in meters
EARTH_RADIUS_METERS = 6_371_000

MIN_LATITUDE, MAX_LATITUDE = -90.0, 90.0
MIN_LONGITUDE, MAX_LONGITUDE = -180.0, 180.0


def to_radians(degrees: float) -> float:
    return degrees * (math.pi / 180)


def to_degrees(radians: float) -> float:
    return radians * (180 / math.pi)


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> int:
    """
    Great-circle distance between two points using the haversine formula.

    Returns the distance in meters, rounded to the nearest meter. Inputs are
    expected to be validated already; non-finite input yields NaN.
    """
    lat1_rad = to_radians(lat1)
    lat2_rad = to_radians(lat2)
    delta_lat = to_radians(lat2 - lat1)
    delta_lng = to_radians(lng2 - lng1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2)
    # Float drift can push a a hair above 1 for antipodal points
    if a > 1.0:
        a = 1.0
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    distance = EARTH_RADIUS_METERS * c
    return round(distance) if math.isfinite(distance) else distance


def bearing_degrees(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Initial compass bearing from point 1 to point 2, normalized to [0, 360)."""
    lat1_rad = to_radians(lat1)
    lat2_rad = to_radians(lat2)
    delta_lng = to_radians(lng2 - lng1)

    y = math.sin(delta_lng) * math.cos(lat2_rad)
    x = (math.cos(lat1_rad) * math.sin(lat2_rad) -
         math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(delta_lng))

    return (to_degrees(math.atan2(y, x)) + 360) % 360


def is_within_radius(center: Tuple[float, float], point: Tuple[float, float], radius: float) -> bool:
    """True if point lies within radius meters of center. The boundary is inclusive."""
    return distance_meters(center[0], center[1], point[0], point[1]) <= radius


def coerce_number(value: Any) -> float | None:
    """
    Coerce a JSON/query value to a finite float.

    Accepts ints, floats and numeric strings. Returns None for anything else,
    including booleans, empty strings, NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    return (math.isfinite(latitude) and math.isfinite(longitude)
            and MIN_LATITUDE <= latitude <= MAX_LATITUDE
            and MIN_LONGITUDE <= longitude <= MAX_LONGITUDE)


def parse_coordinates(latitude: Any, longitude: Any) -> Tuple[float, float]:
    """
    Validate a raw latitude/longitude pair.

    Numeric zero is a valid coordinate (equator / prime meridian). Raises
    InvalidCoordinates when either value is missing, non-numeric or out of range.
    """
    lat = coerce_number(latitude)
    lng = coerce_number(longitude)
    if lat is None or lng is None or not is_valid_coordinate(lat, lng):
        raise InvalidCoordinates(
            f"Latitude must be between {MIN_LATITUDE:g} and {MAX_LATITUDE:g}, "
            f"longitude between {MIN_LONGITUDE:g} and {MAX_LONGITUDE:g}"
        )
    return lat, lng
