"""Coordinate parsing and formatting helpers."""

import math
import re

from pydantic import ValidationError

from teleweb_bot.domain.geo import GeoPoint

EARTH_RADIUS_M = 6_371_000.0

_NUMBER = r"[-+]?\d+(?:[.,]\d+)?"

_LABELLED = re.compile(
    rf"(?:lat|latitude)[:\s=]*({_NUMBER})"
    rf"[\s\S]*?(?:lon|long|longitude)[:\s=]*({_NUMBER})",
    re.IGNORECASE,
)
_DIRECTIONAL = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*°?\s*([NS])[\s,+]*(\d+(?:[.,]\d+)?)\s*°?\s*([EW])",
    re.IGNORECASE,
)
_DMS = re.compile(
    r"(\d+)°\s*(\d+)'\s*(\d+(?:\.\d+)?)\"\s*([NS])[\s,]+"
    r"(\d+)°\s*(\d+)'\s*(\d+(?:\.\d+)?)\"\s*([EW])",
    re.IGNORECASE,
)
_DECIMAL_PAIR = re.compile(
    r"(-?\d{1,3}\.\d+)\s*[,\s]\s*(-?\d{1,3}\.\d+)(?!\s*°\s*[CF])"
)


def make_point(latitude: float, longitude: float) -> GeoPoint | None:
    """Return a point, or ``None`` when the values are out of range."""
    try:
        return GeoPoint(latitude=latitude, longitude=longitude)
    except ValidationError:
        return None


def parse_coordinate_args(args: list[str]) -> GeoPoint | None:
    """Parse ``lat lon`` or ``lat, lon`` typed after a command."""
    joined = " ".join(args).replace(",", " ")
    parts = joined.split()
    if len(parts) < 2:
        return None
    try:
        latitude = float(parts[0])
        longitude = float(parts[1])
    except ValueError:
        return None
    return make_point(latitude, longitude)


def extract_coordinates(text: str) -> GeoPoint | None:
    """Find the first plausible coordinate pair in free text.

    Labelled values win over directional ones, then DMS, then a bare
    decimal pair.
    """
    match = _LABELLED.search(text)
    if match:
        point = make_point(_to_float(match.group(1)), _to_float(match.group(2)))
        if point:
            return point

    match = _DIRECTIONAL.search(text)
    if match:
        latitude = _signed(_to_float(match.group(1)), match.group(2))
        longitude = _signed(_to_float(match.group(3)), match.group(4))
        point = make_point(latitude, longitude)
        if point:
            return point

    match = _DMS.search(text)
    if match:
        latitude = dms_to_decimal(
            int(match.group(1)),
            int(match.group(2)),
            float(match.group(3)),
            match.group(4),
        )
        longitude = dms_to_decimal(
            int(match.group(5)),
            int(match.group(6)),
            float(match.group(7)),
            match.group(8),
        )
        point = make_point(latitude, longitude)
        if point:
            return point

    for match in _DECIMAL_PAIR.finditer(text):
        point = make_point(float(match.group(1)), float(match.group(2)))
        if point:
            return point
    return None


def dms_to_decimal(degrees: int, minutes: int, seconds: float, direction: str) -> float:
    value = degrees + minutes / 60 + seconds / 3600
    return round(_signed(value, direction), 6)


def format_decimal(point: GeoPoint) -> str:
    return f"{point.latitude:.6f}, {point.longitude:.6f}"


def format_dms(point: GeoPoint) -> str:
    latitude = _dms_component(point.latitude, "N" if point.latitude >= 0 else "S")
    longitude = _dms_component(point.longitude, "E" if point.longitude >= 0 else "W")
    return f"{latitude} {longitude}"


def haversine_m(start: GeoPoint, end: GeoPoint) -> float:
    """Great-circle distance between two points in metres."""
    lat1 = math.radians(start.latitude)
    lat2 = math.radians(end.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(end.longitude - start.longitude)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def format_distance(metres: float) -> str:
    if metres < 1000:
        return f"{metres:.1f} m"
    return f"{metres / 1000:.2f} km"


def _dms_component(value: float, direction: str) -> str:
    absolute = abs(value)
    degrees = int(absolute)
    minutes_full = (absolute - degrees) * 60
    minutes = int(minutes_full)
    seconds = (minutes_full - minutes) * 60
    return f"{degrees}°{minutes}'{seconds:.1f}\" {direction}"


def _signed(value: float, direction: str) -> float:
    if direction.upper() in {"S", "W"}:
        return -abs(value)
    return value


def _to_float(raw: str) -> float:
    return float(raw.replace(",", "."))
