"""
geo.py — Great-circle distance, radius filtering, and polyline decoding.

Coordinates passed around as paths use GeoJSON order: (lon, lat).

Usage:
    from citypulse_shared.geo import haversine_km, is_within_radius, decode_polyline

    haversine_km(42.3601, -71.0589, 42.3691, -71.0589)    # ~1.0
    is_within_radius(42.36, -71.06, 42.3601, -71.0589, 45)  # True
    decode_polyline("_p~iF~ps|U_ulLnnqC")                   # [(-120.2, 38.5), (-120.95, 40.7)]
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

EARTH_RADIUS_KM = 6371.0
POLYLINE_PRECISION = 1e5

LonLat = tuple[float, float]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two WGS84 points."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def is_within_radius(
    lat: float,
    lon: float,
    center_lat: float,
    center_lon: float,
    radius_km: float,
) -> bool:
    """True when (lat, lon) lies within radius_km of the centre (boundary inclusive)."""
    return haversine_km(lat, lon, center_lat, center_lon) <= radius_km


def path_within_radius(
    path: Iterable[LonLat],
    center_lat: float,
    center_lon: float,
    radius_km: float,
) -> bool:
    """True when any (lon, lat) point of the path is inside the radius."""
    return any(
        is_within_radius(lat, lon, center_lat, center_lon, radius_km) for lon, lat in path
    )


def is_valid_coordinate(lat: float | None, lon: float | None) -> bool:
    """Finite and inside WGS84 bounds. (0, 0) is valid here; callers never default to it."""
    if lat is None or lon is None:
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def _read_varint(encoded: str, index: int) -> tuple[int, int] | None:
    """Read one zig-zag varint starting at index. Returns (value, next_index) or None."""
    shift = 0
    result = 0
    while True:
        if index >= len(encoded):
            return None
        byte = ord(encoded[index]) - 63
        index += 1
        if byte < 0 or byte > 0x3F:
            return None
        result |= (byte & 0x1F) << shift
        shift += 5
        if byte < 0x20:
            break
    value = ~(result >> 1) if result & 1 else result >> 1
    return value, index


def decode_polyline(encoded: str, precision: float = POLYLINE_PRECISION) -> list[LonLat]:
    """
    Decode an encoded polyline string into a list of (lon, lat) tuples.

    Standard algorithm: each coordinate is a pair of delta-encoded
    zig-zag varints in 5-bit groups offset by 63. A truncated or corrupt
    stream stops decoding and the already-decoded prefix is returned, so
    a prefix of the input always decodes to a prefix of the output.

    Args:
        encoded:   Encoded polyline.
        precision: Scale factor (1e5 for the common format).

    Returns:
        List of (lon, lat) tuples; empty for empty input.
    """
    coordinates: list[LonLat] = []
    if not encoded:
        return coordinates

    index = 0
    lat = 0
    lon = 0
    while index < len(encoded):
        lat_step = _read_varint(encoded, index)
        if lat_step is None:
            break
        lon_step = _read_varint(encoded, lat_step[1])
        if lon_step is None:
            break
        lat += lat_step[0]
        lon += lon_step[0]
        index = lon_step[1]
        coordinates.append((lon / precision, lat / precision))

    return coordinates


def dominant_axis(points: Sequence[LonLat]) -> int:
    """
    Return 0 when longitude spread >= latitude spread, else 1.

    Used to order a bag of positions into an approximate path; it is a
    heuristic and has no meaning for looping or branching routes.
    """
    if not points:
        return 0
    lons = [p[0] for p in points]
    lats = [p[1] for p in points]
    return 0 if (max(lons) - min(lons)) >= (max(lats) - min(lats)) else 1
