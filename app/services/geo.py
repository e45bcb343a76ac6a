from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence

from app.models import BoundingBox, Coordinate

EARTH_RADIUS_M = 6371000.0

# 5% of the span on each side.
VIEWPORT_PAD_RATIO = 0.05
# Used on an axis whose span is zero (a single result, or results on one meridian).
MIN_PAD_DEG = 0.01

POLYLINE_PRECISION = 1e5


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle (haversine) distance in meters between two WGS84 coords."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlambda = math.radians(b.lng - a.lng)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c


def box_around(center: Coordinate, delta_deg: float = MIN_PAD_DEG) -> BoundingBox:
    return BoundingBox(
        north=center.lat + delta_deg,
        south=center.lat - delta_deg,
        east=center.lng + delta_deg,
        west=center.lng - delta_deg,
    )


def bounding_box(points: Iterable[Coordinate]) -> Optional[BoundingBox]:
    """Padded box around ``points``, or None when there are none.

    No antimeridian handling: east >= west always.
    """
    points = list(points)
    if not points:
        return None

    north = max(p.lat for p in points)
    south = min(p.lat for p in points)
    east = max(p.lng for p in points)
    west = min(p.lng for p in points)

    pad_lat = (north - south) * VIEWPORT_PAD_RATIO or MIN_PAD_DEG
    pad_lng = (east - west) * VIEWPORT_PAD_RATIO or MIN_PAD_DEG

    return BoundingBox(
        north=north + pad_lat,
        south=south - pad_lat,
        east=east + pad_lng,
        west=west - pad_lng,
    )


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode_polyline(points: Sequence[Coordinate]) -> str:
    """Encode coordinates with Google's encoded polyline algorithm (5 decimals)."""
    out = []
    prev_lat = prev_lng = 0
    for p in points:
        lat = int(round(p.lat * POLYLINE_PRECISION))
        lng = int(round(p.lng * POLYLINE_PRECISION))
        out.append(_encode_value(lat - prev_lat))
        out.append(_encode_value(lng - prev_lng))
        prev_lat, prev_lng = lat, lng
    return "".join(out)


def decode_polyline(encoded: str) -> List[Coordinate]:
    """Decode a Google encoded polyline into coordinates.

    Raises ValueError on a truncated string.
    """
    coords: List[Coordinate] = []
    index = 0
    lat = lng = 0
    length = len(encoded)

    while index < length:
        deltas = []
        for _ in range(2):
            shift = result = 0
            while True:
                if index >= length:
                    raise ValueError("Truncated polyline")
                b = ord(encoded[index]) - 63
                index += 1
                result |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(result >> 1) if result & 1 else result >> 1)
        lat += deltas[0]
        lng += deltas[1]
        coords.append(Coordinate(lat=lat / POLYLINE_PRECISION, lng=lng / POLYLINE_PRECISION))

    return coords
