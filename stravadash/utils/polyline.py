"""Decoder for Google encoded polylines.

Strava ships activity routes as encoded polylines (``map.summary_polyline``
and ``map.polyline``). Each coordinate is stored as a delta from the previous
one, scaled by 1e5, zig-zag encoded and split into 5-bit chunks. Every chunk
is offset by 63 to land in printable ASCII and has bit 0x20 set while more
chunks follow.

Reference: https://developers.google.com/maps/documentation/utilities/polylinealgorithm
"""

from typing import List, Sequence, Tuple

PRECISION = 1e5

Coordinate = Tuple[float, float]


class PolylineDecodeError(ValueError):
    """Raised when an encoded polyline is malformed."""

    def __init__(self, message: str, position: int):
        self.position = position
        super().__init__(f"{message} at position {position}")


def _decode_value(encoded: str, index: int) -> Tuple[int, int]:
    """Decode one signed value starting at ``index``.

    Returns the value and the index of the next unread character.
    """
    result = 0
    shift = 0
    while True:
        if index >= len(encoded):
            raise PolylineDecodeError("Unterminated value", index)
        chunk = ord(encoded[index]) - 63
        if chunk < 0 or chunk > 0x3F:
            raise PolylineDecodeError(f"Invalid character {encoded[index]!r}", index)
        index += 1
        result |= (chunk & 0x1F) << shift
        shift += 5
        if not chunk & 0x20:
            break

    if result & 1:
        return ~(result >> 1), index
    return result >> 1, index


def decode_polyline(encoded: str) -> List[Coordinate]:
    """Decode an encoded polyline into ``(latitude, longitude)`` pairs.

    Args:
        encoded: Polyline string, e.g. an activity's ``summary_polyline``

    Returns:
        Coordinates in the order they were encoded. An empty string gives
        an empty list.

    Raises:
        PolylineDecodeError: If the string ends in the middle of a value,
            holds a latitude with no longitude, or contains a character
            outside the encoding alphabet.
    """
    points: List[Coordinate] = []
    index = 0
    lat = 0
    lng = 0

    while index < len(encoded):
        delta_lat, index = _decode_value(encoded, index)
        lat += delta_lat

        if index >= len(encoded):
            raise PolylineDecodeError("Latitude without longitude", index)
        delta_lng, index = _decode_value(encoded, index)
        lng += delta_lng

        points.append((lat / PRECISION, lng / PRECISION))

    return points


def to_geojson_coords(points: Sequence[Sequence[float]]) -> List[Coordinate]:
    """Swap ``(lat, lng)`` pairs to the ``(lng, lat)`` order GeoJSON expects."""
    return [(lng, lat) for lat, lng in points]
