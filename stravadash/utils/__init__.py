"""Utility modules for the application."""

from .auth import StravaAuthHelper
from .polyline import PolylineDecodeError, decode_polyline, to_geojson_coords

__all__ = ["StravaAuthHelper", "PolylineDecodeError", "decode_polyline", "to_geojson_coords"]
