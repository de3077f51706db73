"""
EcoReport - Geospatial Utilities
Coordinate value type and conversions to and from stored records.
"""

import math
from typing import Any, Dict, Optional
from dataclasses import dataclass


@dataclass(frozen=True)
class Location:
    """Geographic point with latitude and longitude."""
    latitude: float
    longitude: float

    def to_record(self) -> Dict[str, float]:
        """Stored shape used by the reports table."""
        return {"lat": self.latitude, "lng": self.longitude}

    def format(self, precision: int = 6) -> str:
        return f"{self.latitude:.{precision}f}, {self.longitude:.{precision}f}"


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    """Check that a latitude/longitude pair is finite and in range."""
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        return False

    if math.isnan(lat) or math.isnan(lon):
        return False

    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def is_placeholder_coordinate(latitude: float, longitude: float) -> bool:
    """True for (0, 0), which older clients stored when no fix was available."""
    return float(latitude) == 0.0 and float(longitude) == 0.0


def location_from_record(value: Optional[Dict[str, Any]]) -> Optional[Location]:
    """
    Parse a stored location.

    Accepts ``{"lat", "lng"}`` as well as ``{"latitude", "longitude"}``.
    Missing, malformed or out-of-range values yield None, as does the
    ``(0, 0)`` placeholder older clients wrote when no fix was available.

    Args:
        value: Stored location mapping

    Returns:
        Location or None
    """
    if not value or not isinstance(value, dict):
        return None

    lat = value.get("lat", value.get("latitude"))
    lng = value.get("lng", value.get("longitude"))

    if lat is None or lng is None or not is_valid_coordinate(lat, lng):
        return None

    if is_placeholder_coordinate(lat, lng):
        return None

    return Location(latitude=float(lat), longitude=float(lng))
