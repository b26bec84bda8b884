"""
Great-circle distance utilities.

All distances are in kilometres on a spherical Earth (Haversine). Accurate
enough at vehicle-trip scale; not exact for antipodal points.
"""

from typing import Protocol, Union

import numpy as np
from numpy.typing import NDArray


EARTH_RADIUS_KM = 6371.0  # mean Earth radius

FloatOrArray = Union[float, NDArray[np.float64]]


class HasCoordinates(Protocol):
    latitude: float
    longitude: float


def haversine_km(
    lat1: FloatOrArray,
    lon1: FloatOrArray,
    lat2: FloatOrArray,
    lon2: FloatOrArray,
) -> FloatOrArray:
    """
    Calculate great-circle distance between two points (or arrays of points).

    Args:
        lat1, lon1: First point coordinates in degrees
        lat2, lon2: Second point coordinates in degrees

    Returns:
        Distance in kilometres. NaN coordinates produce NaN.
    """
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(np.subtract(lat2, lat1))
    dlon = np.radians(np.subtract(lon2, lon1))

    a = np.sin(dlat / 2) ** 2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2) ** 2
    # Guard against tiny negative values from rounding
    a = np.clip(a, 0.0, 1.0)
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    result = EARTH_RADIUS_KM * c
    if np.ndim(result) == 0:
        return float(result)
    return result


def distance_km(a: HasCoordinates, b: HasCoordinates) -> float:
    """Distance in km between two objects carrying latitude/longitude."""
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def path_distances_km(
    lat: NDArray[np.float64],
    lon: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Leg lengths between consecutive points of a path.

    Args:
        lat: Latitude array in degrees
        lon: Longitude array in degrees

    Returns:
        Array of length len(lat) - 1 (empty for fewer than two points)
    """
    lat = np.asarray(lat, dtype=np.float64)
    lon = np.asarray(lon, dtype=np.float64)
    if len(lat) < 2:
        return np.zeros(0, dtype=np.float64)
    return np.asarray(haversine_km(lat[:-1], lon[:-1], lat[1:], lon[1:]), dtype=np.float64)


def heading_difference(previous: float, current: float) -> float:
    """Absolute heading change in degrees, folded into [0, 180]."""
    diff = abs(current - previous) % 360.0
    if diff > 180.0:
        diff = 360.0 - diff
    return diff
