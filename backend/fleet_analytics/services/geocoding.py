"""
Reverse geocoding (lat/lon -> address text) for activity timelines.

Addresses are best effort: any lookup failure falls back to the raw
"lat, lon" text and never fails the analytics.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx


logger = logging.getLogger(__name__)


class ReverseGeocoder(Protocol):
    def reverse(self, latitude: float, longitude: float) -> Optional[str]:
        ...


def coordinate_text(latitude: float, longitude: float) -> str:
    return f"{latitude:.6f}, {longitude:.6f}"


def describe_location(
    latitude: float,
    longitude: float,
    geocoder: Optional[ReverseGeocoder] = None,
) -> str:
    """Address for a coordinate, or the coordinate text when none is available."""
    if geocoder is None:
        return coordinate_text(latitude, longitude)
    try:
        address = geocoder.reverse(latitude, longitude)
    except Exception as e:
        logger.warning(f"Reverse geocoding failed for {latitude:.5f},{longitude:.5f}: {e}")
        address = None
    return address or coordinate_text(latitude, longitude)


def coord_key(latitude: float, longitude: float, precision: int) -> str:
    """Cache key from coordinates rounded to `precision` decimals."""
    return f"{round(latitude, precision):.{precision}f},{round(longitude, precision):.{precision}f}"


@dataclass(frozen=True)
class NominatimConfig:
    base_url: str = "https://nominatim.openstreetmap.org/reverse"
    accept_language: str = "en"
    zoom: int = 18
    timeout_seconds: float = 10.0
    user_agent: str = "fleet-trajectory-analytics/0.1.0"
    cache_precision: int = 4  # ~11 m of latitude
    cache_size: int = 4096


class NominatimGeocoder:
    """
    Reverse geocoder backed by OpenStreetMap Nominatim.

    Lookups are cached per rounded coordinate in a bounded LRU cache; failed
    lookups are not cached. Safe to call from worker threads.
    """

    def __init__(self, config: Optional[NominatimConfig] = None, client: Optional[httpx.Client] = None):
        self.config = config or NominatimConfig()
        self._client = client or httpx.Client(
            timeout=self.config.timeout_seconds,
            headers={"User-Agent": self.config.user_agent, "Accept": "application/json"},
        )
        self._lookup = functools.lru_cache(maxsize=self.config.cache_size)(self._fetch)

    def reverse(self, latitude: float, longitude: float) -> Optional[str]:
        key = coord_key(latitude, longitude, self.config.cache_precision)
        try:
            return self._lookup(key)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Nominatim lookup failed for {key}: {e}")
            return None

    def cache_info(self):
        return self._lookup.cache_info()

    def _fetch(self, key: str) -> Optional[str]:
        latitude, longitude = key.split(",")
        params = {
            "format": "jsonv2",
            "lat": latitude,
            "lon": longitude,
            "zoom": str(self.config.zoom),
            "accept-language": self.config.accept_language,
        }
        response = self._client.get(self.config.base_url, params=params)
        response.raise_for_status()
        return response.json().get("display_name") or None

    def close(self) -> None:
        self._lookup.cache_clear()
        self._client.close()
