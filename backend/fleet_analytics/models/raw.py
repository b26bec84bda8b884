"""
Raw position model (provider-shaped, unnormalized).

History providers return these records before normalization. Fields keep
whatever the feed delivered: timestamps may be text or epoch numbers, and
any optional channel may be missing.
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional


# Key aliases accepted by from_mapping (first match wins)
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "timestamp": ("timestamp", "recordedAt", "recorded_at", "time", "gpsTime"),
    "latitude": ("latitude", "lat"),
    "longitude": ("longitude", "lng", "lon"),
    "speed_kph": ("speed_kph", "speedKph", "speed"),
    "heading_degrees": ("heading_degrees", "headingDeg", "heading", "course"),
    "ignition_on": ("ignition_on", "ignitionOn", "ignition"),
    "odometer_km": ("odometer_km", "odometerKm", "odometer"),
    "rpm": ("rpm", "engineRpm", "engine_rpm"),
    "is_live_telemetry": ("is_live_telemetry", "isLiveTelemetry", "isRealTimeData", "is_real_time"),
}


@dataclass(frozen=True)
class RawPositionRecord:
    """One position fix as delivered by a history provider."""

    timestamp: Any
    latitude: Optional[float]
    longitude: Optional[float]
    speed_kph: Optional[float] = None
    heading_degrees: Optional[float] = None
    ignition_on: Optional[bool] = None
    odometer_km: Optional[float] = None
    rpm: Optional[float] = None
    is_live_telemetry: Optional[bool] = None  # None: feed never reports it

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RawPositionRecord":
        """
        Build a record from a JSON object or CSV row.

        Accepts snake_case keys and the camelCase keys used by the fleet API.
        """
        values: dict[str, Any] = {}
        for name, aliases in FIELD_ALIASES.items():
            for alias in aliases:
                if alias in data:
                    values[name] = data[alias]
                    break

        return cls(
            timestamp=values.get("timestamp"),
            latitude=_optional_float(values.get("latitude")),
            longitude=_optional_float(values.get("longitude")),
            speed_kph=_optional_float(values.get("speed_kph")),
            heading_degrees=_optional_float(values.get("heading_degrees")),
            ignition_on=parse_flag(values.get("ignition_on")),
            odometer_km=_optional_float(values.get("odometer_km")),
            rpm=_optional_float(values.get("rpm")),
            is_live_telemetry=parse_flag(values.get("is_live_telemetry")),
        )


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def parse_flag(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    return bool(value)
