"""
Analytics configuration value objects.

Every heuristic threshold used by the engine lives here with its documented
default. Callers build one AnalyticsConfig per request; nothing reads
global state during processing.
"""

import logging
import math
import os
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Optional

from fleet_analytics.utils.timeutils import tzinfo_from_name


logger = logging.getLogger(__name__)


# Environment overrides (read by load_config_from_env)
SPEED_LIMIT_ENV = "FLEET_SPEED_LIMIT_KPH"
TIMEZONE_ENV = "FLEET_TIMEZONE"
MAX_CONCURRENCY_ENV = "FLEET_MAX_CONCURRENCY"

DEFAULT_SPEED_LIMIT_KPH = 90.0
DEFAULT_TIMEZONE = "UTC"
DEFAULT_MAX_CONCURRENCY = 8


class ConfigurationError(ValueError):
    """Invalid analytics configuration; rejected before any processing."""


class IncidentType(str, Enum):
    """Driving incident categories."""

    HARSH_ACCELERATION = "harshAcceleration"
    HARSH_BRAKING = "harshBraking"
    SHARP_STEERING = "sharpSteering"
    OVERSPEED = "overspeed"
    HIGH_RPM = "highRpm"


class PeriodType(str, Enum):
    """Mileage report bucketing mode."""

    HOUR = "hour"
    DAY = "day"
    MONTH = "month"


ALL_INCIDENT_TYPES: frozenset[IncidentType] = frozenset(IncidentType)


@dataclass(frozen=True)
class SegmentationThresholds:
    """Trip/stop boundary heuristics."""

    max_gap_seconds: float = 600.0          # time gap that always splits
    stop_speed_kph: float = 2.0             # below this a sample is stationary
    stationary_seconds: float = 300.0       # stationary span that ends a trip
    min_trip_minutes: float = 2.0           # meaningful trip: long enough...
    min_trip_distance_km: float = 0.2       # ...or far enough

    # stop classification
    min_parking_seconds: float = 60.0       # ignition-off stop at least this long is parking
    traffic_stop_seconds: float = 180.0     # ignition-on stop shorter than this is traffic
    delivery_stop_seconds: float = 900.0    # ...shorter than this is a delivery, longer is parking

    def validate(self) -> None:
        _require_positive("max_gap_seconds", self.max_gap_seconds)
        _require_positive("stop_speed_kph", self.stop_speed_kph)
        _require_positive("stationary_seconds", self.stationary_seconds)
        _require_non_negative("min_trip_minutes", self.min_trip_minutes)
        _require_non_negative("min_trip_distance_km", self.min_trip_distance_km)
        _require_non_negative("min_parking_seconds", self.min_parking_seconds)
        _require_positive("traffic_stop_seconds", self.traffic_stop_seconds)
        _require_positive("delivery_stop_seconds", self.delivery_stop_seconds)
        if self.delivery_stop_seconds < self.traffic_stop_seconds:
            raise ConfigurationError(
                f"delivery_stop_seconds must be >= traffic_stop_seconds, "
                f"got {self.delivery_stop_seconds} < {self.traffic_stop_seconds}"
            )


@dataclass(frozen=True)
class IncidentThresholds:
    """Driving incident thresholds and severity tiers."""

    max_pair_gap_seconds: float = 300.0

    # m/s^2, applied to |a| for braking
    acceleration_mps2: float = 3.0
    acceleration_medium_mps2: float = 4.0
    acceleration_high_mps2: float = 5.0

    # degrees
    steering_degrees: float = 45.0
    steering_medium_degrees: float = 60.0
    steering_high_degrees: float = 90.0
    steering_min_speed_kph: float = 20.0

    # km/h
    overspeed_kph: float = 130.0
    overspeed_medium_kph: float = 145.0
    overspeed_high_kph: float = 160.0

    # rev/min
    rpm: float = 3500.0
    rpm_medium: float = 4000.0
    rpm_high: float = 5000.0

    def validate(self) -> None:
        _require_positive("max_pair_gap_seconds", self.max_pair_gap_seconds)
        _require_tiers("acceleration", self.acceleration_mps2, self.acceleration_medium_mps2, self.acceleration_high_mps2)
        _require_tiers("steering", self.steering_degrees, self.steering_medium_degrees, self.steering_high_degrees)
        _require_tiers("overspeed", self.overspeed_kph, self.overspeed_medium_kph, self.overspeed_high_kph)
        _require_tiers("rpm", self.rpm, self.rpm_medium, self.rpm_high)
        _require_non_negative("steering_min_speed_kph", self.steering_min_speed_kph)
        if self.steering_high_degrees > 180.0:
            raise ConfigurationError("steering_high_degrees must not exceed 180")


@dataclass(frozen=True)
class AnalyticsConfig:
    """
    Per-request configuration.

    incident_types_enabled defaults to every incident type.
    """

    speed_limit_kph: float = DEFAULT_SPEED_LIMIT_KPH
    incident_types_enabled: frozenset[IncidentType] = ALL_INCIDENT_TYPES
    timezone: str = DEFAULT_TIMEZONE
    segmentation: SegmentationThresholds = field(default_factory=SegmentationThresholds)
    incidents: IncidentThresholds = field(default_factory=IncidentThresholds)
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    def validate(self) -> "AnalyticsConfig":
        """Raise ConfigurationError on invalid values; returns self for chaining."""
        _require_non_negative("speed_limit_kph", self.speed_limit_kph)
        if self.max_concurrency < 1:
            raise ConfigurationError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        unknown = [t for t in self.incident_types_enabled if not isinstance(t, IncidentType)]
        if unknown:
            raise ConfigurationError(f"Unknown incident types: {unknown}")
        try:
            tzinfo_from_name(self.timezone)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        self.segmentation.validate()
        self.incidents.validate()
        return self

    @property
    def tzinfo(self):
        return tzinfo_from_name(self.timezone)

    def with_incident_types(self, names: Optional[list[str]]) -> "AnalyticsConfig":
        """Copy with the enabled incident types replaced (None keeps all)."""
        if names is None:
            return self
        return replace(self, incident_types_enabled=parse_incident_types(names))


@dataclass(frozen=True)
class MileageRequest:
    """Period selection for a mileage report."""

    period_type: PeriodType
    start_date: date
    end_date: date

    def validate(self) -> "MileageRequest":
        if not isinstance(self.period_type, PeriodType):
            raise ConfigurationError(f"Unknown period type: {self.period_type!r}")
        if self.end_date < self.start_date:
            raise ConfigurationError(
                f"end_date {self.end_date} is before start_date {self.start_date}"
            )
        if self.period_type == PeriodType.HOUR and self.end_date != self.start_date:
            raise ConfigurationError("hour reports cover a single day (start_date == end_date)")
        return self

    @property
    def day_count(self) -> int:
        return (self.end_date - self.start_date).days + 1


def parse_incident_types(names: list[str]) -> frozenset[IncidentType]:
    """Map incident type names to IncidentType; unknown names are a configuration error."""
    result = set()
    for name in names:
        try:
            result.add(IncidentType(name))
        except ValueError as exc:
            raise ConfigurationError(f"Unknown incident type: {name!r}") from exc
    return frozenset(result)


def parse_period_type(name: str) -> PeriodType:
    try:
        return PeriodType(name)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown period type: {name!r}") from exc


def load_config_from_env() -> AnalyticsConfig:
    """
    Build the default AnalyticsConfig, applying environment overrides.
    """
    speed_limit = _env_float(SPEED_LIMIT_ENV, DEFAULT_SPEED_LIMIT_KPH)
    tz_name = os.getenv(TIMEZONE_ENV, DEFAULT_TIMEZONE)
    max_concurrency = int(_env_float(MAX_CONCURRENCY_ENV, DEFAULT_MAX_CONCURRENCY))

    config = AnalyticsConfig(
        speed_limit_kph=speed_limit,
        timezone=tz_name,
        max_concurrency=max_concurrency,
    )
    logger.debug(f"Loaded analytics config from environment: {config}")
    return config.validate()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _require_positive(name: str, value: float) -> None:
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {value}")


def _require_non_negative(name: str, value: float) -> None:
    if not math.isfinite(value) or value < 0:
        raise ConfigurationError(f"{name} must be >= 0, got {value}")


def _require_tiers(name: str, low: float, medium: float, high: float) -> None:
    _require_non_negative(f"{name} threshold", low)
    if not (low <= medium <= high):
        raise ConfigurationError(
            f"{name} tiers must be ordered low <= medium <= high, got {low}, {medium}, {high}"
        )
