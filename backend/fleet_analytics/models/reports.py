"""
Analytical result objects returned to callers.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional

from fleet_analytics.models.config import IncidentType, PeriodType


SEVERE_EXCESS_KPH = 30.0


# ============================================================================
# Mileage
# ============================================================================

class Trend(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    STABLE = "stable"


@dataclass(frozen=True)
class MileagePeriodBucket:
    """Statistics of the trips starting inside one period."""

    label: str
    start: date
    distance_km: float = 0.0
    trip_count: int = 0
    driving_minutes: float = 0.0
    avg_speed_kph: float = 0.0
    max_speed_kph: float = 0.0

    # hour mode
    hour: Optional[int] = None
    # day mode
    day_of_week: Optional[str] = None
    # month mode
    average_daily_km: Optional[float] = None
    days_with_activity: Optional[int] = None
    total_days: Optional[int] = None

    @property
    def has_data(self) -> bool:
        return self.trip_count > 0


@dataclass(frozen=True)
class PeriodComparison:
    """Current period against the immediately preceding one of equal length."""

    previous_start: date
    previous_end: date
    previous_total_km: float
    difference_km: float
    percentage_change: float
    trend: Trend


@dataclass(frozen=True)
class ChartPoint:
    label: str
    value: float
    tooltip: Optional[str] = None


@dataclass(frozen=True)
class MileagePeriodReport:
    period_type: PeriodType
    start_date: date
    end_date: date
    has_data: bool
    buckets: tuple[MileagePeriodBucket, ...] = ()
    total_distance_km: float = 0.0
    average_distance_km: float = 0.0
    max_distance_km: float = 0.0
    min_distance_km: float = 0.0
    total_trip_count: int = 0
    total_driving_minutes: float = 0.0
    total_driving_formatted: str = "0s"
    previous_period_comparison: Optional[PeriodComparison] = None

    def chart_points(self) -> list[ChartPoint]:
        """One point per bucket, for bar/line charts."""
        points = []
        for bucket in self.buckets:
            if self.period_type == PeriodType.MONTH:
                tooltip = f"{bucket.label}: {bucket.distance_km:.1f} km ({bucket.days_with_activity} active days)"
            elif self.period_type == PeriodType.DAY:
                tooltip = f"{bucket.day_of_week}: {bucket.distance_km:.1f} km"
            else:
                tooltip = f"{bucket.distance_km:.1f} km - {bucket.trip_count} trips"
            points.append(ChartPoint(label=bucket.label, value=bucket.distance_km, tooltip=tooltip))
        return points


# ============================================================================
# Driving behaviour
# ============================================================================

class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class DrivingIncident:
    """
    A flagged driving-behaviour event.

    value is in the unit of the type: m/s^2 for acceleration and braking
    (braking as a positive magnitude), degrees for steering, km/h for
    overspeed and rev/min for high rpm.
    """

    type: IncidentType
    vehicle_id: str
    timestamp: datetime
    latitude: float
    longitude: float
    value: float
    severity: Severity


@dataclass(frozen=True)
class SpeedInfraction:
    vehicle_id: str
    timestamp: datetime
    latitude: float
    longitude: float
    speed_kph: float
    limit_kph: float

    @property
    def excess_kph(self) -> float:
        return self.speed_kph - self.limit_kph

    @property
    def is_severe(self) -> bool:
        return self.excess_kph > SEVERE_EXCESS_KPH


@dataclass(frozen=True)
class DrivingScore:
    vehicle_id: str
    score: float
    grade: str
    total_incidents: int
    counts: dict[str, int] = field(default_factory=dict)


# ============================================================================
# Daily activity
# ============================================================================

@dataclass(frozen=True)
class ActivityEntry:
    """One drive or stop on an activity timeline."""

    kind: str  # "drive" or "stop"
    start_time: datetime
    end_time: datetime
    duration_seconds: float
    duration_formatted: str
    latitude: float
    longitude: float
    location: str
    distance_km: Optional[float] = None
    avg_speed_kph: Optional[float] = None
    max_speed_kph: Optional[float] = None
    end_latitude: Optional[float] = None
    end_longitude: Optional[float] = None
    ignition_off: Optional[bool] = None
    stop_type: Optional[str] = None


@dataclass(frozen=True)
class ActivitySummary:
    has_data: bool
    entries: tuple[ActivityEntry, ...] = ()
    total_driving_seconds: float = 0.0
    total_stopped_seconds: float = 0.0
    total_distance_km: float = 0.0
    drive_count: int = 0
    stop_count: int = 0
    max_speed_kph: float = 0.0
    avg_speed_kph: float = 0.0
    position_count: int = 0

    @property
    def total_active_seconds(self) -> float:
        return self.total_driving_seconds + self.total_stopped_seconds
