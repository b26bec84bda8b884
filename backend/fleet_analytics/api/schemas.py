"""
API schemas (Pydantic models) for request/response validation.
"""

from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Request Schemas
# ============================================================================

class PositionSchema(BaseModel):
    """
    Raw position as posted by a client (validated by the normalizer, not here).

    Unknown keys are kept so the fleet API's camelCase names (recordedAt,
    speedKph, isRealTimeData, ...) reach RawPositionRecord.from_mapping.
    """
    model_config = ConfigDict(extra="allow")

    timestamp: Optional[Union[float, str]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    speed_kph: Optional[float] = None
    heading_degrees: Optional[float] = None
    ignition_on: Optional[bool] = None
    odometer_km: Optional[float] = None
    rpm: Optional[float] = None
    is_live_telemetry: Optional[bool] = None


class AnalyticsConfigSchema(BaseModel):
    """Per-request overrides; omitted fields keep the server defaults."""
    speed_limit_kph: Optional[float] = None
    incident_types: Optional[list[str]] = None
    timezone: Optional[str] = None
    max_gap_seconds: Optional[float] = None
    stop_speed_kph: Optional[float] = None
    stationary_seconds: Optional[float] = None
    min_trip_minutes: Optional[float] = None
    min_trip_distance_km: Optional[float] = None
    min_parking_seconds: Optional[float] = None
    traffic_stop_seconds: Optional[float] = None
    delivery_stop_seconds: Optional[float] = None


class AnalyzeRequest(BaseModel):
    """Positions of one vehicle plus optional window and configuration."""
    vehicle_id: str = "vehicle"
    positions: list[PositionSchema]
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    config: Optional[AnalyticsConfigSchema] = None


class MileageAnalyzeRequest(AnalyzeRequest):
    period_type: str = "day"
    start_date: date
    end_date: date
    previous_positions: Optional[list[PositionSchema]] = None


# ============================================================================
# Segment Schemas
# ============================================================================

class SegmentResponse(BaseModel):
    """Trip or stop."""
    kind: str  # "trip" or "stop"
    start_time: datetime
    end_time: datetime
    start_index: int
    end_index: int
    sample_count: int
    duration_s: float
    start_lat: float
    start_lon: float
    end_lat: float
    end_lon: float
    distance_km: Optional[float] = None
    avg_speed_kph: Optional[float] = None
    max_speed_kph: Optional[float] = None
    distance_source: Optional[str] = None
    ignition_off: Optional[bool] = None
    stop_type: Optional[str] = None  # "parking", "traffic", "delivery" or "unknown"


class SegmentationResponse(BaseModel):
    vehicle_id: str
    sample_count: int
    trip_count: int
    stop_count: int
    total_distance_km: float
    segments: list[SegmentResponse]


# ============================================================================
# Mileage Schemas
# ============================================================================

class MileageBucketResponse(BaseModel):
    label: str
    start: date
    distance_km: float
    trip_count: int
    driving_minutes: float
    avg_speed_kph: float
    max_speed_kph: float
    hour: Optional[int] = None
    day_of_week: Optional[str] = None
    average_daily_km: Optional[float] = None
    days_with_activity: Optional[int] = None
    total_days: Optional[int] = None


class PeriodComparisonResponse(BaseModel):
    previous_start: date
    previous_end: date
    previous_total_km: float
    difference_km: float
    percentage_change: float
    trend: str


class ChartPointResponse(BaseModel):
    label: str
    value: float
    tooltip: Optional[str] = None


class MileageReportResponse(BaseModel):
    period_type: str
    start_date: date
    end_date: date
    has_data: bool
    buckets: list[MileageBucketResponse]
    total_distance_km: float
    average_distance_km: float
    max_distance_km: float
    min_distance_km: float
    total_trip_count: int
    total_driving_minutes: float
    total_driving_formatted: str
    previous_period_comparison: Optional[PeriodComparisonResponse] = None
    chart: list[ChartPointResponse] = Field(default_factory=list)


# ============================================================================
# Incident / Infraction Schemas
# ============================================================================

class IncidentResponse(BaseModel):
    type: str
    vehicle_id: str
    timestamp: datetime
    latitude: float
    longitude: float
    value: float
    severity: str


class InfractionResponse(BaseModel):
    vehicle_id: str
    timestamp: datetime
    latitude: float
    longitude: float
    speed_kph: float
    limit_kph: float
    excess_kph: float
    is_severe: bool


class ScoreResponse(BaseModel):
    vehicle_id: str
    score: float
    grade: str
    total_incidents: int
    counts: dict[str, int]


class FanOutStatus(BaseModel):
    """Per-vehicle outcome of a fleet-wide request."""
    vehicle_count: int
    failed: dict[str, str] = Field(default_factory=dict)
    stale: list[str] = Field(default_factory=list)
    cancelled: list[str] = Field(default_factory=list)


class FleetIncidentsResponse(FanOutStatus):
    items: list[IncidentResponse]


class FleetInfractionsResponse(FanOutStatus):
    items: list[InfractionResponse]


class FleetScoresResponse(FanOutStatus):
    items: list[ScoreResponse]


# ============================================================================
# Activity Schemas
# ============================================================================

class ActivityEntryResponse(BaseModel):
    kind: str  # "drive" or "stop"
    start_time: datetime
    end_time: datetime
    duration_s: float
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


class ActivityResponse(BaseModel):
    has_data: bool
    entries: list[ActivityEntryResponse]
    total_driving_s: float
    total_stopped_s: float
    total_active_s: float
    total_distance_km: float
    drive_count: int
    stop_count: int
    max_speed_kph: float
    avg_speed_kph: float
    position_count: int


# ============================================================================
# Vehicle Schemas
# ============================================================================

class VehicleResponse(BaseModel):
    vehicle_id: str
    name: str
    plate: Optional[str] = None


# ============================================================================
# Error Schemas
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    code: Optional[str] = None
