"""
Normalized position data and the segments derived from it.

Every object here is immutable and created fresh per analytics request.
Timestamps are timezone-aware UTC datetimes.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union


@dataclass(frozen=True)
class PositionSample:
    """One validated GPS fix for a single vehicle."""

    timestamp: datetime
    latitude: float
    longitude: float
    speed_kph: float
    heading_degrees: Optional[float] = None
    ignition_on: Optional[bool] = None
    odometer_km: Optional[float] = None
    rpm: Optional[float] = None
    is_live_telemetry: bool = True

    def seconds_since(self, other: "PositionSample") -> float:
        return (self.timestamp - other.timestamp).total_seconds()


class SegmentKind(Enum):
    TRIP = "trip"
    STOP = "stop"


class DistanceSource(Enum):
    """Where a trip's distance came from."""

    GPS = "gps"            # integrated Haversine legs
    ODOMETER = "odometer"  # end - start odometer reading


@dataclass(frozen=True)
class Trip:
    """
    Continuous movement interval.

    start_index/end_index are inclusive positions in the normalized stream
    the trip was segmented from.
    """

    start_sample: PositionSample
    end_sample: PositionSample
    start_index: int
    end_index: int
    distance_km: float
    duration_seconds: float
    avg_speed_kph: float
    max_speed_kph: float
    distance_source: DistanceSource = DistanceSource.GPS

    kind = SegmentKind.TRIP

    @property
    def sample_count(self) -> int:
        return self.end_index - self.start_index + 1

    @property
    def duration_minutes(self) -> float:
        return self.duration_seconds / 60.0

    @property
    def start_time(self) -> datetime:
        return self.start_sample.timestamp

    @property
    def end_time(self) -> datetime:
        return self.end_sample.timestamp


class StopType(Enum):
    """Why a vehicle was stopped, judged from duration and ignition."""

    PARKING = "parking"
    TRAFFIC = "traffic"
    DELIVERY = "delivery"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Stop:
    """Stationary interval (vehicle parked or jitter around a parked position)."""

    start_sample: PositionSample
    end_sample: PositionSample
    start_index: int
    end_index: int
    duration_seconds: float
    ignition_off: bool = False
    stop_type: StopType = StopType.UNKNOWN

    kind = SegmentKind.STOP

    @property
    def sample_count(self) -> int:
        return self.end_index - self.start_index + 1

    @property
    def start_time(self) -> datetime:
        return self.start_sample.timestamp

    @property
    def end_time(self) -> datetime:
        return self.end_sample.timestamp


Segment = Union[Trip, Stop]


@dataclass(frozen=True)
class SegmentationResult:
    """Trips and stops of one normalized stream, in chronological order."""

    trips: tuple[Trip, ...]
    stops: tuple[Stop, ...]
    sample_count: int

    @property
    def segments(self) -> list[Segment]:
        """Trips and stops interleaved by stream position."""
        return sorted([*self.trips, *self.stops], key=lambda s: s.start_index)

    @property
    def total_distance_km(self) -> float:
        return sum(t.distance_km for t in self.trips)

    @property
    def has_data(self) -> bool:
        return self.sample_count > 0


@dataclass(frozen=True)
class VehicleInfo:
    """Fleet directory entry."""

    vehicle_id: str
    name: str
    plate: Optional[str] = None
