"""
Daily activity summary: a timeline of drives and stops with totals.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from fleet_analytics.models.config import AnalyticsConfig
from fleet_analytics.models.reports import ActivityEntry, ActivitySummary
from fleet_analytics.models.telemetry import PositionSample, Segment, Trip
from fleet_analytics.services.geocoding import ReverseGeocoder, describe_location
from fleet_analytics.services.segmenter import segment_trips
from fleet_analytics.utils.timeutils import format_duration


logger = logging.getLogger(__name__)


def build_activity_summary(
    samples: Sequence[PositionSample],
    config: Optional[AnalyticsConfig] = None,
    geocoder: Optional[ReverseGeocoder] = None,
) -> ActivitySummary:
    """
    Build the drive/stop timeline of a normalized stream.

    Args:
        samples: Normalized samples, typically one local day
        config: Segmentation thresholds (defaults when None)
        geocoder: Optional reverse geocoder for location labels; raw
            coordinates are used when absent or when a lookup fails

    Returns:
        ActivitySummary with entries in chronological order
    """
    config = (config or AnalyticsConfig()).validate()
    result = segment_trips(samples, config.segmentation)
    if not result.has_data:
        return ActivitySummary(has_data=False)

    entries = [_entry(segment, geocoder) for segment in result.segments]

    trips = result.trips
    avg_speeds = np.array([t.avg_speed_kph for t in trips], dtype=np.float64)
    summary = ActivitySummary(
        has_data=True,
        entries=tuple(entries),
        total_driving_seconds=sum(t.duration_seconds for t in trips),
        total_stopped_seconds=sum(s.duration_seconds for s in result.stops),
        total_distance_km=result.total_distance_km,
        drive_count=len(trips),
        stop_count=len(result.stops),
        max_speed_kph=max((t.max_speed_kph for t in trips), default=0.0),
        avg_speed_kph=float(avg_speeds.mean()) if avg_speeds.size else 0.0,
        position_count=len(samples),
    )
    logger.debug(f"Activity summary: {summary.drive_count} drives, {summary.stop_count} stops")
    return summary


def _entry(segment: Segment, geocoder: Optional[ReverseGeocoder]) -> ActivityEntry:
    start = segment.start_sample
    location = describe_location(start.latitude, start.longitude, geocoder)

    if isinstance(segment, Trip):
        return ActivityEntry(
            kind="drive",
            start_time=segment.start_time,
            end_time=segment.end_time,
            duration_seconds=segment.duration_seconds,
            duration_formatted=format_duration(segment.duration_seconds),
            latitude=start.latitude,
            longitude=start.longitude,
            location=location,
            distance_km=segment.distance_km,
            avg_speed_kph=segment.avg_speed_kph,
            max_speed_kph=segment.max_speed_kph,
            end_latitude=segment.end_sample.latitude,
            end_longitude=segment.end_sample.longitude,
        )

    return ActivityEntry(
        kind="stop",
        start_time=segment.start_time,
        end_time=segment.end_time,
        duration_seconds=segment.duration_seconds,
        duration_formatted=format_duration(segment.duration_seconds),
        latitude=start.latitude,
        longitude=start.longitude,
        location=location,
        ignition_off=segment.ignition_off,
        stop_type=segment.stop_type.value,
    )
