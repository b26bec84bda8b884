"""
Trip/stop segmentation.

Partitions a normalized position stream into trips and stops:

1. The stream is cut into chunks wherever consecutive samples are separated
   by a long time gap, an ignition-off transition, or a pair of stationary
   samples far apart in time.
2. Inside a chunk, leading/trailing stationary samples and stationary runs
   lasting at least `stationary_seconds` are stop material; the rest are
   candidate trips.
3. Candidates that are neither long nor far enough are GPS jitter and fold
   back into the surrounding stop.
4. Stops are the maximal runs of samples not covered by a kept trip, so
   trips + stops always partition the stream.
5. Each stop is typed as parking, traffic, delivery or unknown from its
   duration and whether the ignition was switched off during it.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from fleet_analytics.models.config import SegmentationThresholds
from fleet_analytics.models.telemetry import (
    DistanceSource,
    PositionSample,
    SegmentationResult,
    Stop,
    StopType,
    Trip,
)
from fleet_analytics.utils.geo import path_distances_km


logger = logging.getLogger(__name__)


def segment_trips(
    samples: Sequence[PositionSample],
    thresholds: Optional[SegmentationThresholds] = None,
) -> SegmentationResult:
    """
    Segment a normalized stream into trips and stops.

    Args:
        samples: Normalized samples of one vehicle (chronological)
        thresholds: Boundary heuristics (defaults when None)

    Returns:
        SegmentationResult; empty for streams of fewer than two samples
    """
    th = thresholds or SegmentationThresholds()
    n = len(samples)
    if n < 2:
        return SegmentationResult(trips=(), stops=(), sample_count=n)

    lat = np.fromiter((s.latitude for s in samples), dtype=np.float64, count=n)
    lon = np.fromiter((s.longitude for s in samples), dtype=np.float64, count=n)
    legs = path_distances_km(lat, lon)

    trips: list[Trip] = []
    for chunk_start, chunk_end in _split_chunks(samples, th):
        for start, end in _movement_ranges(samples, chunk_start, chunk_end, th):
            trip = _build_trip(samples, legs, start, end)
            if _is_meaningful(trip, th):
                trips.append(trip)
            else:
                logger.debug(
                    f"Discarding jitter trip at samples {start}-{end} "
                    f"({trip.duration_seconds:.0f}s, {trip.distance_km:.3f} km)"
                )

    stops = _fill_stops(samples, trips, th)
    return SegmentationResult(trips=tuple(trips), stops=tuple(stops), sample_count=n)


def detect_stops(
    samples: Sequence[PositionSample],
    stop_speed_kph: float = 2.0,
    min_duration_seconds: float = 0.0,
    thresholds: Optional[SegmentationThresholds] = None,
) -> list[Stop]:
    """
    Fixed-threshold stop classifier.

    Every maximal run of samples below `stop_speed_kph` is a stop; runs
    shorter than `min_duration_seconds` are left out. Independent of the
    trip boundary rules. Stop types use `thresholds` (defaults when None).
    """
    if len(samples) < 2:
        return []

    th = thresholds or SegmentationThresholds()
    stops: list[Stop] = []
    run_start: Optional[int] = None
    for i, sample in enumerate(samples):
        if sample.speed_kph < stop_speed_kph:
            if run_start is None:
                run_start = i
            continue
        if run_start is not None:
            stops.append(_build_stop(samples, run_start, i - 1, th))
            run_start = None
    if run_start is not None:
        stops.append(_build_stop(samples, run_start, len(samples) - 1, th))

    return [s for s in stops if s.duration_seconds >= min_duration_seconds]


def is_boundary(prev: PositionSample, curr: PositionSample, th: SegmentationThresholds) -> bool:
    """Whether a new segment starts at `curr`."""
    dt = curr.seconds_since(prev)
    if dt >= th.max_gap_seconds:
        return True
    if prev.ignition_on is True and curr.ignition_on is False:
        return True
    return (
        prev.speed_kph < th.stop_speed_kph
        and curr.speed_kph < th.stop_speed_kph
        and dt >= th.stationary_seconds
    )


def _split_chunks(
    samples: Sequence[PositionSample],
    th: SegmentationThresholds,
) -> list[tuple[int, int]]:
    chunks = []
    chunk_start = 0
    for i in range(1, len(samples)):
        if is_boundary(samples[i - 1], samples[i], th):
            chunks.append((chunk_start, i - 1))
            chunk_start = i
    chunks.append((chunk_start, len(samples) - 1))
    return chunks


def _movement_ranges(
    samples: Sequence[PositionSample],
    chunk_start: int,
    chunk_end: int,
    th: SegmentationThresholds,
) -> list[tuple[int, int]]:
    """Candidate trip index ranges (inclusive) inside one chunk."""
    stop_material = np.zeros(chunk_end - chunk_start + 1, dtype=np.bool_)

    i = chunk_start
    while i <= chunk_end:
        if samples[i].speed_kph >= th.stop_speed_kph:
            i += 1
            continue
        run_start = i
        while i + 1 <= chunk_end and samples[i + 1].speed_kph < th.stop_speed_kph:
            i += 1
        run_end = i
        touches_edge = run_start == chunk_start or run_end == chunk_end
        span = samples[run_end].seconds_since(samples[run_start])
        if touches_edge or span >= th.stationary_seconds:
            stop_material[run_start - chunk_start:run_end - chunk_start + 1] = True
        i += 1

    ranges = []
    range_start: Optional[int] = None
    for offset, is_stop in enumerate(stop_material):
        idx = chunk_start + offset
        if not is_stop and range_start is None:
            range_start = idx
        elif is_stop and range_start is not None:
            ranges.append((range_start, idx - 1))
            range_start = None
    if range_start is not None:
        ranges.append((range_start, chunk_end))
    return ranges


def _build_trip(
    samples: Sequence[PositionSample],
    legs: np.ndarray,
    start: int,
    end: int,
) -> Trip:
    first = samples[start]
    last = samples[end]

    distance = float(np.sum(legs[start:end])) if end > start else 0.0
    source = DistanceSource.GPS
    if (
        first.odometer_km is not None
        and last.odometer_km is not None
        and last.odometer_km >= first.odometer_km
    ):
        distance = last.odometer_km - first.odometer_km
        source = DistanceSource.ODOMETER

    duration = last.seconds_since(first)
    avg_speed = distance / (duration / 3600.0) if duration > 0 else 0.0
    max_speed = max(s.speed_kph for s in samples[start:end + 1])

    return Trip(
        start_sample=first,
        end_sample=last,
        start_index=start,
        end_index=end,
        distance_km=distance,
        duration_seconds=duration,
        avg_speed_kph=avg_speed,
        max_speed_kph=max_speed,
        distance_source=source,
    )


def _is_meaningful(trip: Trip, th: SegmentationThresholds) -> bool:
    if trip.duration_seconds <= 0:
        return False
    return trip.duration_minutes >= th.min_trip_minutes or trip.distance_km >= th.min_trip_distance_km


def classify_stop(duration_seconds: float, ignition_off: bool, th: SegmentationThresholds) -> StopType:
    """
    Stop type from duration and ignition.

    Ignition off: parking once it lasts `min_parking_seconds`, unknown
    before that. Ignition on: traffic below `traffic_stop_seconds`, delivery
    below `delivery_stop_seconds`, parking beyond.
    """
    if ignition_off:
        return StopType.PARKING if duration_seconds >= th.min_parking_seconds else StopType.UNKNOWN
    if duration_seconds < th.traffic_stop_seconds:
        return StopType.TRAFFIC
    if duration_seconds < th.delivery_stop_seconds:
        return StopType.DELIVERY
    return StopType.PARKING


def _build_stop(
    samples: Sequence[PositionSample],
    start: int,
    end: int,
    th: SegmentationThresholds,
) -> Stop:
    duration = samples[end].seconds_since(samples[start])
    ignition_off = any(s.ignition_on is False for s in samples[start:end + 1])
    return Stop(
        start_sample=samples[start],
        end_sample=samples[end],
        start_index=start,
        end_index=end,
        duration_seconds=duration,
        ignition_off=ignition_off,
        stop_type=classify_stop(duration, ignition_off, th),
    )


def _fill_stops(
    samples: Sequence[PositionSample],
    trips: list[Trip],
    th: SegmentationThresholds,
) -> list[Stop]:
    """Maximal runs of samples not covered by any trip."""
    stops = []
    cursor = 0
    for trip in trips:
        if trip.start_index > cursor:
            stops.append(_build_stop(samples, cursor, trip.start_index - 1, th))
        cursor = trip.end_index + 1
    if cursor < len(samples):
        stops.append(_build_stop(samples, cursor, len(samples) - 1, th))
    return stops
