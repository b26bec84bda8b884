"""
Position stream normalizer.

Turns provider records into a clean, chronologically ordered list of
PositionSample for one vehicle. Malformed records are dropped, never raised.
"""

import logging
import math
from datetime import datetime
from typing import Iterable, Optional

from fleet_analytics.models.raw import RawPositionRecord
from fleet_analytics.models.telemetry import PositionSample
from fleet_analytics.utils.timeutils import parse_timestamp


logger = logging.getLogger(__name__)


def normalize_positions(
    records: Iterable[RawPositionRecord],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[PositionSample]:
    """
    Filter, validate and sort raw records.

    Steps:
    1. drop records explicitly flagged as not live telemetry (replays);
       records that do not report the flag are kept
    2. drop records with unparseable timestamps, timestamps outside the
       inclusive [start, end] bound, or invalid coordinates/speed
    3. stable sort by timestamp (ties keep their input order)

    Args:
        records: Raw provider records, any order
        start: Optional inclusive lower bound
        end: Optional inclusive upper bound

    Returns:
        Normalized samples; empty when nothing survives
    """
    start = parse_timestamp(start) if start is not None else None
    end = parse_timestamp(end) if end is not None else None

    samples: list[PositionSample] = []
    dropped_replay = 0
    dropped_malformed = 0
    dropped_window = 0

    for record in records:
        if record.is_live_telemetry is False:
            dropped_replay += 1
            continue

        timestamp = parse_timestamp(record.timestamp)
        if timestamp is None:
            dropped_malformed += 1
            continue

        if (start is not None and timestamp < start) or (end is not None and timestamp > end):
            dropped_window += 1
            continue

        sample = _to_sample(record, timestamp)
        if sample is None:
            dropped_malformed += 1
            continue
        samples.append(sample)

    # sorted() is stable
    samples = sorted(samples, key=lambda s: s.timestamp)

    if dropped_replay or dropped_malformed or dropped_window:
        logger.debug(
            f"Normalized {len(samples)} samples "
            f"(dropped: {dropped_replay} replayed, {dropped_malformed} malformed, "
            f"{dropped_window} outside window)"
        )
    return samples


def _to_sample(record: RawPositionRecord, timestamp: datetime) -> Optional[PositionSample]:
    lat = _finite(record.latitude)
    lon = _finite(record.longitude)
    speed = _finite(record.speed_kph)

    if lat is None or lon is None or speed is None:
        return None
    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lon <= 180.0):
        return None
    if speed < 0:
        return None

    heading = _finite(record.heading_degrees)
    if heading is not None:
        heading = heading % 360.0

    return PositionSample(
        timestamp=timestamp,
        latitude=lat,
        longitude=lon,
        speed_kph=speed,
        heading_degrees=heading,
        ignition_on=record.ignition_on,
        odometer_km=_finite(record.odometer_km),
        rpm=_finite(record.rpm),
        is_live_telemetry=True,
    )


def _finite(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number
