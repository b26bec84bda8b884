"""
Speed infraction scanner.

Flags every sample above a speed limit. Consecutive speeding samples are
reported individually (no deduplication into episodes).
"""

import logging
from typing import Mapping, Sequence

import numpy as np

from fleet_analytics.models.config import DEFAULT_SPEED_LIMIT_KPH, ConfigurationError
from fleet_analytics.models.reports import SpeedInfraction
from fleet_analytics.models.telemetry import PositionSample


logger = logging.getLogger(__name__)


def scan_speed_infractions(
    vehicle_id: str,
    samples: Sequence[PositionSample],
    limit_kph: float = DEFAULT_SPEED_LIMIT_KPH,
) -> list[SpeedInfraction]:
    """
    Emit one infraction per sample with speed strictly above `limit_kph`.

    Raises:
        ConfigurationError: If the limit is negative or not finite.
    """
    _check_limit(limit_kph)
    if not samples:
        return []

    speeds = np.fromiter((s.speed_kph for s in samples), dtype=np.float64, count=len(samples))
    over = np.flatnonzero(speeds > limit_kph)

    return [
        SpeedInfraction(
            vehicle_id=vehicle_id,
            timestamp=samples[i].timestamp,
            latitude=samples[i].latitude,
            longitude=samples[i].longitude,
            speed_kph=samples[i].speed_kph,
            limit_kph=limit_kph,
        )
        for i in over
    ]


def scan_fleet_infractions(
    streams: Mapping[str, Sequence[PositionSample]],
    limit_kph: float = DEFAULT_SPEED_LIMIT_KPH,
) -> list[SpeedInfraction]:
    """
    Scan several vehicles' streams; results are merged newest first.
    """
    _check_limit(limit_kph)
    infractions: list[SpeedInfraction] = []
    for vehicle_id, samples in streams.items():
        infractions.extend(scan_speed_infractions(vehicle_id, samples, limit_kph))

    infractions.sort(key=lambda i: i.timestamp, reverse=True)
    logger.debug(f"Found {len(infractions)} speed infractions across {len(streams)} vehicles")
    return infractions


def _check_limit(limit_kph: float) -> None:
    if not np.isfinite(limit_kph) or limit_kph < 0:
        raise ConfigurationError(f"Speed limit must be a non-negative number, got {limit_kph}")
