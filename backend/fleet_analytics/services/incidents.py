"""
Driving incident detector.

Scans consecutive sample pairs for harsh acceleration/braking, sharp
steering, overspeed and high engine speed. Every incident is attributed to
the later sample of its pair.
"""

import logging
from typing import Optional, Sequence

from fleet_analytics.models.config import AnalyticsConfig, IncidentThresholds, IncidentType
from fleet_analytics.models.reports import DrivingIncident, Severity
from fleet_analytics.models.telemetry import PositionSample
from fleet_analytics.utils.geo import heading_difference


logger = logging.getLogger(__name__)

# km/h per second -> m/s^2
KPH_PER_S_TO_MPS2 = 1000.0 / 3600.0


def detect_incidents(
    vehicle_id: str,
    samples: Sequence[PositionSample],
    config: Optional[AnalyticsConfig] = None,
) -> list[DrivingIncident]:
    """
    Detect driving incidents in a normalized stream.

    Pairs with a non-positive time delta or a gap longer than
    `max_pair_gap_seconds` are skipped. Only the enabled incident types are
    evaluated.

    Returns:
        Incidents sorted by timestamp, newest first
    """
    config = (config or AnalyticsConfig()).validate()
    enabled = config.incident_types_enabled
    th = config.incidents

    if not enabled or len(samples) < 2:
        return []

    incidents: list[DrivingIncident] = []
    skipped = 0
    for prev, curr in zip(samples, samples[1:]):
        dt = curr.seconds_since(prev)
        if dt <= 0 or dt > th.max_pair_gap_seconds:
            skipped += 1
            continue

        for incident_type, value, severity in _evaluate_pair(prev, curr, dt, th, enabled):
            incidents.append(DrivingIncident(
                type=incident_type,
                vehicle_id=vehicle_id,
                timestamp=curr.timestamp,
                latitude=curr.latitude,
                longitude=curr.longitude,
                value=value,
                severity=severity,
            ))

    if skipped:
        logger.debug(f"{vehicle_id}: skipped {skipped} sample pairs with invalid or long gaps")

    incidents.sort(key=lambda i: i.timestamp, reverse=True)
    return incidents


def classify(value: float, low: float, medium: float, high: float) -> Optional[Severity]:
    """Severity tier of `value`, or None when it does not exceed `low`."""
    if value <= low:
        return None
    if value > high:
        return Severity.HIGH
    if value > medium:
        return Severity.MEDIUM
    return Severity.LOW


def _evaluate_pair(
    prev: PositionSample,
    curr: PositionSample,
    dt: float,
    th: IncidentThresholds,
    enabled: frozenset[IncidentType],
) -> list[tuple[IncidentType, float, Severity]]:
    found = []
    accel = (curr.speed_kph - prev.speed_kph) / dt * KPH_PER_S_TO_MPS2

    if IncidentType.HARSH_ACCELERATION in enabled and accel > 0:
        severity = classify(accel, th.acceleration_mps2, th.acceleration_medium_mps2, th.acceleration_high_mps2)
        if severity:
            found.append((IncidentType.HARSH_ACCELERATION, accel, severity))

    if IncidentType.HARSH_BRAKING in enabled and accel < 0:
        severity = classify(-accel, th.acceleration_mps2, th.acceleration_medium_mps2, th.acceleration_high_mps2)
        if severity:
            found.append((IncidentType.HARSH_BRAKING, -accel, severity))

    if (
        IncidentType.SHARP_STEERING in enabled
        and prev.heading_degrees is not None
        and curr.heading_degrees is not None
        and curr.speed_kph > th.steering_min_speed_kph
    ):
        turn = heading_difference(prev.heading_degrees, curr.heading_degrees)
        severity = classify(turn, th.steering_degrees, th.steering_medium_degrees, th.steering_high_degrees)
        if severity:
            found.append((IncidentType.SHARP_STEERING, turn, severity))

    if IncidentType.OVERSPEED in enabled:
        severity = classify(curr.speed_kph, th.overspeed_kph, th.overspeed_medium_kph, th.overspeed_high_kph)
        if severity:
            found.append((IncidentType.OVERSPEED, curr.speed_kph, severity))

    if IncidentType.HIGH_RPM in enabled and curr.rpm is not None:
        severity = classify(curr.rpm, th.rpm, th.rpm_medium, th.rpm_high)
        if severity:
            found.append((IncidentType.HIGH_RPM, curr.rpm, severity))

    return found
