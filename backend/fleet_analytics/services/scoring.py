"""
Driving score derived from detected incidents.
"""

from collections import Counter
from typing import Sequence

from fleet_analytics.models.config import IncidentType
from fleet_analytics.models.reports import DrivingIncident, DrivingScore, Severity


# Points deducted from 100 per incident
SEVERITY_PENALTIES: dict[Severity, float] = {
    Severity.HIGH: 3.0,
    Severity.MEDIUM: 1.5,
    Severity.LOW: 0.5,
}

# (minimum score, grade), checked in order
GRADE_BANDS: tuple[tuple[float, str], ...] = (
    (90.0, "A"),
    (80.0, "B"),
    (70.0, "C"),
    (60.0, "D"),
)


def score_incidents(vehicle_id: str, incidents: Sequence[DrivingIncident]) -> DrivingScore:
    """
    Score a vehicle's driving from its incidents.

    Starts at 100 and deducts per incident by severity, clamped to [0, 100].
    """
    penalty = sum(SEVERITY_PENALTIES[i.severity] for i in incidents)
    score = min(100.0, max(0.0, 100.0 - penalty))

    counts = Counter(i.type.value for i in incidents)
    return DrivingScore(
        vehicle_id=vehicle_id,
        score=score,
        grade=grade_for(score),
        total_incidents=len(incidents),
        counts={t.value: counts.get(t.value, 0) for t in IncidentType},
    )


def grade_for(score: float) -> str:
    for minimum, grade in GRADE_BANDS:
        if score >= minimum:
            return grade
    return "F"
