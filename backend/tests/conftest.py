"""
Shared fixtures: sample builders for hand-made position streams.
"""

import math
from datetime import datetime, timedelta, timezone

import pytest

from fleet_analytics.models.telemetry import PositionSample
from fleet_analytics.utils.geo import EARTH_RADIUS_KM


T0 = datetime(2024, 3, 5, 8, 0, 0, tzinfo=timezone.utc)  # a Tuesday

KM_PER_DEG = EARTH_RADIUS_KM * math.pi / 180.0


def build_sample(offset_s=0.0, lat=40.0, lon=-3.0, speed=0.0, **kwargs) -> PositionSample:
    return PositionSample(
        timestamp=T0 + timedelta(seconds=offset_s),
        latitude=lat,
        longitude=lon,
        speed_kph=speed,
        **kwargs,
    )


def build_drive(start_s=0.0, count=10, interval_s=10.0, speed=50.0, lat=0.0, lon=0.0, **kwargs):
    """Samples heading east along a parallel, spaced consistently with `speed`."""
    step_km = speed * interval_s / 3600.0
    step_deg = step_km / (KM_PER_DEG * math.cos(math.radians(lat)))
    return [
        build_sample(start_s + i * interval_s, lat, lon + i * step_deg, speed, **kwargs)
        for i in range(count)
    ]


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def make_sample():
    return build_sample


@pytest.fixture
def make_drive():
    return build_drive


@pytest.fixture(autouse=True)
def _no_env_overrides(monkeypatch):
    """Tests run against documented defaults, not the developer's shell."""
    for name in (
        "FLEET_SPEED_LIMIT_KPH",
        "FLEET_TIMEZONE",
        "FLEET_MAX_CONCURRENCY",
        "FLEET_DATA_FOLDER",
        "FLEET_HISTORY_URL",
    ):
        monkeypatch.delenv(name, raising=False)
