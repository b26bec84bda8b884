"""
Tests for the driving incident detector.
"""

import pytest
from numpy.testing import assert_allclose

from fleet_analytics.models.config import AnalyticsConfig, IncidentType
from fleet_analytics.models.reports import Severity
from fleet_analytics.services.incidents import classify, detect_incidents

from conftest import build_sample


def pair(dt=1.0, v1=50.0, v2=50.0, **kwargs):
    """Two samples `dt` seconds apart; kwargs are applied to both."""
    return [build_sample(0.0, speed=v1, **kwargs), build_sample(dt, speed=v2, **kwargs)]


def only(config_types):
    return AnalyticsConfig(incident_types_enabled=frozenset(config_types))


class TestAcceleration:
    """Harsh acceleration and braking."""

    def test_harsh_acceleration_high(self):
        """20 -> 60 km/h in 2 s is about 5.56 m/s^2."""
        incidents = detect_incidents("v1", pair(dt=2.0, v1=20.0, v2=60.0))

        assert len(incidents) == 1
        incident = incidents[0]
        assert incident.type == IncidentType.HARSH_ACCELERATION
        assert_allclose(incident.value, 40.0 / 2.0 / 3.6, rtol=1e-9)
        assert incident.severity == Severity.HIGH
        assert incident.vehicle_id == "v1"

    def test_attributed_to_later_sample(self):
        samples = [build_sample(0.0, lat=1.0, speed=20.0), build_sample(2.0, lat=2.0, speed=60.0)]

        incident = detect_incidents("v1", samples)[0]

        assert incident.timestamp == samples[1].timestamp
        assert incident.latitude == 2.0

    def test_harsh_braking_reports_magnitude(self):
        """60 -> 45 km/h in 1 s is about 4.17 m/s^2."""
        incidents = detect_incidents("v1", pair(dt=1.0, v1=60.0, v2=45.0))

        assert [i.type for i in incidents] == [IncidentType.HARSH_BRAKING]
        assert incidents[0].value > 0
        assert incidents[0].severity == Severity.MEDIUM

    def test_low_tier(self):
        incidents = detect_incidents("v1", pair(dt=1.0, v1=50.0, v2=39.0))
        assert incidents[0].severity == Severity.LOW

    def test_gentle_change_ignored(self):
        assert detect_incidents("v1", pair(dt=10.0, v1=30.0, v2=50.0)) == []


class TestPairSkipping:
    """Pairs with invalid or long time deltas are not evaluated."""

    def test_long_gap_skipped(self):
        assert detect_incidents("v1", pair(dt=400.0, v1=0.0, v2=150.0)) == []

    def test_zero_delta_skipped(self):
        assert detect_incidents("v1", pair(dt=0.0, v1=0.0, v2=100.0)) == []

    def test_short_stream(self):
        assert detect_incidents("v1", [build_sample(speed=200.0)]) == []
        assert detect_incidents("v1", []) == []


class TestSteering:
    """Sharp steering needs both headings and speed above 20 km/h."""

    @pytest.mark.parametrize("h1, h2, severity", [
        (0.0, 50.0, Severity.LOW),
        (0.0, 75.0, Severity.MEDIUM),
        (0.0, 100.0, Severity.HIGH),
        (350.0, 30.0, None),
        (10.0, 10.0, None),
    ])
    def test_tiers(self, h1, h2, severity):
        samples = [build_sample(0.0, speed=40.0, heading_degrees=h1), build_sample(1.0, speed=40.0, heading_degrees=h2)]

        incidents = detect_incidents("v1", samples)

        if severity is None:
            assert incidents == []
        else:
            assert [i.type for i in incidents] == [IncidentType.SHARP_STEERING]
            assert incidents[0].severity == severity

    def test_slow_turn_ignored(self):
        samples = [build_sample(0.0, speed=20.0, heading_degrees=0.0), build_sample(1.0, speed=20.0, heading_degrees=90.0)]
        assert detect_incidents("v1", samples) == []

    def test_missing_heading_ignored(self):
        samples = [build_sample(0.0, speed=40.0), build_sample(1.0, speed=40.0, heading_degrees=90.0)]
        assert detect_incidents("v1", samples) == []


class TestOverspeedAndRpm:
    @pytest.mark.parametrize("speed, severity", [
        (130.0, None),
        (135.0, Severity.LOW),
        (150.0, Severity.MEDIUM),
        (165.0, Severity.HIGH),
    ])
    def test_overspeed(self, speed, severity):
        incidents = detect_incidents("v1", pair(dt=1.0, v1=speed, v2=speed))

        if severity is None:
            assert incidents == []
        else:
            assert [(i.type, i.value, i.severity) for i in incidents] == [(IncidentType.OVERSPEED, speed, severity)]

    @pytest.mark.parametrize("rpm, severity", [
        (3000.0, None),
        (3800.0, Severity.LOW),
        (4500.0, Severity.MEDIUM),
        (5001.0, Severity.HIGH),
    ])
    def test_rpm(self, rpm, severity):
        incidents = detect_incidents("v1", pair(dt=1.0, rpm=rpm))

        if severity is None:
            assert incidents == []
        else:
            assert [(i.type, i.severity) for i in incidents] == [(IncidentType.HIGH_RPM, severity)]

    def test_missing_rpm_ignored(self):
        assert detect_incidents("v1", pair(dt=1.0, rpm=None)) == []


class TestEnabledTypes:
    def test_disabled_type_not_reported(self):
        samples = pair(dt=1.0, v1=150.0, v2=150.0, rpm=4500.0)

        incidents = detect_incidents("v1", samples, only([IncidentType.HIGH_RPM]))

        assert [i.type for i in incidents] == [IncidentType.HIGH_RPM]

    def test_all_disabled(self):
        samples = pair(dt=2.0, v1=20.0, v2=160.0, rpm=6000.0)
        assert detect_incidents("v1", samples, only([])) == []

    def test_several_types_from_one_pair(self):
        incidents = detect_incidents("v1", pair(dt=1.0, v1=140.0, v2=165.0, rpm=5500.0))

        assert {i.type for i in incidents} == {
            IncidentType.HARSH_ACCELERATION,
            IncidentType.OVERSPEED,
            IncidentType.HIGH_RPM,
        }


class TestOrdering:
    def test_newest_first(self):
        samples = [
            build_sample(0.0, speed=150.0),
            build_sample(10.0, speed=150.0),
            build_sample(20.0, speed=150.0),
            build_sample(30.0, speed=150.0),
        ]

        incidents = detect_incidents("v1", samples)

        times = [i.timestamp for i in incidents]
        assert times == sorted(times, reverse=True)
        assert times[0] == samples[-1].timestamp
        assert len(incidents) == 3


class TestClassify:
    """Tier boundaries are exclusive on the lower side."""

    @pytest.mark.parametrize("value, expected", [
        (3.0, None),
        (3.0001, Severity.LOW),
        (4.0, Severity.LOW),
        (4.0001, Severity.MEDIUM),
        (5.0, Severity.MEDIUM),
        (5.0001, Severity.HIGH),
    ])
    def test_boundaries(self, value, expected):
        assert classify(value, 3.0, 4.0, 5.0) == expected
