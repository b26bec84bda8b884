"""
Tests for API endpoints.
"""

import asyncio
import time
from datetime import date

import httpx
import pytest
from fastapi.testclient import TestClient

from fleet_analytics.api import reports
from fleet_analytics.main import app
from fleet_analytics.services.repository import init_repository
from fleet_analytics.utils.sample_data import generate_fleet_data_set

from conftest import build_drive, build_sample


DAY_PARAMS = {"start": "2024-03-05T00:00:00Z", "end": "2024-03-06T00:00:00Z"}


def position_payload(samples):
    return [
        {
            "timestamp": s.timestamp.isoformat(),
            "latitude": s.latitude,
            "longitude": s.longitude,
            "speed_kph": s.speed_kph,
            "heading_degrees": s.heading_degrees,
            "rpm": s.rpm,
            "ignition_on": s.ignition_on,
        }
        for s in samples
    ]


@pytest.fixture
def test_data_folder(tmp_path):
    """Create a test data folder with a generated fleet."""
    data_folder = tmp_path / "vehicles"
    generate_fleet_data_set(data_folder, date(2024, 3, 5))
    return data_folder


@pytest.fixture
def client_with_data(test_data_folder):
    """Create test client with initialized repository."""
    init_repository(test_data_folder)
    yield TestClient(app)


@pytest.fixture
def client():
    return TestClient(app)


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Fleet Trajectory Analytics"
        assert data["status"] == "running"

    def test_health_endpoint(self, client_with_data, test_data_folder):
        response = client_with_data.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["data_folder"] == str(test_data_folder)
        assert data["vehicle_count"] == 3


class TestAnalyticsEndpoints:
    """Tests for the posted-positions analytics endpoints."""

    def test_segments(self, client):
        payload = {"vehicle_id": "v1", "positions": position_payload(build_drive(count=20))}

        response = client.post("/analytics/segments", json=payload)

        assert response.status_code == 200
        data = response.json()
        assert data["vehicle_id"] == "v1"
        assert data["trip_count"] == 1
        assert data["segments"][0]["kind"] == "trip"
        assert data["segments"][0]["distance_source"] == "gps"

    def test_malformed_positions_are_dropped(self, client):
        positions = position_payload(build_drive(count=20))
        positions.append({"timestamp": "not a time", "latitude": 1.0, "longitude": 1.0, "speed_kph": 1.0})
        positions.append({"timestamp": 1709625600, "latitude": None, "longitude": 1.0})

        response = client.post("/analytics/segments", json={"positions": positions})

        assert response.status_code == 200
        assert response.json()["sample_count"] == 20

    def test_camel_case_positions(self, client):
        positions = [
            {"recordedAt": f"2024-03-05T08:00:{i * 5:02d}Z", "lat": 40.0, "lng": -3.0 + i * 0.001, "speedKph": 150.0}
            for i in range(10)
        ]

        response = client.post("/analytics/infractions", json={"positions": positions})

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 10
        assert data[0]["speed_kph"] == 150.0

    def test_replayed_and_untimed_positions_are_dropped(self, client):
        positions = [
            {"recordedAt": "2024-03-05T08:00:00Z", "lat": 40.0, "lng": -3.0, "speedKph": 150.0},
            {"recordedAt": "2024-03-05T08:00:05Z", "lat": 40.0, "lng": -3.0, "speedKph": 150.0,
             "isRealTimeData": False},
            {"lat": 40.0, "lng": -3.0, "speedKph": 150.0},
        ]

        response = client.post("/analytics/infractions", json={"positions": positions})

        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_stop_classification(self, client):
        samples = [build_sample(i * 30.0, ignition_on=i < 2) for i in range(5)]
        payload = {"positions": position_payload(samples), "config": {"min_parking_seconds": 30}}

        response = client.post("/analytics/segments", json=payload)

        assert response.status_code == 200
        stop = response.json()["segments"][0]
        assert stop["kind"] == "stop"
        assert stop["ignition_off"] is True
        assert stop["stop_type"] == "parking"
        assert stop["distance_source"] is None

    def test_segment_overrides(self, client):
        first = build_drive(0.0, count=20)
        second = build_drive(730.0, count=20, lon=first[-1].longitude)
        payload = {"positions": position_payload(first + second), "config": {"max_gap_seconds": 300}}

        response = client.post("/analytics/segments", json=payload)

        assert response.json()["trip_count"] == 2

    def test_invalid_config(self, client):
        payload = {"positions": [], "config": {"max_gap_seconds": 0}}

        response = client.post("/analytics/segments", json=payload)

        assert response.status_code == 400

    def test_mileage(self, client):
        payload = {
            "positions": position_payload(build_drive(count=20)),
            "period_type": "day",
            "start_date": "2024-03-05",
            "end_date": "2024-03-05",
        }

        response = client.post("/analytics/mileage", json=payload)

        assert response.status_code == 200
        data = response.json()
        assert data["has_data"] is True
        assert data["total_trip_count"] == 1
        assert data["buckets"][0]["day_of_week"] == "Tuesday"
        assert len(data["chart"]) == 1
        assert data["previous_period_comparison"]["trend"] == "increase"

    @pytest.mark.parametrize("period_type, end_date", [("week", "2024-03-05"), ("hour", "2024-03-06")])
    def test_mileage_bad_period(self, client, period_type, end_date):
        payload = {
            "positions": [],
            "period_type": period_type,
            "start_date": "2024-03-05",
            "end_date": end_date,
        }

        response = client.post("/analytics/mileage", json=payload)

        assert response.status_code == 400

    def test_incidents(self, client):
        samples = [build_sample(0.0, speed=20.0), build_sample(2.0, speed=60.0)]

        response = client.post("/analytics/incidents", json={"positions": position_payload(samples)})

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["type"] == "harshAcceleration"
        assert data[0]["severity"] == "high"

    def test_incidents_unknown_type(self, client):
        payload = {"positions": [], "config": {"incident_types": ["texting"]}}

        response = client.post("/analytics/incidents", json=payload)

        assert response.status_code == 400

    def test_infractions_with_limit_override(self, client):
        samples = [build_sample(i * 10.0, speed=v) for i, v in enumerate([30.0, 45.0, 80.0])]
        payload = {"positions": position_payload(samples), "config": {"speed_limit_kph": 40}}

        response = client.post("/analytics/infractions", json=payload)

        data = response.json()
        assert [i["speed_kph"] for i in data] == [45.0, 80.0]
        assert data[1]["is_severe"] is True

    def test_activity(self, client):
        samples = [build_sample(i * 60.0) for i in range(5)]

        response = client.post("/analytics/activity", json={"positions": position_payload(samples)})

        data = response.json()
        assert data["has_data"] is True
        assert data["stop_count"] == 1
        assert data["entries"][0]["location"] == "40.000000, -3.000000"
        assert data["entries"][0]["stop_type"] == "delivery"
        assert data["entries"][0]["ignition_off"] is False


class TestVehicleEndpoints:
    """Tests for the per-vehicle endpoints backed by the repository."""

    def test_list_vehicles(self, client_with_data):
        response = client_with_data.get("/vehicles")

        assert response.status_code == 200
        data = response.json()
        assert [v["vehicle_id"] for v in data] == ["car-02", "truck-03", "van-01"]
        assert data[2]["name"] == "Delivery Van 1"

    def test_mileage(self, client_with_data):
        response = client_with_data.get("/vehicles/van-01/mileage", params={"start_date": "2024-03-05"})

        assert response.status_code == 200
        data = response.json()
        assert data["total_trip_count"] == 2
        assert data["total_distance_km"] > 0
        assert data["previous_period_comparison"]["previous_start"] == "2024-03-04"

    def test_hour_mileage(self, client_with_data):
        response = client_with_data.get(
            "/vehicles/van-01/mileage",
            params={"start_date": "2024-03-05", "period_type": "hour"},
        )

        data = response.json()
        assert len(data["buckets"]) == 24
        assert data["buckets"][8]["trip_count"] == 1
        assert data["buckets"][12]["trip_count"] == 1
        assert data["previous_period_comparison"] is None

    def test_mileage_unknown_vehicle(self, client_with_data):
        response = client_with_data.get("/vehicles/ghost/mileage", params={"start_date": "2024-03-05"})
        assert response.status_code == 404

    def test_mileage_bad_timezone(self, client_with_data):
        response = client_with_data.get(
            "/vehicles/van-01/mileage",
            params={"start_date": "2024-03-05", "timezone": "Nowhere/City"},
        )
        assert response.status_code == 400

    def test_activity(self, client_with_data):
        response = client_with_data.get("/vehicles/van-01/activity", params={"day": "2024-03-05"})

        assert response.status_code == 200
        data = response.json()
        assert [e["kind"] for e in data["entries"]] == ["stop", "drive", "stop", "drive", "stop"]
        assert data["drive_count"] == 2
        assert {e["stop_type"] for e in data["entries"] if e["kind"] == "stop"} == {"parking"}

    def test_geocoded_activity_does_not_block_other_requests(self, client_with_data, monkeypatch):
        class SlowGeocoder:
            def reverse(self, latitude, longitude):
                time.sleep(0.2)
                return "Depot Road"

        monkeypatch.setattr(reports, "_get_geocoder", SlowGeocoder)

        async def scenario():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
                async def root_request():
                    await asyncio.sleep(0.05)
                    started = time.perf_counter()
                    response = await http.get("/")
                    return response, time.perf_counter() - started

                activity = http.get(
                    "/vehicles/van-01/activity",
                    params={"day": "2024-03-05", "geocode": "true"},
                )
                return await asyncio.gather(activity, root_request())

        activity_response, (root_response, root_elapsed) = asyncio.run(scenario())

        assert root_response.status_code == 200
        assert root_elapsed < 0.5
        assert {e["location"] for e in activity_response.json()["entries"]} == {"Depot Road"}

    def test_activity_other_day_is_empty(self, client_with_data):
        response = client_with_data.get("/vehicles/van-01/activity", params={"day": "2024-03-07"})

        data = response.json()
        assert data["has_data"] is False
        assert data["entries"] == []


class TestFleetEndpoints:
    """Tests for the fleet fan-out endpoints."""

    def test_infractions(self, client_with_data):
        response = client_with_data.get("/fleet/infractions", params=DAY_PARAMS)

        assert response.status_code == 200
        data = response.json()
        assert data["vehicle_count"] == 3
        assert data["failed"] == {}
        assert {i["vehicle_id"] for i in data["items"]} == {"car-02"}
        timestamps = [i["timestamp"] for i in data["items"]]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_unknown_vehicle_is_reported_as_failed(self, client_with_data):
        response = client_with_data.get("/fleet/infractions", params={**DAY_PARAMS, "vehicles": "car-02,ghost"})

        data = response.json()
        assert response.status_code == 200
        assert list(data["failed"]) == ["ghost"]
        assert len(data["items"]) > 0

    def test_incident_type_filter(self, client_with_data):
        response = client_with_data.get(
            "/fleet/incidents",
            params={**DAY_PARAMS, "types": "harshBraking", "vehicles": "van-01"},
        )

        data = response.json()
        assert response.status_code == 200
        assert all(i["type"] == "harshBraking" for i in data["items"])

    def test_incidents_unknown_type(self, client_with_data):
        response = client_with_data.get("/fleet/incidents", params={**DAY_PARAMS, "types": "texting"})
        assert response.status_code == 400

    def test_reversed_window(self, client_with_data):
        params = {"start": DAY_PARAMS["end"], "end": DAY_PARAMS["start"]}
        response = client_with_data.get("/fleet/incidents", params=params)
        assert response.status_code == 400

    def test_scores(self, client_with_data):
        response = client_with_data.get("/fleet/scores", params=DAY_PARAMS)

        data = response.json()
        assert response.status_code == 200
        assert len(data["items"]) == 3
        scores = [s["score"] for s in data["items"]]
        assert scores == sorted(scores, reverse=True)
        assert data["items"][0]["vehicle_id"] == "van-01"
        assert data["items"][0]["grade"] == "A"

    def test_scores_leave_out_failed_vehicles(self, client_with_data):
        response = client_with_data.get("/fleet/scores", params={**DAY_PARAMS, "vehicles": "van-01,ghost"})

        data = response.json()
        assert [s["vehicle_id"] for s in data["items"]] == ["van-01"]
        assert list(data["failed"]) == ["ghost"]


class TestLifespan:
    def test_shutdown_closes_geocoder(self):
        with TestClient(app):
            geocoder = reports._get_geocoder()

        assert reports._geocoder is None
        assert geocoder.cache_info().currsize == 0
