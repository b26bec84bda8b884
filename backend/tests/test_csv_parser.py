"""
Tests for the position history CSV parser.
"""

from datetime import date, datetime, timezone

import numpy as np
import pytest

from fleet_analytics.models.raw import RawPositionRecord
from fleet_analytics.services.csv_parser import (
    PositionCsvParser,
    parse_position_csv,
    read_vehicle_info,
)
from fleet_analytics.services.normalizer import normalize_positions
from fleet_analytics.utils.sample_data import generate_drive_day, write_history_csv


@pytest.fixture
def export_csv_content():
    """Export with a metadata block and snake_case columns."""
    return """# name: Delivery Van 1
# plate: 1234-ABC
timestamp,latitude,longitude,speed_kph,heading,ignition,odometer_km,rpm
2024-03-05T08:00:00Z,40.4168000,-3.7038000,0.0,90.0,1,12000.000,
2024-03-05T08:00:10Z,40.4168100,-3.7037000,25.5,91.0,1,12000.050,1820
2024-03-05T08:00:20Z,40.4168200,-3.7036000,31.0,92.0,0,12000.120,2040
"""


@pytest.fixture
def export_csv_file(export_csv_content, tmp_path):
    csv_file = tmp_path / "van-01.csv"
    csv_file.write_text(export_csv_content)
    return csv_file


@pytest.fixture
def mph_csv_file(tmp_path):
    """Export without metadata, speed in MPH, epoch millisecond times."""
    csv_file = tmp_path / "pickup.csv"
    csv_file.write_text(
        "Time,Lat,Lng,MPH,ACC,isRealTimeData\n"
        "1709625600000,40.0,-3.0,0.0,true,true\n"
        "1709625610000,40.0001,-3.0,10.0,true,false\n"
    )
    return csv_file


class TestPositionCsvParser:
    """Tests for PositionCsvParser."""

    def test_parse_export(self, export_csv_file):
        parsed = PositionCsvParser().parse_file(export_csv_file)

        assert len(parsed.records) == 3
        first = parsed.records[0]
        assert first.timestamp == "2024-03-05T08:00:00Z"
        assert first.latitude == pytest.approx(40.4168)
        assert first.speed_kph == 0.0
        assert first.heading_degrees == 90.0
        assert first.ignition_on is True
        assert first.odometer_km == pytest.approx(12000.0)
        assert first.rpm is None
        assert first.is_live_telemetry is None

    def test_channels(self, export_csv_file):
        records = parse_position_csv(export_csv_file).records

        assert records[1].rpm == 1820.0
        assert records[2].ignition_on is False
        assert records[2].speed_kph == 31.0

    def test_metadata(self, export_csv_file):
        vehicle = parse_position_csv(export_csv_file).vehicle

        assert vehicle.vehicle_id == "van-01"
        assert vehicle.name == "Delivery Van 1"
        assert vehicle.plate == "1234-ABC"

    def test_mph_converted(self, mph_csv_file):
        records = parse_position_csv(mph_csv_file).records

        assert records[1].speed_kph == pytest.approx(16.09344)
        assert records[0].ignition_on is True

    def test_live_flag(self, mph_csv_file):
        records = parse_position_csv(mph_csv_file).records

        assert records[0].is_live_telemetry is True
        assert records[1].is_live_telemetry is False

    def test_vehicle_defaults_without_metadata(self, mph_csv_file):
        vehicle = parse_position_csv(mph_csv_file).vehicle

        assert vehicle.vehicle_id == "pickup"
        assert vehicle.name == "pickup"
        assert vehicle.plate is None

    def test_missing_timestamp_column(self, tmp_path):
        csv_file = tmp_path / "bad.csv"
        csv_file.write_text("latitude,longitude,speed_kph\n40.0,-3.0,10.0\n")

        with pytest.raises(ValueError, match="No timestamp column"):
            parse_position_csv(csv_file)

    def test_unparseable_values_become_nan(self, tmp_path):
        csv_file = tmp_path / "noisy.csv"
        csv_file.write_text(
            "timestamp,latitude,longitude,speed_kph\n"
            "2024-03-05T08:00:00Z,40.0,-3.0,10.0\n"
            "2024-03-05T08:00:10Z,n/a,-3.0,10.0\n"
        )

        records = parse_position_csv(csv_file).records

        assert np.isnan(records[1].latitude)
        assert len(normalize_positions(records)) == 1

    def test_map_columns(self):
        col_map = PositionCsvParser()._map_columns(["GPS Time", "Latitude", "Longitude", "Speed (km/h)"])

        assert col_map["timestamp"] == "GPS Time"
        assert col_map["speed_kph"] == "Speed (km/h)"
        assert col_map["rpm"] is None


class TestReadVehicleInfo:
    def test_header_only(self, export_csv_file):
        vehicle = read_vehicle_info(export_csv_file)

        assert vehicle.name == "Delivery Van 1"
        assert vehicle.plate == "1234-ABC"


class TestWrittenHistory:
    """Files written by write_history_csv parse back into the same stream."""

    def test_written_file_normalizes(self, tmp_path):
        generated = generate_drive_day(date(2024, 3, 5))
        csv_file = write_history_csv(tmp_path / "van-09.csv", generated, name="Van 9")

        samples = normalize_positions(parse_position_csv(csv_file).records)

        assert len(samples) == len(generated)
        assert samples[0].timestamp == generated[0].timestamp
        assert samples[0].ignition_on is False
        assert read_vehicle_info(csv_file).plate is None

    def test_string_timestamps_written_verbatim(self, tmp_path):
        record = RawPositionRecord(
            timestamp="2024-03-05T08:00:00Z", latitude=1.0, longitude=2.0, speed_kph=3.0
        )
        csv_file = write_history_csv(tmp_path / "one.csv", [record])

        samples = normalize_positions(parse_position_csv(csv_file).records)

        assert samples[0].timestamp == datetime(2024, 3, 5, 8, 0, tzinfo=timezone.utc)
