"""
Tests for the CSV history repository.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from fleet_analytics.services.repository import (
    CsvHistoryRepository,
    UnknownVehicleError,
    get_repository,
    init_repository,
)
from fleet_analytics.utils.sample_data import generate_fleet_data_set


DAY_START = datetime(2024, 3, 5, tzinfo=timezone.utc)
DAY_END = DAY_START + timedelta(days=1)


@pytest.fixture
def data_folder(tmp_path):
    generate_fleet_data_set(tmp_path, date(2024, 3, 5))
    return tmp_path


@pytest.fixture
def repository(data_folder):
    return CsvHistoryRepository(data_folder)


class TestDirectory:
    def test_list_vehicles(self, repository):
        vehicles = repository.list_vehicles()

        assert [v.vehicle_id for v in vehicles] == ["car-02", "truck-03", "van-01"]
        assert vehicles[0].name == "Sales Car 2"
        assert vehicles[0].plate == "5678-DEF"
        assert vehicles[1].plate is None

    def test_has_vehicle(self, repository):
        assert repository.has_vehicle("van-01")
        assert not repository.has_vehicle("ghost")

    def test_missing_folder(self, tmp_path):
        repository = CsvHistoryRepository(tmp_path / "nope")
        assert repository.list_vehicles() == []

    def test_set_data_folder_replaces_index(self, repository, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()

        assert repository.set_data_folder(empty) == 0
        assert repository.data_folder == empty
        assert not repository.has_vehicle("van-01")


class TestPositions:
    def test_unknown_vehicle(self, repository):
        with pytest.raises(UnknownVehicleError):
            repository.get_records("ghost")

    def test_records_are_cached(self, repository):
        assert repository.get_records("van-01") is repository.get_records("van-01")

        repository.clear_cache()
        assert repository.get_records("van-01") is not None

    def test_window_is_inclusive(self, repository):
        start = datetime(2024, 3, 5, 8, 0, tzinfo=timezone.utc)
        end = datetime(2024, 3, 5, 8, 1, tzinfo=timezone.utc)

        records = repository.get_positions("van-01", start, end)

        # 08:00:00 to 08:01:00 at 10 s spacing
        assert len(records) == 7

    def test_thinning(self, repository):
        full = repository.get_positions("truck-03", DAY_START, DAY_END)

        thinned = repository.get_positions("truck-03", DAY_START, DAY_END, max_points=50)

        assert len(thinned) == 50
        assert thinned[0] == full[0]
        assert thinned[-1] == full[-1]

    def test_max_points_above_count_keeps_all(self, repository):
        full = repository.get_positions("van-01", DAY_START, DAY_END)
        assert repository.get_positions("van-01", DAY_START, DAY_END, max_points=10**6) == full

    def test_fetch_positions_async(self, repository):
        records = asyncio.run(repository.fetch_positions("van-01", DAY_START, DAY_END))
        assert records == repository.get_positions("van-01", DAY_START, DAY_END)


class TestGlobalRepository:
    def test_init_repository(self, data_folder):
        repository = init_repository(data_folder)

        assert get_repository() is repository
        assert repository.has_vehicle("car-02")
