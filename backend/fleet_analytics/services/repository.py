"""
History Repository - serves per-vehicle position history from CSV files.

One CSV per vehicle in a data folder; the file stem is the vehicle id.
Implements both the fleet directory and the position history provider, so
the fan-out coordinator and the API can run against a folder of exports.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import numpy as np

from fleet_analytics.models.raw import RawPositionRecord
from fleet_analytics.models.telemetry import VehicleInfo
from fleet_analytics.services.csv_parser import parse_position_csv, read_vehicle_info
from fleet_analytics.utils.timeutils import parse_timestamp


logger = logging.getLogger(__name__)


class UnknownVehicleError(LookupError):
    """No history source is registered for the vehicle."""


class CsvHistoryRepository:
    """
    Repository of vehicle position histories.

    Currently reads from CSV files in a folder.
    Caches parsed files in memory.
    """

    def __init__(self, data_folder: Optional[Path] = None):
        """
        Initialize the repository.

        Args:
            data_folder: Folder containing CSV files. If None, must be set later.
        """
        self._data_folder: Optional[Path] = data_folder
        self._cache: dict[str, list[RawPositionRecord]] = {}
        self._index: dict[str, Path] = {}  # vehicle id -> filepath

        if data_folder is not None:
            self.scan_folder(data_folder)

    @property
    def data_folder(self) -> Optional[Path]:
        return self._data_folder

    def set_data_folder(self, folder: Path) -> int:
        """
        Set the data folder and scan for CSV files.

        Returns:
            Number of CSV files found
        """
        self._data_folder = folder
        self._cache.clear()
        self._index.clear()
        return self.scan_folder(folder)

    def scan_folder(self, folder: Path) -> int:
        """
        Scan a folder for CSV files and build the index.

        Returns:
            Number of CSV files found
        """
        if not folder.exists():
            logger.warning(f"Data folder does not exist: {folder}")
            return 0

        count = 0
        for csv_file in sorted(folder.glob("*.csv")):
            if csv_file.is_file():
                self._index[csv_file.stem] = csv_file
                count += 1
                logger.debug(f"Indexed vehicle: {csv_file.stem} -> {csv_file.name}")

        logger.info(f"Scanned {count} CSV files in {folder}")
        return count

    def has_vehicle(self, vehicle_id: str) -> bool:
        return vehicle_id in self._index

    def list_vehicles(self) -> list[VehicleInfo]:
        """
        List all vehicles with a history file, ordered by id.
        """
        vehicles = []
        for vehicle_id, filepath in sorted(self._index.items()):
            try:
                vehicles.append(read_vehicle_info(filepath))
            except OSError as e:
                logger.error(f"Failed to read vehicle header {filepath}: {e}")
        return vehicles

    def get_records(self, vehicle_id: str) -> list[RawPositionRecord]:
        """
        All raw records of a vehicle.

        Raises:
            UnknownVehicleError: If no file is indexed for the vehicle.
        """
        if vehicle_id in self._cache:
            return self._cache[vehicle_id]

        if vehicle_id not in self._index:
            raise UnknownVehicleError(f"Unknown vehicle: {vehicle_id}")

        parsed = parse_position_csv(self._index[vehicle_id])
        self._cache[vehicle_id] = parsed.records
        logger.debug(f"Loaded and cached {len(parsed.records)} records for {vehicle_id}")
        return parsed.records

    def get_positions(
        self,
        vehicle_id: str,
        start: datetime,
        end: datetime,
        max_points: Optional[int] = None,
    ) -> list[RawPositionRecord]:
        """
        Records of a vehicle inside [start, end], evenly thinned to at most
        `max_points` records.
        """
        start = parse_timestamp(start)
        end = parse_timestamp(end)
        records = []
        for record in self.get_records(vehicle_id):
            timestamp = parse_timestamp(record.timestamp)
            if timestamp is not None and start <= timestamp <= end:
                records.append(record)

        if max_points is not None and 0 < max_points < len(records):
            keep = np.unique(np.linspace(0, len(records) - 1, max_points).round().astype(int))
            records = [records[i] for i in keep]
        return records

    async def fetch_positions(
        self,
        vehicle_id: str,
        start: datetime,
        end: datetime,
        max_points: Optional[int] = None,
    ) -> list[RawPositionRecord]:
        """Async provider entry point; file parsing runs in a worker thread."""
        return await asyncio.to_thread(self.get_positions, vehicle_id, start, end, max_points)

    def clear_cache(self) -> None:
        """Clear the in-memory cache."""
        self._cache.clear()
        logger.info("History cache cleared")


# Global repository instance (set up by app initialization)
_repository: Optional[CsvHistoryRepository] = None


def get_repository() -> CsvHistoryRepository:
    """Get the global repository instance."""
    global _repository
    if _repository is None:
        _repository = CsvHistoryRepository()
    return _repository


def init_repository(data_folder: Path) -> CsvHistoryRepository:
    """Initialize the global repository with a data folder."""
    global _repository
    _repository = CsvHistoryRepository(data_folder)
    return _repository
