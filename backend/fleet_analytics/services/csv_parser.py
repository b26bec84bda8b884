"""
Position history CSV adapter.

Parses one-vehicle position exports into RawPositionRecord lists. Files may
start with a block of "# key: value" comment lines carrying vehicle
metadata (name, plate) followed by a regular CSV header.
Normalization happens in fleet_analytics.services.normalizer.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from fleet_analytics.models.raw import RawPositionRecord, parse_flag
from fleet_analytics.models.telemetry import VehicleInfo


logger = logging.getLogger(__name__)

MPH_TO_KPH = 1.609344
MS_TO_KPH = 3.6


# Column name mappings - fleet exports use various naming conventions
COLUMN_MAPPINGS = {
    # Time columns
    "timestamp": ["timestamp", "Timestamp", "recordedAt", "recorded_at", "Time", "time", "GPS Time", "gpsTime"],
    # GPS columns
    "latitude": ["latitude", "Latitude", "LATITUDE", "lat", "Lat", "LAT"],
    "longitude": ["longitude", "Longitude", "LONGITUDE", "lon", "Lon", "lng", "Lng", "Long"],
    "heading": ["heading", "Heading", "HEADING", "headingDeg", "course", "Course", "Bearing", "bearing"],
    # Speed columns
    "speed_kph": ["speed_kph", "speedKph", "KPH", "kph", "Speed (km/h)", "Speed (KPH)", "speed"],
    "speed_mph": ["MPH", "mph", "Speed (MPH)", "speed_mph"],
    "speed_ms": ["Speed (m/s)", "speed_ms"],
    # Vehicle channels
    "ignition": ["ignition", "ignition_on", "ignitionOn", "Ignition", "ACC"],
    "odometer": ["odometer", "odometer_km", "odometerKm", "Odometer", "Odometer (km)"],
    "rpm": ["rpm", "RPM", "engineRpm", "engine_rpm", "Engine RPM"],
    "is_live": ["is_live_telemetry", "isLiveTelemetry", "isRealTimeData", "is_real_time", "realtime"],
}


@dataclass(frozen=True)
class PositionHistoryFile:
    """Parsed contents of one vehicle's history file."""

    vehicle: VehicleInfo
    records: list[RawPositionRecord]


class PositionCsvParser:
    """Parser for per-vehicle position history CSV files."""

    def parse_file(self, filepath: Path) -> PositionHistoryFile:
        metadata, df = self._read_csv(filepath)
        col_map = self._map_columns(df.columns.tolist())
        n_samples = len(df)

        if col_map["timestamp"] is None:
            raise ValueError(f"No timestamp column found in {filepath.name}")

        timestamps = df[col_map["timestamp"]].tolist()
        lat = self._extract_column(df, col_map, "latitude", n_samples)
        lon = self._extract_column(df, col_map, "longitude", n_samples)
        speed = self._extract_speed(df, col_map, n_samples)
        heading = self._extract_column(df, col_map, "heading", n_samples)
        odometer = self._extract_column(df, col_map, "odometer", n_samples)
        rpm = self._extract_column(df, col_map, "rpm", n_samples)
        ignition = self._extract_flags(df, col_map, "ignition", n_samples)
        is_live = self._extract_flags(df, col_map, "is_live", n_samples)

        records = [
            RawPositionRecord(
                timestamp=timestamps[i],
                latitude=float(lat[i]),
                longitude=float(lon[i]),
                speed_kph=float(speed[i]),
                heading_degrees=_none_if_nan(heading[i]),
                ignition_on=ignition[i],
                odometer_km=_none_if_nan(odometer[i]),
                rpm=_none_if_nan(rpm[i]),
                is_live_telemetry=is_live[i],
            )
            for i in range(n_samples)
        ]

        vehicle = vehicle_from_metadata(filepath, metadata)
        logger.debug(f"Parsed {n_samples} positions for {vehicle.vehicle_id} from {filepath.name}")
        return PositionHistoryFile(vehicle=vehicle, records=records)

    def _read_csv(self, filepath: Path) -> tuple[dict[str, str], pd.DataFrame]:
        with open(filepath, "r", encoding="utf-8-sig") as f:
            lines = f.read().splitlines()

        metadata, header_idx = _split_metadata(lines)
        if header_idx >= len(lines):
            return metadata, pd.DataFrame()

        df = pd.read_csv(io.StringIO("\n".join(lines[header_idx:])))
        df.columns = df.columns.str.strip()
        return metadata, df

    def _map_columns(self, columns: list[str]) -> dict[str, Optional[str]]:
        col_map: dict[str, Optional[str]] = {}
        for std_name, variants in COLUMN_MAPPINGS.items():
            col_map[std_name] = None
            for variant in variants:
                if variant in columns:
                    col_map[std_name] = variant
                    break
        return col_map

    def _extract_speed(
        self,
        df: pd.DataFrame,
        col_map: dict[str, Optional[str]],
        n_samples: int,
    ) -> NDArray[np.float64]:
        """Speed in km/h from whichever speed column is present."""
        for speed_type, factor in [
            ("speed_kph", 1.0),
            ("speed_mph", MPH_TO_KPH),
            ("speed_ms", MS_TO_KPH),
        ]:
            speed = self._extract_column(df, col_map, speed_type, n_samples)
            if not np.all(np.isnan(speed)):
                return speed * factor
        return np.full(n_samples, np.nan, dtype=np.float64)

    def _extract_flags(
        self,
        df: pd.DataFrame,
        col_map: dict[str, Optional[str]],
        std_name: str,
        n_samples: int,
    ) -> list[Optional[bool]]:
        col = col_map.get(std_name)
        if col is None or col not in df.columns:
            return [None] * n_samples
        return [parse_flag(v) for v in df[col].tolist()]

    def _extract_column(
        self,
        df: pd.DataFrame,
        col_map: dict[str, Optional[str]],
        std_name: str,
        n_samples: int,
    ) -> NDArray[np.float64]:
        col = col_map.get(std_name)
        if col is None or col not in df.columns:
            return np.full(n_samples, np.nan, dtype=np.float64)
        return pd.to_numeric(df[col], errors="coerce").values.astype(np.float64)


def parse_position_csv(filepath: Path) -> PositionHistoryFile:
    return PositionCsvParser().parse_file(filepath)


def read_vehicle_info(filepath: Path) -> VehicleInfo:
    """Vehicle metadata from the comment header only (no data parsing)."""
    metadata: dict[str, str] = {}
    with open(filepath, "r", encoding="utf-8-sig") as f:
        for line in f:
            stripped = line.strip()
            if not stripped.startswith("#"):
                break
            key, value = _parse_metadata_line(stripped)
            if key:
                metadata[key] = value
    return vehicle_from_metadata(filepath, metadata)


def vehicle_from_metadata(filepath: Path, metadata: dict[str, str]) -> VehicleInfo:
    vehicle_id = filepath.stem
    return VehicleInfo(
        vehicle_id=vehicle_id,
        name=metadata.get("name") or vehicle_id,
        plate=metadata.get("plate") or None,
    )


def _split_metadata(lines: list[str]) -> tuple[dict[str, str], int]:
    """Leading '# key: value' lines and the index of the CSV header."""
    metadata: dict[str, str] = {}
    for i, line in enumerate(lines):
        stripped = line.strip()
        if not stripped:
            continue
        if not stripped.startswith("#"):
            return metadata, i
        key, value = _parse_metadata_line(stripped)
        if key:
            metadata[key] = value
    return metadata, len(lines)


def _parse_metadata_line(line: str) -> tuple[Optional[str], str]:
    body = line.lstrip("#").strip()
    if ":" not in body:
        return None, ""
    key, value = body.split(":", 1)
    return key.strip().lower(), value.strip()


def _none_if_nan(value: float) -> Optional[float]:
    return None if np.isnan(value) else float(value)
