"""
Sample data generator for testing.

Generates realistic-looking vehicle position histories: parked periods
sampled every few minutes with ignition off, and drives sampled every few
seconds with speed ramps, GPS noise and an accumulating odometer.
"""

from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from fleet_analytics.models.raw import RawPositionRecord


KM_PER_DEG_LAT = 111.0


def generate_drive_day(
    day: date,
    trips: Sequence[tuple[float, float]] = ((8.0, 30.0), (17.5, 25.0)),
    center_lat: float = 40.4168,  # Example: Madrid
    center_lon: float = -3.7038,
    cruise_kph: float = 50.0,
    sample_interval_s: float = 10.0,
    parked_interval_s: float = 300.0,
    heading_deg: float = 90.0,
    odometer_km: float = 12000.0,
    seed: int = 0,
) -> list[RawPositionRecord]:
    """
    Generate one day of positions for a single vehicle.

    Args:
        day: UTC calendar day
        trips: (start hour, duration minutes) per drive; each drive heads
            the opposite way of the previous one
        cruise_kph: Speed reached after a one-minute ramp

    Returns:
        Raw records in chronological order (UTC timestamps)
    """
    rng = np.random.default_rng(seed)
    start_of_day = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)

    lat, lon, odo = center_lat, center_lon, odometer_km
    heading = heading_deg
    records: list[RawPositionRecord] = []
    cursor = start_of_day + timedelta(hours=trips[0][0], minutes=-30)

    for start_hour, minutes in trips:
        trip_start = start_of_day + timedelta(hours=start_hour)

        # Parked until the drive starts
        while cursor < trip_start:
            records.append(_record(cursor, lat, lon, 0.0, heading, False, odo))
            cursor += timedelta(seconds=parked_interval_s)

        n_samples = int(minutes * 60.0 / sample_interval_s) + 1
        t = np.arange(n_samples) * sample_interval_s
        ramp_s = 60.0
        speed = cruise_kph * np.minimum(1.0, np.minimum(t, t[-1] - t) / ramp_s)
        # Noise only while moving
        speed = np.where(speed > 0, np.clip(speed + rng.normal(0, 1.0, n_samples), 3.0, None), 0.0)

        for i in range(n_samples):
            if i > 0:
                step_km = (speed[i - 1] + speed[i]) / 2.0 * sample_interval_s / 3600.0
                lat, lon = _move(lat, lon, heading, step_km)
                lat += rng.normal(0, 2e-6)
                lon += rng.normal(0, 2e-6)
                odo += step_km
            records.append(_record(
                trip_start + timedelta(seconds=float(t[i])), lat, lon, float(speed[i]), heading, True, odo,
                rpm=800.0 + float(speed[i]) * 40.0,
            ))

        cursor = trip_start + timedelta(seconds=float(t[-1]) + parked_interval_s)
        heading = (heading + 180.0) % 360.0

    # Parked for half an hour after the last drive
    end = cursor + timedelta(minutes=30)
    while cursor <= end:
        records.append(_record(cursor, lat, lon, 0.0, heading, False, odo))
        cursor += timedelta(seconds=parked_interval_s)

    return records


def write_history_csv(
    output_path: Path,
    records: Sequence[RawPositionRecord],
    name: Optional[str] = None,
    plate: Optional[str] = None,
) -> Path:
    """Write records in the per-vehicle history CSV format."""
    lines = []
    if name:
        lines.append(f"# name: {name}")
    if plate:
        lines.append(f"# plate: {plate}")
    lines.append("timestamp,latitude,longitude,speed_kph,heading,ignition,odometer_km,rpm")

    for r in records:
        timestamp = r.timestamp.isoformat() if isinstance(r.timestamp, datetime) else str(r.timestamp)
        lines.append(
            f"{timestamp},"
            f"{r.latitude:.7f},"
            f"{r.longitude:.7f},"
            f"{r.speed_kph:.1f},"
            f"{_fmt(r.heading_degrees, 1)},"
            f"{'' if r.ignition_on is None else int(r.ignition_on)},"
            f"{_fmt(r.odometer_km, 3)},"
            f"{_fmt(r.rpm, 0)}"
        )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write("\n".join(lines))

    return output_path


def generate_fleet_data_set(output_folder: Path, day: date) -> list[Path]:
    """Generate a small fleet of history files for one day."""
    output_folder.mkdir(parents=True, exist_ok=True)

    files = []

    # Urban delivery van: two short drives
    files.append(write_history_csv(
        output_folder / "van-01.csv",
        generate_drive_day(day, trips=((8.0, 30.0), (12.0, 20.0)), cruise_kph=45.0, seed=1),
        name="Delivery Van 1",
        plate="1234-ABC",
    ))

    # Motorway car: fast drives that exceed 90 km/h
    files.append(write_history_csv(
        output_folder / "car-02.csv",
        generate_drive_day(day, trips=((7.0, 60.0), (18.0, 45.0)), cruise_kph=110.0, seed=2),
        name="Sales Car 2",
        plate="5678-DEF",
    ))

    # Truck: one long drive
    files.append(write_history_csv(
        output_folder / "truck-03.csv",
        generate_drive_day(day, trips=((9.0, 120.0),), cruise_kph=80.0, heading_deg=0.0, seed=3),
        name="Truck 3",
    ))

    return files


def _record(
    timestamp: datetime,
    lat: float,
    lon: float,
    speed: float,
    heading: float,
    ignition: bool,
    odometer: float,
    rpm: Optional[float] = None,
) -> RawPositionRecord:
    return RawPositionRecord(
        timestamp=timestamp,
        latitude=lat,
        longitude=lon,
        speed_kph=speed,
        heading_degrees=heading,
        ignition_on=ignition,
        odometer_km=odometer,
        rpm=rpm,
    )


def _move(lat: float, lon: float, heading_deg: float, distance_km: float) -> tuple[float, float]:
    heading = np.radians(heading_deg)
    dlat = distance_km * np.cos(heading) / KM_PER_DEG_LAT
    dlon = distance_km * np.sin(heading) / (KM_PER_DEG_LAT * np.cos(np.radians(lat)))
    return float(lat + dlat), float(lon + dlon)


def _fmt(value: Optional[float], decimals: int) -> str:
    return "" if value is None else f"{value:.{decimals}f}"


if __name__ == "__main__":
    # Generate test data when run directly
    output = Path("./data/vehicles")
    files = generate_fleet_data_set(output, date.today())
    print(f"Generated {len(files)} history files in {output}")
    for f in files:
        print(f"  - {f.name}")
