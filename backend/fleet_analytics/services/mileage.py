"""
Mileage period aggregator.

Buckets segmented trips into hour-of-day, calendar-day or calendar-month
periods (by trip start in the configured local timezone) and computes the
report aggregates and the period-over-period comparison.
"""

import calendar
import logging
from datetime import date, timedelta, tzinfo
from typing import Optional, Sequence

import numpy as np

from fleet_analytics.models.config import AnalyticsConfig, MileageRequest, PeriodType
from fleet_analytics.models.reports import (
    MileagePeriodBucket,
    MileagePeriodReport,
    PeriodComparison,
    Trend,
)
from fleet_analytics.models.telemetry import PositionSample, Trip
from fleet_analytics.services.segmenter import segment_trips
from fleet_analytics.utils.timeutils import format_duration, to_local


logger = logging.getLogger(__name__)


def build_mileage_report(
    samples: Sequence[PositionSample],
    request: MileageRequest,
    config: Optional[AnalyticsConfig] = None,
    previous_samples: Optional[Sequence[PositionSample]] = None,
) -> MileagePeriodReport:
    """
    Aggregate the trips of a normalized stream into a period report.

    Args:
        samples: Normalized samples covering the requested period
        request: Period type and inclusive date range
        config: Timezone and segmentation thresholds (defaults when None)
        previous_samples: Samples of the preceding period for the
            comparison. When None, trips of `samples` that start inside the
            preceding period are used instead.

    Returns:
        MileagePeriodReport; has_data is False when nothing was driven
    """
    config = (config or AnalyticsConfig()).validate()
    request.validate()
    tz = config.tzinfo

    if not samples:
        return MileagePeriodReport(
            period_type=request.period_type,
            start_date=request.start_date,
            end_date=request.end_date,
            has_data=False,
        )

    trips = segment_trips(samples, config.segmentation).trips
    current = [t for t in trips if _in_range(t, request.start_date, request.end_date, tz)]
    buckets = build_buckets(current, request, tz)

    comparison = None
    window = previous_period(request)
    if window is not None:
        prev_start, prev_end = window
        if previous_samples is not None:
            prev_trips = segment_trips(previous_samples, config.segmentation).trips
        else:
            prev_trips = trips
        prev_total = sum(t.distance_km for t in prev_trips if _in_range(t, prev_start, prev_end, tz))
        comparison = compare_periods(sum(b.distance_km for b in buckets), prev_total, prev_start, prev_end)

    report = _summarize(request, buckets, comparison)
    logger.debug(
        f"Mileage report {request.period_type.value} {request.start_date}..{request.end_date}: "
        f"{report.total_trip_count} trips, {report.total_distance_km:.2f} km"
    )
    return report


def build_buckets(
    trips: Sequence[Trip],
    request: MileageRequest,
    tz: tzinfo,
) -> list[MileagePeriodBucket]:
    """One bucket per period of the request, including empty ones."""
    if request.period_type == PeriodType.HOUR:
        return _hour_buckets(trips, request.start_date, tz)
    if request.period_type == PeriodType.DAY:
        return _day_buckets(trips, request.start_date, request.end_date, tz)
    return _month_buckets(trips, request.start_date, request.end_date, tz)


def previous_period(request: MileageRequest) -> Optional[tuple[date, date]]:
    """
    The immediately preceding period of identical length.

    Day reports step back by the number of days in the range, month reports
    by the number of calendar months. Hour reports have no comparison.
    """
    if request.period_type == PeriodType.DAY:
        prev_end = request.start_date - timedelta(days=1)
        prev_start = prev_end - timedelta(days=request.day_count - 1)
        return prev_start, prev_end

    if request.period_type == PeriodType.MONTH:
        months = len(_month_starts(request.start_date, request.end_date))
        first = _add_months(date(request.start_date.year, request.start_date.month, 1), -months)
        last = date(request.start_date.year, request.start_date.month, 1) - timedelta(days=1)
        return first, last

    return None


def compare_periods(
    current_total_km: float,
    previous_total_km: float,
    previous_start: date,
    previous_end: date,
) -> PeriodComparison:
    difference = current_total_km - previous_total_km
    percentage = 0.0 if previous_total_km == 0 else difference / previous_total_km * 100.0

    if difference > 0:
        trend = Trend.INCREASE
    elif difference < 0:
        trend = Trend.DECREASE
    else:
        trend = Trend.STABLE

    return PeriodComparison(
        previous_start=previous_start,
        previous_end=previous_end,
        previous_total_km=previous_total_km,
        difference_km=difference,
        percentage_change=percentage,
        trend=trend,
    )


# ============================================================================
# Bucketing
# ============================================================================

def _hour_buckets(trips: Sequence[Trip], day: date, tz: tzinfo) -> list[MileagePeriodBucket]:
    by_hour: dict[int, list[Trip]] = {h: [] for h in range(24)}
    for trip in trips:
        by_hour[to_local(trip.start_time, tz).hour].append(trip)

    return [
        MileagePeriodBucket(label=f"{hour:02d}:00", start=day, hour=hour, **_trip_stats(by_hour[hour]))
        for hour in range(24)
    ]


def _day_buckets(trips: Sequence[Trip], start: date, end: date, tz: tzinfo) -> list[MileagePeriodBucket]:
    by_day: dict[date, list[Trip]] = {}
    for trip in trips:
        by_day.setdefault(to_local(trip.start_time, tz).date(), []).append(trip)

    buckets = []
    day = start
    while day <= end:
        buckets.append(MileagePeriodBucket(
            label=day.isoformat(),
            start=day,
            day_of_week=calendar.day_name[day.weekday()],
            **_trip_stats(by_day.get(day, [])),
        ))
        day += timedelta(days=1)
    return buckets


def _month_buckets(trips: Sequence[Trip], start: date, end: date, tz: tzinfo) -> list[MileagePeriodBucket]:
    by_month: dict[tuple[int, int], list[Trip]] = {}
    for trip in trips:
        local = to_local(trip.start_time, tz)
        by_month.setdefault((local.year, local.month), []).append(trip)

    buckets = []
    for month_start in _month_starts(start, end):
        month_trips = by_month.get((month_start.year, month_start.month), [])
        stats = _trip_stats(month_trips)
        total_days = calendar.monthrange(month_start.year, month_start.month)[1]
        active_days = {to_local(t.start_time, tz).date() for t in month_trips if t.distance_km > 0}
        buckets.append(MileagePeriodBucket(
            label=f"{month_start.year:04d}-{month_start.month:02d}",
            start=month_start,
            average_daily_km=stats["distance_km"] / total_days,
            days_with_activity=len(active_days),
            total_days=total_days,
            **stats,
        ))
    return buckets


def _trip_stats(trips: Sequence[Trip]) -> dict:
    if not trips:
        return {}
    distance = sum(t.distance_km for t in trips)
    minutes = sum(t.duration_minutes for t in trips)
    return {
        "distance_km": distance,
        "trip_count": len(trips),
        "driving_minutes": minutes,
        "avg_speed_kph": distance / (minutes / 60.0) if minutes > 0 else 0.0,
        "max_speed_kph": max(t.max_speed_kph for t in trips),
    }


def _summarize(
    request: MileageRequest,
    buckets: list[MileagePeriodBucket],
    comparison: Optional[PeriodComparison],
) -> MileagePeriodReport:
    distances = np.array([b.distance_km for b in buckets], dtype=np.float64)
    with_data = np.array([b.distance_km for b in buckets if b.has_data], dtype=np.float64)
    trip_count = sum(b.trip_count for b in buckets)
    driving_minutes = sum(b.driving_minutes for b in buckets)

    return MileagePeriodReport(
        period_type=request.period_type,
        start_date=request.start_date,
        end_date=request.end_date,
        has_data=trip_count > 0,
        buckets=tuple(buckets),
        total_distance_km=float(distances.sum()),
        average_distance_km=float(with_data.mean()) if with_data.size else 0.0,
        max_distance_km=float(distances.max()) if distances.size else 0.0,
        min_distance_km=float(with_data.min()) if with_data.size else 0.0,
        total_trip_count=trip_count,
        total_driving_minutes=driving_minutes,
        total_driving_formatted=format_duration(driving_minutes * 60.0),
        previous_period_comparison=comparison,
    )


def _in_range(trip: Trip, start: date, end: date, tz: tzinfo) -> bool:
    return start <= to_local(trip.start_time, tz).date() <= end


def _month_starts(start: date, end: date) -> list[date]:
    months = []
    current = date(start.year, start.month, 1)
    while current <= end:
        months.append(current)
        current = _add_months(current, 1)
    return months


def _add_months(first_of_month: date, months: int) -> date:
    index = first_of_month.year * 12 + (first_of_month.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)
