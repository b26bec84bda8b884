"""
API routes for trajectory analytics reports.
"""

import asyncio
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from fleet_analytics.api.schemas import (
    ActivityEntryResponse,
    ActivityResponse,
    AnalyticsConfigSchema,
    AnalyzeRequest,
    ChartPointResponse,
    ErrorResponse,
    FleetIncidentsResponse,
    FleetInfractionsResponse,
    FleetScoresResponse,
    IncidentResponse,
    InfractionResponse,
    MileageAnalyzeRequest,
    MileageBucketResponse,
    MileageReportResponse,
    PeriodComparisonResponse,
    PositionSchema,
    ScoreResponse,
    SegmentationResponse,
    SegmentResponse,
    VehicleResponse,
)
from fleet_analytics.models.config import (
    AnalyticsConfig,
    ConfigurationError,
    MileageRequest,
    load_config_from_env,
    parse_period_type,
)
from fleet_analytics.models.raw import RawPositionRecord
from fleet_analytics.models.reports import (
    ActivitySummary,
    DrivingIncident,
    DrivingScore,
    MileagePeriodReport,
    SpeedInfraction,
)
from fleet_analytics.models.telemetry import PositionSample, SegmentationResult, Trip
from fleet_analytics.services.activity import build_activity_summary
from fleet_analytics.services.fanout import (
    FanOutResult,
    FleetDirectory,
    FleetFanOutCoordinator,
    PositionHistoryProvider,
    collect_incidents,
    collect_infractions,
    scores_from_incidents,
)
from fleet_analytics.services.geocoding import NominatimGeocoder
from fleet_analytics.services.http_provider import HttpPositionHistoryProvider
from fleet_analytics.services.incidents import detect_incidents
from fleet_analytics.services.infractions import scan_speed_infractions
from fleet_analytics.services.mileage import build_mileage_report, previous_period
from fleet_analytics.services.normalizer import normalize_positions
from fleet_analytics.services.repository import UnknownVehicleError, get_repository
from fleet_analytics.services.segmenter import segment_trips
from fleet_analytics.utils.timeutils import local_day_bounds, parse_timestamp


router = APIRouter(prefix="/analytics", tags=["analytics"])

NOT_FOUND = {404: {"model": ErrorResponse}}
BAD_REQUEST = {400: {"model": ErrorResponse}}

_geocoder: Optional[NominatimGeocoder] = None


def _build_config(overrides: Optional[AnalyticsConfigSchema]) -> AnalyticsConfig:
    """Server defaults with per-request overrides; invalid values map to 400."""
    try:
        config = load_config_from_env()
        if overrides is None:
            return config

        if overrides.speed_limit_kph is not None:
            config = replace(config, speed_limit_kph=overrides.speed_limit_kph)
        if overrides.timezone is not None:
            config = replace(config, timezone=overrides.timezone)
        config = config.with_incident_types(overrides.incident_types)

        segmentation = {
            name: getattr(overrides, name)
            for name in (
                "max_gap_seconds",
                "stop_speed_kph",
                "stationary_seconds",
                "min_trip_minutes",
                "min_trip_distance_km",
                "min_parking_seconds",
                "traffic_stop_seconds",
                "delivery_stop_seconds",
            )
            if getattr(overrides, name) is not None
        }
        if segmentation:
            config = replace(config, segmentation=replace(config.segmentation, **segmentation))
        return config.validate()
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _normalize(positions: list[PositionSchema], start=None, end=None) -> list[PositionSample]:
    records = [RawPositionRecord.from_mapping(p.model_dump(exclude_none=True)) for p in positions]
    return normalize_positions(records, start, end)


def _get_geocoder() -> NominatimGeocoder:
    global _geocoder
    if _geocoder is None:
        _geocoder = NominatimGeocoder()
    return _geocoder


def close_geocoder() -> None:
    """Release the shared Nominatim client, if one was created."""
    global _geocoder
    if _geocoder is not None:
        _geocoder.close()
        _geocoder = None


# ============================================================================
# Response builders
# ============================================================================

def _build_segmentation_response(vehicle_id: str, result: SegmentationResult) -> SegmentationResponse:
    segments = []
    for segment in result.segments:
        is_trip = isinstance(segment, Trip)
        segments.append(SegmentResponse(
            kind=segment.kind.value,
            start_time=segment.start_time,
            end_time=segment.end_time,
            start_index=segment.start_index,
            end_index=segment.end_index,
            sample_count=segment.sample_count,
            duration_s=segment.duration_seconds,
            start_lat=segment.start_sample.latitude,
            start_lon=segment.start_sample.longitude,
            end_lat=segment.end_sample.latitude,
            end_lon=segment.end_sample.longitude,
            distance_km=segment.distance_km if is_trip else None,
            avg_speed_kph=segment.avg_speed_kph if is_trip else None,
            max_speed_kph=segment.max_speed_kph if is_trip else None,
            distance_source=segment.distance_source.value if is_trip else None,
            ignition_off=None if is_trip else segment.ignition_off,
            stop_type=None if is_trip else segment.stop_type.value,
        ))

    return SegmentationResponse(
        vehicle_id=vehicle_id,
        sample_count=result.sample_count,
        trip_count=len(result.trips),
        stop_count=len(result.stops),
        total_distance_km=result.total_distance_km,
        segments=segments,
    )


def _build_mileage_response(report: MileagePeriodReport) -> MileageReportResponse:
    comparison = report.previous_period_comparison
    return MileageReportResponse(
        period_type=report.period_type.value,
        start_date=report.start_date,
        end_date=report.end_date,
        has_data=report.has_data,
        buckets=[
            MileageBucketResponse(
                label=b.label,
                start=b.start,
                distance_km=b.distance_km,
                trip_count=b.trip_count,
                driving_minutes=b.driving_minutes,
                avg_speed_kph=b.avg_speed_kph,
                max_speed_kph=b.max_speed_kph,
                hour=b.hour,
                day_of_week=b.day_of_week,
                average_daily_km=b.average_daily_km,
                days_with_activity=b.days_with_activity,
                total_days=b.total_days,
            )
            for b in report.buckets
        ],
        total_distance_km=report.total_distance_km,
        average_distance_km=report.average_distance_km,
        max_distance_km=report.max_distance_km,
        min_distance_km=report.min_distance_km,
        total_trip_count=report.total_trip_count,
        total_driving_minutes=report.total_driving_minutes,
        total_driving_formatted=report.total_driving_formatted,
        previous_period_comparison=PeriodComparisonResponse(
            previous_start=comparison.previous_start,
            previous_end=comparison.previous_end,
            previous_total_km=comparison.previous_total_km,
            difference_km=comparison.difference_km,
            percentage_change=comparison.percentage_change,
            trend=comparison.trend.value,
        ) if comparison is not None else None,
        chart=[ChartPointResponse(label=p.label, value=p.value, tooltip=p.tooltip) for p in report.chart_points()],
    )


def _incident_response(i: DrivingIncident) -> IncidentResponse:
    return IncidentResponse(
        type=i.type.value,
        vehicle_id=i.vehicle_id,
        timestamp=i.timestamp,
        latitude=i.latitude,
        longitude=i.longitude,
        value=i.value,
        severity=i.severity.value,
    )


def _infraction_response(i: SpeedInfraction) -> InfractionResponse:
    return InfractionResponse(
        vehicle_id=i.vehicle_id,
        timestamp=i.timestamp,
        latitude=i.latitude,
        longitude=i.longitude,
        speed_kph=i.speed_kph,
        limit_kph=i.limit_kph,
        excess_kph=i.excess_kph,
        is_severe=i.is_severe,
    )


def _score_response(s: DrivingScore) -> ScoreResponse:
    return ScoreResponse(
        vehicle_id=s.vehicle_id,
        score=s.score,
        grade=s.grade,
        total_incidents=s.total_incidents,
        counts=s.counts,
    )


def _build_activity_response(summary: ActivitySummary) -> ActivityResponse:
    return ActivityResponse(
        has_data=summary.has_data,
        entries=[
            ActivityEntryResponse(
                kind=e.kind,
                start_time=e.start_time,
                end_time=e.end_time,
                duration_s=e.duration_seconds,
                duration_formatted=e.duration_formatted,
                latitude=e.latitude,
                longitude=e.longitude,
                location=e.location,
                distance_km=e.distance_km,
                avg_speed_kph=e.avg_speed_kph,
                max_speed_kph=e.max_speed_kph,
                end_latitude=e.end_latitude,
                end_longitude=e.end_longitude,
                ignition_off=e.ignition_off,
                stop_type=e.stop_type,
            )
            for e in summary.entries
        ],
        total_driving_s=summary.total_driving_seconds,
        total_stopped_s=summary.total_stopped_seconds,
        total_active_s=summary.total_active_seconds,
        total_distance_km=summary.total_distance_km,
        drive_count=summary.drive_count,
        stop_count=summary.stop_count,
        max_speed_kph=summary.max_speed_kph,
        avg_speed_kph=summary.avg_speed_kph,
        position_count=summary.position_count,
    )


def _fan_out_status(result: FanOutResult) -> dict:
    return {
        "vehicle_count": len(result.per_vehicle),
        "failed": result.failed,
        "stale": result.stale,
        "cancelled": result.cancelled,
    }


# ============================================================================
# Posted-positions Routes
# ============================================================================

@router.post("/segments", response_model=SegmentationResponse, responses=BAD_REQUEST)
async def analyze_segments(request: AnalyzeRequest):
    """
    Segment posted positions into trips and stops.
    """
    config = _build_config(request.config)
    samples = _normalize(request.positions, request.start, request.end)
    result = segment_trips(samples, config.segmentation)
    return _build_segmentation_response(request.vehicle_id, result)


@router.post("/mileage", response_model=MileageReportResponse, responses=BAD_REQUEST)
async def analyze_mileage(request: MileageAnalyzeRequest):
    """
    Mileage report over posted positions.

    previous_positions, when given, feed the period-over-period comparison;
    otherwise trips of `positions` inside the preceding period are used.
    """
    config = _build_config(request.config)
    try:
        mileage_request = MileageRequest(
            period_type=parse_period_type(request.period_type),
            start_date=request.start_date,
            end_date=request.end_date,
        ).validate()
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    samples = _normalize(request.positions, request.start, request.end)
    previous = _normalize(request.previous_positions) if request.previous_positions is not None else None
    report = build_mileage_report(samples, mileage_request, config, previous)
    return _build_mileage_response(report)


@router.post("/incidents", response_model=list[IncidentResponse], responses=BAD_REQUEST)
async def analyze_incidents(request: AnalyzeRequest):
    """
    Driving incidents in posted positions, newest first.
    """
    config = _build_config(request.config)
    samples = _normalize(request.positions, request.start, request.end)
    return [_incident_response(i) for i in detect_incidents(request.vehicle_id, samples, config)]


@router.post("/infractions", response_model=list[InfractionResponse], responses=BAD_REQUEST)
async def analyze_infractions(request: AnalyzeRequest):
    """
    Speed infractions in posted positions, in stream order.
    """
    config = _build_config(request.config)
    samples = _normalize(request.positions, request.start, request.end)
    infractions = scan_speed_infractions(request.vehicle_id, samples, config.speed_limit_kph)
    return [_infraction_response(i) for i in infractions]


@router.post("/activity", response_model=ActivityResponse, responses=BAD_REQUEST)
async def analyze_activity(request: AnalyzeRequest):
    """
    Drive/stop timeline of posted positions (coordinates as locations).
    """
    config = _build_config(request.config)
    samples = _normalize(request.positions, request.start, request.end)
    return _build_activity_response(build_activity_summary(samples, config))


# ============================================================================
# Vehicle Routes
# ============================================================================

vehicles_router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@vehicles_router.get("", response_model=list[VehicleResponse])
async def list_vehicles():
    """
    List all vehicles with position history.
    """
    repo = get_repository()
    return [
        VehicleResponse(vehicle_id=v.vehicle_id, name=v.name, plate=v.plate)
        for v in repo.list_vehicles()
    ]


@vehicles_router.get(
    "/{vehicle_id}/mileage",
    response_model=MileageReportResponse,
    responses={**NOT_FOUND, **BAD_REQUEST},
)
async def get_vehicle_mileage(
    vehicle_id: str,
    start_date: date = Query(..., description="First day of the period (local)"),
    end_date: Optional[date] = Query(None, description="Last day of the period (defaults to start_date)"),
    period_type: str = Query("day", description="hour, day or month"),
    timezone: Optional[str] = Query(None, description="IANA timezone for bucketing"),
):
    """
    Mileage report for one vehicle, including the preceding period for comparison.
    """
    config = _build_config(AnalyticsConfigSchema(timezone=timezone))
    try:
        request = MileageRequest(
            period_type=parse_period_type(period_type),
            start_date=start_date,
            end_date=end_date or start_date,
        ).validate()
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    window = previous_period(request)
    first_day = window[0] if window is not None else request.start_date
    start, _ = local_day_bounds(first_day, config.tzinfo)
    _, end = local_day_bounds(request.end_date, config.tzinfo)

    samples = _load_samples(vehicle_id, start, end - timedelta(microseconds=1))
    report = build_mileage_report(samples, request, config)
    return _build_mileage_response(report)


@vehicles_router.get(
    "/{vehicle_id}/activity",
    response_model=ActivityResponse,
    responses={**NOT_FOUND, **BAD_REQUEST},
)
async def get_vehicle_activity(
    vehicle_id: str,
    day: date = Query(..., description="Local calendar day"),
    timezone: Optional[str] = Query(None, description="IANA timezone of the day"),
    geocode: bool = Query(False, description="Resolve stop addresses via Nominatim"),
):
    """
    Daily drive/stop timeline for one vehicle.
    """
    config = _build_config(AnalyticsConfigSchema(timezone=timezone))
    start, end = local_day_bounds(day, config.tzinfo)
    samples = _load_samples(vehicle_id, start, end - timedelta(microseconds=1))
    geocoder = _get_geocoder() if geocode else None
    summary = await asyncio.to_thread(build_activity_summary, samples, config, geocoder)
    return _build_activity_response(summary)


def _load_samples(vehicle_id: str, start: datetime, end: datetime) -> list[PositionSample]:
    repo = get_repository()
    try:
        records = repo.get_positions(vehicle_id, start, end)
    except UnknownVehicleError:
        raise HTTPException(status_code=404, detail=f"Vehicle not found: {vehicle_id}")
    return normalize_positions(records, start, end)


# ============================================================================
# Fleet Routes
# ============================================================================

fleet_router = APIRouter(prefix="/fleet", tags=["fleet"])


def get_history_provider() -> PositionHistoryProvider:
    """HTTP provider when FLEET_HISTORY_URL is set, otherwise the CSV repository."""
    return HttpPositionHistoryProvider.from_env() or get_repository()


def get_fleet_directory() -> FleetDirectory:
    return get_repository()


def _fleet_request(start: datetime, end: datetime, vehicles: Optional[str]) -> tuple[datetime, datetime, list[str]]:
    start = parse_timestamp(start)
    end = parse_timestamp(end)
    if end < start:
        raise HTTPException(status_code=400, detail="end is before start")

    if vehicles:
        vehicle_ids = [v.strip() for v in vehicles.split(",") if v.strip()]
    else:
        vehicle_ids = [v.vehicle_id for v in get_fleet_directory().list_vehicles()]
    return start, end, vehicle_ids


def _coordinator(config: AnalyticsConfig) -> FleetFanOutCoordinator:
    return FleetFanOutCoordinator(get_history_provider(), max_concurrency=config.max_concurrency)


@fleet_router.get("/incidents", response_model=FleetIncidentsResponse, responses=BAD_REQUEST)
async def get_fleet_incidents(
    start: datetime = Query(..., description="Window start (UTC when naive)"),
    end: datetime = Query(..., description="Window end (UTC when naive)"),
    vehicles: Optional[str] = Query(None, description="Comma separated vehicle ids (defaults to the whole fleet)"),
    types: Optional[str] = Query(None, description="Comma separated incident types (defaults to all)"),
):
    """
    Driving incidents across the fleet, newest first.

    Vehicles whose history could not be fetched are listed in `failed` and
    contribute no incidents.
    """
    config = _build_config(AnalyticsConfigSchema(incident_types=types.split(",") if types else None))
    start, end, vehicle_ids = _fleet_request(start, end, vehicles)
    result = await collect_incidents(_coordinator(config), vehicle_ids, start, end, config)
    return FleetIncidentsResponse(
        items=[_incident_response(i) for i in result.items],
        **_fan_out_status(result),
    )


@fleet_router.get("/infractions", response_model=FleetInfractionsResponse, responses=BAD_REQUEST)
async def get_fleet_infractions(
    start: datetime = Query(..., description="Window start (UTC when naive)"),
    end: datetime = Query(..., description="Window end (UTC when naive)"),
    vehicles: Optional[str] = Query(None, description="Comma separated vehicle ids (defaults to the whole fleet)"),
    speed_limit_kph: Optional[float] = Query(None, description="Speed limit (defaults to the server setting)"),
):
    """
    Speed infractions across the fleet, newest first.
    """
    config = _build_config(AnalyticsConfigSchema(speed_limit_kph=speed_limit_kph))
    start, end, vehicle_ids = _fleet_request(start, end, vehicles)
    result = await collect_infractions(_coordinator(config), vehicle_ids, start, end, config)
    return FleetInfractionsResponse(
        items=[_infraction_response(i) for i in result.items],
        **_fan_out_status(result),
    )


@fleet_router.get("/scores", response_model=FleetScoresResponse, responses=BAD_REQUEST)
async def get_fleet_scores(
    start: datetime = Query(..., description="Window start (UTC when naive)"),
    end: datetime = Query(..., description="Window end (UTC when naive)"),
    vehicles: Optional[str] = Query(None, description="Comma separated vehicle ids (defaults to the whole fleet)"),
):
    """
    Driving score per vehicle, best first.
    """
    config = _build_config(None)
    start, end, vehicle_ids = _fleet_request(start, end, vehicles)
    result = await collect_incidents(_coordinator(config), vehicle_ids, start, end, config)
    return FleetScoresResponse(
        items=[_score_response(s) for s in scores_from_incidents(result)],
        **_fan_out_status(result),
    )
