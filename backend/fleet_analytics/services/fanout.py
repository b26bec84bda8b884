"""
Fleet fan-out coordinator.

Runs a per-vehicle analysis across a fleet for one time window: one history
request per vehicle (bounded concurrency), joined only after every request
has succeeded, failed or been cancelled. Failed vehicles contribute an
empty result; nothing is retried.

Each request takes a generation number from a RequestGenerationTracker. A
result that completes after a newer request for the same vehicle started is
stale and dropped.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Generic, Iterable, Optional, Protocol, Sequence, TypeVar

from fleet_analytics.models.config import DEFAULT_MAX_CONCURRENCY, AnalyticsConfig, ConfigurationError
from fleet_analytics.models.raw import RawPositionRecord
from fleet_analytics.models.reports import DrivingScore
from fleet_analytics.models.telemetry import PositionSample, VehicleInfo
from fleet_analytics.services.incidents import detect_incidents
from fleet_analytics.services.infractions import scan_speed_infractions
from fleet_analytics.services.normalizer import normalize_positions
from fleet_analytics.services.scoring import score_incidents


logger = logging.getLogger(__name__)

T = TypeVar("T")

Analyzer = Callable[[str, list[PositionSample]], list[T]]


class PositionHistoryProvider(Protocol):
    """Source of raw position history for one vehicle and time window."""

    async def fetch_positions(
        self,
        vehicle_id: str,
        start: datetime,
        end: datetime,
        max_points: Optional[int] = None,
    ) -> list[RawPositionRecord]:
        ...


class FleetDirectory(Protocol):
    def list_vehicles(self) -> list[VehicleInfo]:
        ...


class RequestGenerationTracker:
    """Monotonically increasing request generation per vehicle."""

    def __init__(self):
        self._generations: dict[str, int] = {}

    def next(self, vehicle_id: str) -> int:
        generation = self._generations.get(vehicle_id, 0) + 1
        self._generations[vehicle_id] = generation
        return generation

    def current(self, vehicle_id: str) -> int:
        return self._generations.get(vehicle_id, 0)

    def is_current(self, vehicle_id: str, generation: int) -> bool:
        return self._generations.get(vehicle_id, 0) == generation


@dataclass
class FanOutResult(Generic[T]):
    """
    Joined outcome of one fan-out.

    per_vehicle holds an entry for every requested vehicle; failed, stale
    and cancelled vehicles map to an empty list.
    """

    per_vehicle: dict[str, list[T]] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    stale: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    items: list[T] = field(default_factory=list)

    @property
    def succeeded(self) -> list[str]:
        skipped = set(self.failed) | set(self.stale) | set(self.cancelled)
        return [v for v in self.per_vehicle if v not in skipped]


class FleetFanOutCoordinator:
    """
    Fan a per-vehicle analysis out over a history provider.

    Args:
        provider: Async position history provider
        max_concurrency: Upper bound on in-flight history requests
        timeout_seconds: Optional per-request timeout; a timeout counts as a
            failure like any other
        tracker: Generation tracker, shared between coordinators that must
            supersede each other's requests
    """

    def __init__(
        self,
        provider: PositionHistoryProvider,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        timeout_seconds: Optional[float] = None,
        tracker: Optional[RequestGenerationTracker] = None,
    ):
        if max_concurrency < 1:
            raise ConfigurationError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.provider = provider
        self.max_concurrency = max_concurrency
        self.timeout_seconds = timeout_seconds
        self.tracker = tracker or RequestGenerationTracker()
        self._in_flight: dict[str, asyncio.Task] = {}

    async def run(
        self,
        vehicle_ids: Iterable[str],
        start: datetime,
        end: datetime,
        analyze: Analyzer,
        max_points: Optional[int] = None,
    ) -> FanOutResult:
        """
        Fetch, normalize and analyze every vehicle, then join.

        Returns:
            FanOutResult with per-vehicle results and the merged items
        """
        vehicle_ids = list(dict.fromkeys(vehicle_ids))
        result: FanOutResult = FanOutResult()
        if not vehicle_ids:
            logger.info("Fan-out requested for an empty fleet")
            return result

        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = {}
        for vehicle_id in vehicle_ids:
            result.per_vehicle[vehicle_id] = []
            generation = self.tracker.next(vehicle_id)
            task = asyncio.create_task(
                self._run_one(vehicle_id, generation, start, end, max_points, semaphore, analyze, result)
            )
            tasks[vehicle_id] = task
            self._in_flight[vehicle_id] = task

        try:
            outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)
        finally:
            for vehicle_id, task in tasks.items():
                if self._in_flight.get(vehicle_id) is task:
                    del self._in_flight[vehicle_id]

        for vehicle_id, outcome in zip(tasks, outcomes):
            # Tasks cancelled before their first step never reach _run_one's handler
            if isinstance(outcome, asyncio.CancelledError):
                if vehicle_id not in result.cancelled:
                    result.cancelled.append(vehicle_id)
            elif isinstance(outcome, BaseException):
                raise outcome

        for vehicle_id in vehicle_ids:
            result.items.extend(result.per_vehicle[vehicle_id])

        logger.info(
            f"Fan-out over {len(vehicle_ids)} vehicles: {len(result.succeeded)} ok, "
            f"{len(result.failed)} failed, {len(result.stale)} stale, {len(result.cancelled)} cancelled"
        )
        return result

    def cancel(self, vehicle_ids: Optional[Iterable[str]] = None) -> int:
        """
        Cancel in-flight requests (all of them when vehicle_ids is None).

        Cancelled vehicles contribute an empty result to their fan-out.

        Returns:
            Number of requests cancelled
        """
        targets = list(self._in_flight) if vehicle_ids is None else list(vehicle_ids)
        count = 0
        for vehicle_id in targets:
            task = self._in_flight.get(vehicle_id)
            if task is not None and not task.done():
                task.cancel()
                count += 1
        return count

    async def _run_one(
        self,
        vehicle_id: str,
        generation: int,
        start: datetime,
        end: datetime,
        max_points: Optional[int],
        semaphore: asyncio.Semaphore,
        analyze: Analyzer,
        result: FanOutResult,
    ) -> None:
        try:
            async with semaphore:
                records = await self._fetch(vehicle_id, start, end, max_points)
        except asyncio.CancelledError:
            logger.info(f"History request for {vehicle_id} cancelled")
            result.cancelled.append(vehicle_id)
            return
        except asyncio.TimeoutError:
            logger.error(f"Timeout fetching history for {vehicle_id} after {self.timeout_seconds}s")
            result.failed[vehicle_id] = f"timeout after {self.timeout_seconds}s"
            return
        except Exception as e:
            logger.error(f"Error fetching history for {vehicle_id}: {e}")
            result.failed[vehicle_id] = str(e) or type(e).__name__
            return

        if not self.tracker.is_current(vehicle_id, generation):
            logger.info(
                f"Dropping stale result for {vehicle_id} "
                f"(generation {generation}, current {self.tracker.current(vehicle_id)})"
            )
            result.stale.append(vehicle_id)
            return

        samples = normalize_positions(records, start, end)
        result.per_vehicle[vehicle_id] = list(analyze(vehicle_id, samples))

    async def _fetch(
        self,
        vehicle_id: str,
        start: datetime,
        end: datetime,
        max_points: Optional[int],
    ) -> Sequence[RawPositionRecord]:
        request = self.provider.fetch_positions(vehicle_id, start, end, max_points)
        if self.timeout_seconds is None:
            return await request
        return await asyncio.wait_for(request, timeout=self.timeout_seconds)


# ============================================================================
# Fleet-wide detectors
# ============================================================================

async def collect_incidents(
    coordinator: FleetFanOutCoordinator,
    vehicle_ids: Iterable[str],
    start: datetime,
    end: datetime,
    config: Optional[AnalyticsConfig] = None,
) -> FanOutResult:
    """Driving incidents of every vehicle, merged newest first."""
    config = (config or AnalyticsConfig()).validate()
    result = await coordinator.run(
        vehicle_ids, start, end,
        lambda vehicle_id, samples: detect_incidents(vehicle_id, samples, config),
    )
    return replace(result, items=sorted(result.items, key=lambda i: i.timestamp, reverse=True))


async def collect_infractions(
    coordinator: FleetFanOutCoordinator,
    vehicle_ids: Iterable[str],
    start: datetime,
    end: datetime,
    config: Optional[AnalyticsConfig] = None,
) -> FanOutResult:
    """Speed infractions of every vehicle, merged newest first."""
    config = (config or AnalyticsConfig()).validate()
    result = await coordinator.run(
        vehicle_ids, start, end,
        lambda vehicle_id, samples: scan_speed_infractions(vehicle_id, samples, config.speed_limit_kph),
    )
    return replace(result, items=sorted(result.items, key=lambda i: i.timestamp, reverse=True))


def scores_from_incidents(result: FanOutResult) -> list[DrivingScore]:
    """
    One driving score per vehicle whose history was analyzed, best first.

    Failed, stale and cancelled vehicles are left out; they are listed in
    the result's failed, stale and cancelled fields instead.
    """
    scores = [score_incidents(vehicle_id, result.per_vehicle[vehicle_id]) for vehicle_id in result.succeeded]
    scores.sort(key=lambda s: s.score, reverse=True)
    return scores
