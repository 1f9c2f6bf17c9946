"""Schedule optimization orchestration."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta
from typing import Sequence

import httpx

from ...config import settings
from ...models.domain import (
    CalendarSnapshot,
    Coordinates,
    DayAvailability,
    PropertyRequest,
    ScheduleSuggestion,
)
from ...persistence.bookings import get_booking_store
from ...persistence.calendar import load_calendar_snapshot, load_weekly_schedule
from ...schemas.scheduling import (
    AvailabilityResponse,
    AvailableSlotModel,
    OptimizationRequest,
    OptimizationResponse,
    SkippedPropertyModel,
    SlotModel,
    SuggestionModel,
)
from ..errors import GeocodingFailed, NoFeasibleSchedule
from ..mapping.mapbox_client import MapboxClient
from .availability import WeeklySchedule, business_now, is_weekend, list_slots, resolve
from .models import CandidateSchedule
from .ranker import rank
from .sequencer import SequencerConstraints, plan_day, plan_multi_day
from .travel import TravelEstimator

logger = logging.getLogger(__name__)

RECOMMENDED_SLOT_COUNT = 5


def _build_mapbox_client() -> MapboxClient | None:
    try:
        return MapboxClient()
    except ValueError:
        logger.info("Mapbox token not configured; travel times use straight-line estimates")
        return None


def _to_requests(payload: OptimizationRequest) -> list[PropertyRequest]:
    requests = []
    for index, item in enumerate(payload.properties):
        coordinates = None
        if item.lat is not None and item.lng is not None:
            coordinates = Coordinates(lat=item.lat, lng=item.lng)
        requests.append(
            PropertyRequest(
                address=item.address,
                duration_minutes=item.duration_minutes,
                property_index=index,
                coordinates=coordinates,
                package_type=item.package_type,
                photo_count=item.photo_count,
                property_type=item.property_type,
                square_meters=item.square_meters,
                notes=item.notes,
            )
        )
    return requests


def _geocode_one(request: PropertyRequest, client: MapboxClient | None) -> PropertyRequest:
    if request.coordinates is not None:
        return request
    if client is None:
        raise GeocodingFailed(request.property_index, request.address, "geocoding is not configured")
    try:
        return request.with_coordinates(client.geocode(request.address))
    except (httpx.HTTPError, ConnectionError, ValueError) as e:
        raise GeocodingFailed(request.property_index, request.address, str(e)) from e


def geocode_properties(
    requests: Sequence[PropertyRequest],
    client: MapboxClient | None,
    allow_partial: bool = False,
) -> tuple[list[PropertyRequest], list[GeocodingFailed]]:
    """Resolve missing coordinates concurrently.

    Returns the geocoded properties and the failures. Without ``allow_partial``
    the first failure (lowest property index) is raised instead.
    """
    pending = [request for request in requests if request.coordinates is None]
    if not pending:
        return list(requests), []

    def attempt(request: PropertyRequest) -> PropertyRequest | GeocodingFailed:
        try:
            return _geocode_one(request, client)
        except GeocodingFailed as e:
            return e

    with ThreadPoolExecutor(max_workers=min(settings.max_parallel_requests, len(pending))) as executor:
        outcomes = dict(zip((r.property_index for r in pending), executor.map(attempt, pending)))

    resolved: list[PropertyRequest] = []
    failures: list[GeocodingFailed] = []
    for request in requests:
        outcome = outcomes.get(request.property_index, request)
        if isinstance(outcome, GeocodingFailed):
            failures.append(outcome)
        else:
            resolved.append(outcome)

    if failures and not allow_partial:
        raise failures[0]
    for failure in failures:
        logger.warning(f"Skipping property {failure.property_index}: {failure}")
    if not resolved:
        raise failures[0]
    return resolved, failures


def _horizon(requested: date, now: datetime) -> tuple[date, date]:
    start = max(requested, now.date())
    return start, start + timedelta(days=settings.lookahead_days)


def _resolve_days(
    start: date,
    end: date,
    snapshot: CalendarSnapshot,
    schedule: WeeklySchedule,
    now: datetime,
    allow_weekend: bool,
    travel_aware: bool = False,
) -> list[DayAvailability]:
    days = []
    current = start
    while current <= end:
        if allow_weekend or not is_weekend(current):
            days.append(
                resolve(
                    current,
                    None,
                    [booking for booking in snapshot.bookings if booking.date == current],
                    busy_blocks=[
                        block for block in snapshot.busy_blocks
                        if block.start.date() <= current <= block.end.date()
                    ],
                    blocked_dates=snapshot.blocked_dates,
                    schedule=schedule,
                    allow_weekend=allow_weekend,
                    now=now,
                    travel_aware=travel_aware,
                )
            )
        current += timedelta(days=1)
    return days


def _booking_locations(snapshot: CalendarSnapshot) -> list[Coordinates]:
    """Distinct coordinates of located bookings, in calendar order."""
    seen: dict[Coordinates, None] = {}
    for booking in sorted(snapshot.bookings, key=lambda booking: booking.start):
        if booking.coordinates is not None:
            seen.setdefault(booking.coordinates)
    return list(seen)


def _first_feasible_days(
    properties_by_node: dict[int, PropertyRequest],
    days: Sequence[DayAvailability],
    matrix,
    constraints: SequencerConstraints,
    wanted: int,
) -> list[list[CandidateSchedule]]:
    found: list[list[CandidateSchedule]] = []
    for day in days:
        if len(found) >= wanted:
            break
        if constraints.expired():
            logger.warning(f"Optimization budget exhausted before {day.date.isoformat()}")
            break
        candidates = plan_day(properties_by_node, day, matrix, constraints)
        if candidates:
            found.append(candidates)
    return found


def _plan_multi_day_options(
    properties_by_node: dict[int, PropertyRequest],
    days: Sequence[DayAvailability],
    matrix,
    constraints: SequencerConstraints,
) -> tuple[list[CandidateSchedule], list[CandidateSchedule]]:
    primary = plan_multi_day(properties_by_node, days, matrix, constraints)
    if primary is None:
        return [], []
    later = [day for day in days if day.date > primary.dates[0]]
    alternative = plan_multi_day(properties_by_node, later, matrix, constraints)
    return [primary], ([alternative] if alternative is not None else [])


def _suggestion_to_model(suggestion: ScheduleSuggestion) -> SuggestionModel:
    return SuggestionModel(
        type=suggestion.strategy_type,
        label=suggestion.label,
        description=suggestion.description,
        date=suggestion.date,
        dates=list(suggestion.dates),
        slots=[
            SlotModel(
                property_index=assignment.property_index,
                address=assignment.address,
                date=assignment.date,
                start=assignment.start.time(),
                end=assignment.end.time(),
                drive_time_minutes=assignment.preceding_drive_minutes,
                drive_distance_km=assignment.preceding_drive_km,
            )
            for assignment in suggestion.assignments
        ],
        total_drive_time_minutes=suggestion.total_drive_minutes,
        total_drive_km=suggestion.total_drive_km,
        idle_minutes=suggestion.idle_minutes,
        efficiency_score=suggestion.efficiency_score,
        is_weekend_request=suggestion.is_weekend_request,
        booking_status=suggestion.status_on_commit.value,
    )


def optimize_schedule(payload: OptimizationRequest) -> OptimizationResponse:
    if len(payload.properties) > settings.max_properties_per_batch:
        raise ValueError(
            f"At most {settings.max_properties_per_batch} properties can be scheduled together, "
            f"got {len(payload.properties)}."
        )

    started = time.monotonic()
    client = _build_mapbox_client()

    requests, failures = geocode_properties(_to_requests(payload), client, payload.allow_partial)

    # Calendar state is read once, before any sequencing
    now = business_now()
    horizon_start, horizon_end = _horizon(payload.date, now)
    snapshot = load_calendar_snapshot(horizon_start, horizon_end, get_booking_store())
    schedule = load_weekly_schedule()

    home = Coordinates(lat=settings.home_base_lat, lng=settings.home_base_lng)
    estimator = TravelEstimator(client)
    booking_locations = _booking_locations(snapshot)
    matrix = estimator.build_matrix([home, *(request.coordinates for request in requests), *booking_locations])
    properties_by_node = {node: request for node, request in enumerate(requests, start=1)}
    constraints = SequencerConstraints(
        deadline=started + settings.optimization_budget_seconds,
        location_nodes={
            location: node for node, location in enumerate(booking_locations, start=len(requests) + 1)
        },
    )

    weekdays = _resolve_days(horizon_start, horizon_end, snapshot, schedule, now, allow_weekend=False, travel_aware=True)
    feasible = _first_feasible_days(properties_by_node, weekdays, matrix, constraints, wanted=2)
    primary = feasible[0] if feasible else []
    alternative = feasible[1] if len(feasible) > 1 else []

    if not primary and not payload.single_day:
        primary, alternative = _plan_multi_day_options(properties_by_node, weekdays, matrix, constraints)

    weekend: list[CandidateSchedule] = []
    weekend_allowed = settings.weekend_requests_enabled
    if weekend_allowed and (payload.include_weekend or not primary):
        weekend_days = [
            day for day in _resolve_days(
                horizon_start, horizon_end, snapshot, schedule, now, allow_weekend=True, travel_aware=True
            )
            if day.is_weekend
        ]
        weekend_feasible = _first_feasible_days(properties_by_node, weekend_days, matrix, constraints, wanted=1)
        if weekend_feasible:
            weekend = weekend_feasible[0]
        elif not payload.single_day:
            split = plan_multi_day(properties_by_node, weekend_days, matrix, constraints)
            weekend = [split] if split is not None else []

    suggestions = rank(
        primary,
        alternative,
        weekend,
        include_weekend=payload.include_weekend,
        weekend_allowed=weekend_allowed,
    )
    elapsed = time.monotonic() - started
    if not suggestions:
        logger.info(f"No feasible schedule for {len(requests)} properties ({elapsed:.2f}s)")
        raise NoFeasibleSchedule(
            horizon_start,
            horizon_end,
            reason="budget exhausted" if constraints.expired() else None,
        )

    logger.info(
        f"Optimized {len(requests)} properties into {len(suggestions)} suggestions in {elapsed:.2f}s "
        f"({estimator.external_calls} travel lookups)"
    )
    return OptimizationResponse(
        suggestions=[_suggestion_to_model(suggestion) for suggestion in suggestions],
        total_duration_minutes=sum(request.duration_minutes for request in requests),
        total_drive_time_minutes=suggestions[0].total_drive_minutes,
        horizon_start=horizon_start,
        horizon_end=horizon_end,
        travel_sources=sorted(matrix.sources),
        travel_degraded=matrix.degraded,
        skipped_properties=[
            SkippedPropertyModel(
                property_index=failure.property_index,
                address=failure.address,
                reason=failure.reason or str(failure),
            )
            for failure in failures
        ],
    )


def find_available_slots(day: date, duration_minutes: int) -> AvailabilityResponse:
    """Single-property slots from ``day`` through the look-ahead window."""
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")

    now = business_now()
    horizon_start, horizon_end = _horizon(day, now)
    snapshot = load_calendar_snapshot(horizon_start, horizon_end, get_booking_store())
    schedule = load_weekly_schedule()

    weekday_slots: list[AvailableSlotModel] = []
    weekend_slots: list[AvailableSlotModel] = []
    for availability in _resolve_days(
        horizon_start, horizon_end, snapshot, schedule, now, allow_weekend=settings.weekend_requests_enabled
    ):
        for slot in list_slots(availability, duration_minutes):
            model = AvailableSlotModel(
                date=availability.date,
                start=slot.start.time(),
                end=slot.end.time(),
                is_weekend=availability.is_weekend,
                is_request_only=availability.is_weekend,
            )
            (weekend_slots if availability.is_weekend else weekday_slots).append(model)

    return AvailabilityResponse(
        recommended=weekday_slots[:RECOMMENDED_SLOT_COUNT],
        all=weekday_slots,
        weekend_requests=weekend_slots,
    )
