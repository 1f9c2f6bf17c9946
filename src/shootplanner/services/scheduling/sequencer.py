"""Visit ordering and time placement for a batch of shoots.

Orderings are ranked by drive time from the home base through every stop
(open path, no return leg). Small batches are enumerated exhaustively; larger
ones use nearest-neighbour construction improved by 2-opt. Each ordering is
then walked through the day's free intervals to assign start/end times.
"""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping, Sequence

from ...config import settings
from ...models.domain import (
    Coordinates,
    DayAvailability,
    ExistingBooking,
    PropertyRequest,
    SlotAssignment,
    TimeInterval,
)
from .availability import ceil_to_step
from .models import CandidateSchedule
from .ranker import distance_key, score_key
from .travel import TravelMatrix

logger = logging.getLogger(__name__)

HOME = 0


@dataclass(slots=True)
class SequencerConstraints:
    brute_force_max_properties: int = settings.brute_force_max_properties
    two_opt_max_iterations: int = settings.two_opt_max_iterations
    max_candidates_per_day: int = settings.max_candidates_per_day
    buffer_after_minutes: int = settings.buffer_after_minutes
    time_rounding_minutes: int = settings.time_rounding_minutes
    slot_interval_minutes: int = settings.slot_interval_minutes
    default_drive_buffer_minutes: int = settings.default_drive_buffer_minutes
    deadline: float | None = None
    # Matrix index of each located booking's coordinates.
    location_nodes: dict[Coordinates, int] = field(default_factory=dict)

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline


def _ordering_key(ordering: tuple[int, ...], matrix: TravelMatrix) -> tuple:
    return (matrix.route_minutes(ordering, HOME), matrix.route_km(ordering, HOME), ordering)


def brute_force_orderings(nodes: Sequence[int], matrix: TravelMatrix) -> list[tuple[int, ...]]:
    """Every permutation, cheapest first."""
    return sorted(itertools.permutations(nodes), key=lambda ordering: _ordering_key(ordering, matrix))


def nearest_neighbour(nodes: Sequence[int], matrix: TravelMatrix, first: int | None = None) -> tuple[int, ...]:
    remaining = set(nodes)
    route: list[int] = []
    current = HOME
    if first is not None:
        route.append(first)
        remaining.discard(first)
        current = first
    while remaining:
        nxt = min(remaining, key=lambda node: (matrix.minutes(current, node), matrix.km(current, node), node))
        route.append(nxt)
        remaining.discard(nxt)
        current = nxt
    return tuple(route)


def two_opt(ordering: tuple[int, ...], matrix: TravelMatrix, constraints: SequencerConstraints) -> tuple[int, ...]:
    """Segment-reversal local search, bounded by pass count and the call deadline."""
    best = ordering
    best_key = _ordering_key(best, matrix)
    iterations = 0
    improved = True
    while improved and iterations < constraints.two_opt_max_iterations and not constraints.expired():
        improved = False
        iterations += 1
        for i in range(len(best) - 1):
            for k in range(i + 1, len(best)):
                candidate = best[:i] + tuple(reversed(best[i : k + 1])) + best[k + 1 :]
                candidate_key = _ordering_key(candidate, matrix)
                if candidate_key < best_key:
                    best, best_key = candidate, candidate_key
                    improved = True
    return best


def candidate_orderings(
    nodes: Sequence[int],
    matrix: TravelMatrix,
    constraints: SequencerConstraints,
) -> list[tuple[int, ...]]:
    """Distinct orderings of ``nodes``, cheapest first."""
    if not nodes:
        return []
    if len(nodes) <= constraints.brute_force_max_properties:
        return brute_force_orderings(nodes, matrix)

    orderings: set[tuple[int, ...]] = set()
    for seed in [None, *sorted(nodes)]:
        if constraints.expired() and orderings:
            logger.warning("Sequencing deadline reached; keeping orderings found so far")
            break
        orderings.add(two_opt(nearest_neighbour(nodes, matrix, first=seed), matrix, constraints))
    return sorted(orderings, key=lambda ordering: _ordering_key(ordering, matrix))


def _neighbouring_bookings(
    bookings: Sequence[ExistingBooking],
    interval: TimeInterval,
) -> tuple[ExistingBooking | None, ExistingBooking | None]:
    """Closest located booking ending before ``interval`` and closest one starting after it."""
    before = [booking for booking in bookings if booking.end <= interval.start]
    after = [booking for booking in bookings if booking.start >= interval.end]
    return (
        max(before, key=lambda booking: booking.end, default=None),
        min(after, key=lambda booking: booking.start, default=None),
    )


def _booking_gap(
    booking: ExistingBooking,
    node: int,
    matrix: TravelMatrix,
    constraints: SequencerConstraints,
    towards_booking: bool,
) -> int:
    """Minutes to keep between a stop and a located booking: shoot buffer plus the drive."""
    booking_node = constraints.location_nodes.get(booking.coordinates)
    if booking_node is None:
        return constraints.default_drive_buffer_minutes
    if towards_booking:
        return constraints.buffer_after_minutes + matrix.minutes(node, booking_node)
    return constraints.buffer_after_minutes + matrix.minutes(booking_node, node)


def place_ordering(
    ordering: Sequence[int],
    properties_by_node: Mapping[int, PropertyRequest],
    day: DayAvailability,
    matrix: TravelMatrix,
    constraints: SequencerConstraints,
) -> CandidateSchedule | None:
    """Assign times to ``ordering`` on ``day``, or None if it does not fit."""
    if not day.intervals or not ordering:
        return None

    window_start = day.window.start if day.window is not None else day.intervals[0].start
    buffer = timedelta(minutes=constraints.buffer_after_minutes)
    assignments: list[SlotAssignment] = []
    previous_node = HOME
    previous_end = None
    idle_minutes = 0
    total_drive = 0
    total_km = 0.0

    for node in ordering:
        prop = properties_by_node[node]
        drive = matrix.minutes(previous_node, node)
        duration = timedelta(minutes=prop.duration_minutes)
        required = None if previous_end is None else previous_end + buffer + timedelta(minutes=drive)

        start = None
        for interval in day.intervals:
            if required is None:
                # Leaving home at opening time; later intervals follow a booking whose buffer covers travel.
                earliest = interval.start + timedelta(minutes=drive) if interval.start <= window_start else interval.start
                candidate = ceil_to_step(earliest, constraints.slot_interval_minutes)
            else:
                if interval.end <= required:
                    continue
                candidate = ceil_to_step(max(required, interval.start), constraints.time_rounding_minutes)

            before, after = _neighbouring_bookings(day.located_bookings, interval)
            if before is not None:
                arrival = before.end + timedelta(minutes=_booking_gap(before, node, matrix, constraints, False))
                if candidate < arrival:
                    candidate = ceil_to_step(arrival, constraints.time_rounding_minutes)
            latest_end = interval.end
            if after is not None:
                leave_by = after.start - timedelta(minutes=_booking_gap(after, node, matrix, constraints, True))
                latest_end = min(latest_end, leave_by)
            if candidate + duration <= latest_end:
                start = candidate
                break
        if start is None:
            return None

        if required is not None:
            idle_minutes += int((start - required).total_seconds() // 60)
        leg_km = matrix.km(previous_node, node)
        assignments.append(
            SlotAssignment(
                property_index=prop.property_index,
                address=prop.address,
                start=start,
                end=start + duration,
                preceding_drive_minutes=drive,
                preceding_drive_km=leg_km,
            )
        )
        total_drive += drive
        total_km += leg_km
        previous_node = node
        previous_end = start + duration

    return CandidateSchedule(
        assignments=assignments,
        ordering=tuple(ordering),
        total_drive_minutes=total_drive,
        total_drive_km=round(total_km, 2),
        idle_minutes=idle_minutes,
        is_weekend=day.is_weekend,
    )


def plan_day(
    properties_by_node: Mapping[int, PropertyRequest],
    day: DayAvailability,
    matrix: TravelMatrix,
    constraints: SequencerConstraints | None = None,
    nodes: Sequence[int] | None = None,
) -> list[CandidateSchedule]:
    """Feasible schedules for one day, least drive first.

    The shortest ``max_candidates_per_day`` are kept, plus the lowest-score and
    lowest-distance schedules when they fall outside that cut.
    """
    constraints = constraints or SequencerConstraints()
    nodes = sorted(nodes if nodes is not None else properties_by_node)
    if not day.intervals:
        return []

    required_minutes = sum(properties_by_node[node].duration_minutes for node in nodes)
    if required_minutes > day.free_minutes:
        return []

    candidates: list[CandidateSchedule] = []
    for ordering in candidate_orderings(nodes, matrix, constraints):
        placed = place_ordering(ordering, properties_by_node, day, matrix, constraints)
        if placed is not None:
            candidates.append(placed)
    if not candidates:
        return []
    candidates.sort(key=CandidateSchedule.sort_key)
    kept = candidates[: constraints.max_candidates_per_day]
    for winner in (min(candidates, key=score_key), min(candidates, key=distance_key)):
        if winner not in kept:
            kept.append(winner)
    return kept


def _merge(parts: Sequence[CandidateSchedule]) -> CandidateSchedule:
    return CandidateSchedule(
        assignments=[assignment for part in parts for assignment in part.assignments],
        ordering=tuple(node for part in parts for node in part.ordering),
        total_drive_minutes=sum(part.total_drive_minutes for part in parts),
        total_drive_km=round(sum(part.total_drive_km for part in parts), 2),
        idle_minutes=sum(part.idle_minutes for part in parts),
        is_weekend=any(part.is_weekend for part in parts),
    )


def plan_multi_day(
    properties_by_node: Mapping[int, PropertyRequest],
    days: Sequence[DayAvailability],
    matrix: TravelMatrix,
    constraints: SequencerConstraints | None = None,
) -> CandidateSchedule | None:
    """Split the batch over consecutive usable days, fewest days first, then least drive.

    The batch is ordered along its best single route and cut into contiguous
    segments; segment ``j`` is sequenced on the ``j``-th day of the run.
    """
    constraints = constraints or SequencerConstraints()
    nodes = sorted(properties_by_node)
    usable = [day for day in days if day.intervals]
    if len(nodes) < 2 or len(usable) < 2:
        return None

    base_order = candidate_orderings(nodes, matrix, constraints)[0]

    for day_count in range(2, min(len(nodes), len(usable)) + 1):
        for run_start in range(len(usable) - day_count + 1):
            if constraints.expired():
                logger.warning("Sequencing deadline reached during multi-day search")
                return None
            run = usable[run_start : run_start + day_count]
            best: CandidateSchedule | None = None
            for cuts in itertools.combinations(range(1, len(base_order)), day_count - 1):
                bounds = (0, *cuts, len(base_order))
                parts: list[CandidateSchedule] = []
                for segment_index, day in enumerate(run):
                    segment = base_order[bounds[segment_index] : bounds[segment_index + 1]]
                    planned = plan_day(properties_by_node, day, matrix, constraints, nodes=segment)
                    if not planned:
                        break
                    parts.append(planned[0])
                else:
                    merged = _merge(parts)
                    if best is None or merged.sort_key() < best.sort_key():
                        best = merged
            if best is not None:
                logger.info(f"Multi-day plan over {day_count} days starting {run[0].date.isoformat()}")
                return best
    return None
