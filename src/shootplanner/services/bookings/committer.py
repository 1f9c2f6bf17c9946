"""Persist a chosen schedule as one batch of booking rows."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Sequence

from ...models.domain import (
    BookingStatus,
    ContactDetails,
    PropertyRequest,
    SlotAssignment,
    TimeInterval,
)
from ...persistence.bookings import BookingStore
from ..errors import PartialBatchWriteFailure, SlotNoLongerAvailable
from ..scheduling.availability import AvailabilityCache, WeeklySchedule, availability_cache, is_weekend

logger = logging.getLogger(__name__)

BOOKING_SOURCE = "web"


@dataclass(slots=True)
class CommitResult:
    batch_id: str
    status: str
    created: int
    rows: list[dict[str, Any]] = field(default_factory=list)


def _row_status(assignment: SlotAssignment, is_weekend_request: bool, schedule: WeeklySchedule) -> str:
    """Weekend and out-of-hours slots are only requests until the photographer accepts them."""
    if is_weekend_request or not schedule.covers(assignment.start, assignment.end):
        return BookingStatus.REQUEST.value
    return BookingStatus.CONFIRMED.value


def build_booking_row(
    batch_id: str,
    prop: PropertyRequest,
    assignment: SlotAssignment,
    contact: ContactDetails,
    is_weekend_request: bool,
    schedule: WeeklySchedule | None = None,
) -> dict[str, Any]:
    """Booking row for one property. Times are written exactly as proposed."""
    weekend_request = is_weekend_request or is_weekend(assignment.date)
    status = _row_status(assignment, weekend_request, schedule or WeeklySchedule.default())
    return {
        "batch_id": batch_id,
        "property_index": prop.property_index,
        "contact_name": contact.name,
        "contact_email": contact.email,
        "contact_phone": contact.phone,
        "company_name": contact.company,
        "address": prop.address,
        "latitude": prop.coordinates.lat if prop.coordinates else None,
        "longitude": prop.coordinates.lng if prop.coordinates else None,
        "package_type": prop.package_type,
        "photo_count": prop.photo_count,
        "property_type": prop.property_type,
        "square_meters": prop.square_meters,
        "scheduled_date": assignment.date.isoformat(),
        "scheduled_start": assignment.start.strftime("%H:%M:%S"),
        "scheduled_end": assignment.end.strftime("%H:%M:%S"),
        "estimated_duration_minutes": int((assignment.end - assignment.start).total_seconds() // 60),
        "drive_time_from_previous_minutes": assignment.preceding_drive_minutes,
        "drive_distance_km": assignment.preceding_drive_km,
        "status": status,
        "is_weekend_request": weekend_request,
        "source": BOOKING_SOURCE,
        "notes": prop.notes,
    }


def _check_assignments(
    properties: dict[int, PropertyRequest],
    assignments: Sequence[SlotAssignment],
) -> None:
    ordered = sorted(assignments, key=lambda assignment: assignment.start)
    for assignment in ordered:
        prop = properties.get(assignment.property_index)
        if prop is None:
            raise ValueError(f"No property with index {assignment.property_index} in this batch")
        slot = TimeInterval(assignment.start, assignment.end)
        if slot.duration_minutes != prop.duration_minutes:
            raise ValueError(
                f"Slot for property {assignment.property_index} lasts {slot.duration_minutes} minutes, "
                f"expected {prop.duration_minutes}"
            )
    for previous, current in zip(ordered, ordered[1:]):
        if current.start < previous.end:
            raise ValueError(
                f"Slots for properties {previous.property_index} and {current.property_index} overlap"
            )


def _verify_still_free(
    store: BookingStore,
    batch_id: str,
    assignments: Sequence[SlotAssignment],
    busy_blocks: Sequence[TimeInterval],
) -> None:
    """Re-read the store right before writing and fail if any chosen slot is now taken."""
    days = sorted({assignment.date for assignment in assignments})
    current = [
        booking for booking in store.fetch_bookings(days[0], days[-1])
        if booking.batch_id != batch_id
    ]
    obstacles = [booking.blocked_interval(travel_aware=True) for booking in current]
    obstacles.extend(busy_blocks)
    for assignment in assignments:
        slot = TimeInterval(assignment.start, assignment.end)
        if any(slot.overlaps(obstacle) for obstacle in obstacles):
            logger.info(f"Batch {batch_id}: slot for property {assignment.property_index} was taken")
            raise SlotNoLongerAvailable(assignment.property_index, assignment.date, assignment.start.time())


def commit(
    properties: Sequence[PropertyRequest],
    chosen: Sequence[SlotAssignment],
    contact: ContactDetails,
    store: BookingStore,
    *,
    batch_id: str | None = None,
    is_weekend_request: bool = False,
    busy_blocks: Sequence[TimeInterval] = (),
    cache: AvailabilityCache | None = None,
    schedule: WeeklySchedule | None = None,
) -> CommitResult:
    """Write one booking row per chosen slot, all sharing ``batch_id``.

    Rows already stored for ``(batch_id, property_index)`` are returned as-is,
    so retrying with the same batch id never duplicates bookings. The remaining
    rows go out in a single insert; if it fails or comes back short, the rows
    of this call are deleted again and ``PartialBatchWriteFailure`` is raised.
    Slots outside the enabled hours of ``schedule`` are stored as requests.
    """
    if not chosen:
        raise ValueError("At least one chosen slot is required")
    cache = cache if cache is not None else availability_cache
    schedule = schedule or WeeklySchedule.default()
    batch_id = batch_id or str(uuid.uuid4())
    by_index = {prop.property_index: prop for prop in properties}
    _check_assignments(by_index, chosen)

    existing = store.find_batch(batch_id)
    existing_indexes = {row.get("property_index") for row in existing}
    to_write = [assignment for assignment in chosen if assignment.property_index not in existing_indexes]
    if not to_write:
        logger.info(f"Batch {batch_id} already committed ({len(existing)} rows); nothing to write")
        return CommitResult(batch_id=batch_id, status=_batch_status(existing), created=0, rows=existing)

    _verify_still_free(store, batch_id, to_write, busy_blocks)

    rows = [
        build_booking_row(
            batch_id, by_index[assignment.property_index], assignment, contact, is_weekend_request, schedule
        )
        for assignment in to_write
    ]
    written_indexes = [row["property_index"] for row in rows]
    try:
        inserted = store.insert_bookings(rows)
    except Exception as e:
        logger.error(f"Batch {batch_id}: insert of {len(rows)} rows failed: {e}")
        _compensate(store, batch_id, written_indexes)
        raise PartialBatchWriteFailure(batch_id, 0, len(rows), str(e)) from e

    if len(inserted) != len(rows):
        logger.error(f"Batch {batch_id}: insert returned {len(inserted)} of {len(rows)} rows")
        _compensate(store, batch_id, written_indexes)
        raise PartialBatchWriteFailure(batch_id, len(inserted), len(rows))

    cache.invalidate({assignment.date for assignment in to_write})
    all_rows = sorted([*existing, *inserted], key=lambda row: row.get("property_index", 0))
    status = _batch_status(all_rows)
    logger.info(f"Committed batch {batch_id}: {len(inserted)} new rows, status {status}")
    return CommitResult(batch_id=batch_id, status=status, created=len(inserted), rows=all_rows)


def _compensate(store: BookingStore, batch_id: str, property_indexes: Sequence[int]) -> None:
    try:
        store.delete_rows(batch_id, property_indexes)
        logger.warning(f"Batch {batch_id}: removed partially written rows {list(property_indexes)}")
    except Exception:
        logger.exception(f"Batch {batch_id}: compensating delete failed; rows may need manual cleanup")


def _batch_status(rows: Sequence[dict[str, Any]]) -> str:
    if any(row.get("status") == BookingStatus.REQUEST.value for row in rows):
        return BookingStatus.REQUEST.value
    return BookingStatus.CONFIRMED.value


def assignment_from_slot(
    prop: PropertyRequest,
    day: date,
    start: time,
    end: time,
    drive_minutes: int = 0,
    drive_km: float = 0.0,
) -> SlotAssignment:
    return SlotAssignment(
        property_index=prop.property_index,
        address=prop.address,
        start=datetime.combine(day, start),
        end=datetime.combine(day, end),
        preceding_drive_minutes=drive_minutes,
        preceding_drive_km=drive_km,
    )
