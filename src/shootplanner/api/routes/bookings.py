"""Booking commit endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...models.domain import ContactDetails, Coordinates, PropertyRequest
from ...persistence.bookings import get_booking_store
from ...persistence.calendar import load_busy_blocks, load_weekly_schedule
from ...schemas.bookings import CommitRequest, CommitResponse
from ...services.bookings.committer import assignment_from_slot, commit
from ...services.errors import PartialBatchWriteFailure, SlotNoLongerAvailable

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _store_or_503():
    store = get_booking_store()
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Booking store not configured. Set SHOOT_SUPABASE_URL and SHOOT_SUPABASE_KEY.",
        )
    return store


def _to_properties(payload: CommitRequest) -> list[PropertyRequest]:
    return [
        PropertyRequest(
            address=item.address,
            duration_minutes=item.duration_minutes,
            property_index=index,
            coordinates=Coordinates(item.lat, item.lng) if item.lat is not None and item.lng is not None else None,
            package_type=item.package_type,
            photo_count=item.photo_count,
            property_type=item.property_type,
            square_meters=item.square_meters,
            notes=item.notes,
        )
        for index, item in enumerate(payload.properties)
    ]


@router.post("/commit", response_model=CommitResponse, status_code=status.HTTP_201_CREATED)
def commit_batch(payload: CommitRequest) -> CommitResponse:
    store = _store_or_503()
    try:
        properties = _to_properties(payload)
        chosen = [
            assignment_from_slot(
                properties[slot.property_index],
                slot.date,
                slot.start,
                slot.end,
                drive_minutes=slot.drive_time_minutes,
                drive_km=slot.drive_distance_km,
            )
            for slot in payload.chosen_slots
        ]
        contact = ContactDetails(
            name=payload.contact.name,
            email=payload.contact.email,
            phone=payload.contact.phone,
            company=payload.contact.company,
        )
        days = sorted(slot.date for slot in payload.chosen_slots)
        result = commit(
            properties,
            chosen,
            contact,
            store,
            batch_id=payload.batch_id or payload.idempotency_key,
            is_weekend_request=payload.is_weekend_request,
            busy_blocks=load_busy_blocks(days[0], days[-1]),
            schedule=load_weekly_schedule(),
        )
    except SlotNoLongerAvailable as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_detail()) from exc
    except PartialBatchWriteFailure as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.to_detail()) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error committing booking batch: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to commit bookings: {str(exc)}"
        ) from exc

    return CommitResponse(
        batch_id=result.batch_id,
        status=result.status,
        created=result.created,
        bookings=result.rows,
    )


@router.get("/batch/{batch_id}", status_code=status.HTTP_200_OK)
def get_batch(batch_id: str) -> dict:
    store = _store_or_503()
    try:
        rows = store.find_batch(batch_id)
    except Exception as exc:
        logging.exception(f"Error loading batch {batch_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to load batch: {str(exc)}"
        ) from exc
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Batch {batch_id} not found")
    return {"batch_id": batch_id, "bookings": rows}
