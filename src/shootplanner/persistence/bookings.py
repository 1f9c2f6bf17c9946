"""Booking rows in Supabase."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any, Protocol, Sequence

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import ACTIVE_BOOKING_STATUSES, Coordinates, ExistingBooking

logger = logging.getLogger(__name__)

BOOKINGS_TABLE = "bookings"


class BookingStore(Protocol):
    """CRUD over booking rows keyed by ``batch_id`` + ``property_index``."""

    def fetch_bookings(self, start: date, end: date) -> list[ExistingBooking]:
        ...

    def find_batch(self, batch_id: str) -> list[dict[str, Any]]:
        ...

    def insert_bookings(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        ...

    def delete_rows(self, batch_id: str, property_indexes: Sequence[int]) -> None:
        ...


def _parse_clock(value: Any) -> time:
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value)[:8])


def _row_coordinates(row: dict[str, Any]) -> Coordinates | None:
    lat, lng = row.get("latitude"), row.get("longitude")
    if lat is None or lng is None:
        return None
    try:
        return Coordinates(lat=float(lat), lng=float(lng))
    except (TypeError, ValueError) as e:
        logger.warning(f"Ignoring location of booking {row.get('id')}: {e}")
        return None


def booking_from_row(row: dict[str, Any]) -> ExistingBooking | None:
    """Convert a ``bookings`` row into a calendar obstacle, or None if it has no usable times."""
    scheduled_date = row.get("scheduled_date")
    start_value = row.get("scheduled_start")
    end_value = row.get("scheduled_end")
    if not scheduled_date or not start_value or not end_value:
        return None

    try:
        day = scheduled_date if isinstance(scheduled_date, date) else date.fromisoformat(str(scheduled_date)[:10])
        start = datetime.combine(day, _parse_clock(start_value))
        end = datetime.combine(day, _parse_clock(end_value))
    except ValueError as e:
        logger.warning(f"Skipping booking {row.get('id')} with unreadable times: {e}")
        return None
    if start >= end:
        logger.warning(f"Skipping booking {row.get('id')} with empty interval {start} - {end}")
        return None

    buffer = row.get("drive_buffer_minutes")
    return ExistingBooking(
        start=start,
        end=end,
        drive_buffer_minutes=int(buffer) if buffer is not None else settings.default_drive_buffer_minutes,
        batch_id=row.get("batch_id"),
        property_index=row.get("property_index"),
        status=row.get("status") or "confirmed",
        coordinates=_row_coordinates(row),
    )


class SupabaseBookingStore:
    def __init__(self, client) -> None:
        self._client = client

    def fetch_bookings(self, start: date, end: date) -> list[ExistingBooking]:
        response = (
            self._client.table(BOOKINGS_TABLE)
            .select(
                "id, batch_id, property_index, scheduled_date, scheduled_start, scheduled_end, status, latitude, longitude"
            )
            .gte("scheduled_date", start.isoformat())
            .lte("scheduled_date", end.isoformat())
            .in_("status", list(ACTIVE_BOOKING_STATUSES))
            .execute()
        )
        bookings = [booking_from_row(row) for row in (response.data or [])]
        return [booking for booking in bookings if booking is not None]

    def find_batch(self, batch_id: str) -> list[dict[str, Any]]:
        response = (
            self._client.table(BOOKINGS_TABLE)
            .select("*")
            .eq("batch_id", batch_id)
            .order("property_index")
            .execute()
        )
        return list(response.data or [])

    def insert_bookings(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        # A single bulk insert is one PostgREST statement, so it commits or fails as a whole
        response = self._client.table(BOOKINGS_TABLE).insert(rows).execute()
        return list(response.data or [])

    def delete_rows(self, batch_id: str, property_indexes: Sequence[int]) -> None:
        if not property_indexes:
            return
        (
            self._client.table(BOOKINGS_TABLE)
            .delete()
            .eq("batch_id", batch_id)
            .in_("property_index", list(property_indexes))
            .execute()
        )


def get_booking_store() -> BookingStore | None:
    """Supabase-backed store, or None when the database is not configured."""
    client = get_supabase_client()
    if client is None:
        return None
    return SupabaseBookingStore(client)
