"""Calendar obstacles from Supabase: weekly hours, blocked dates and synced events."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import CalendarSnapshot, TimeInterval
from ..services.scheduling.availability import AvailabilityCache, WeeklySchedule, availability_cache
from .bookings import BookingStore

logger = logging.getLogger(__name__)


def load_weekly_schedule(client=None) -> WeeklySchedule:
    """Opening hours from ``availability_settings``; configured defaults when absent."""
    client = client or get_supabase_client()
    if client is None:
        return WeeklySchedule.default()
    try:
        response = client.table("availability_settings").select("*").limit(1).execute()
    except Exception as e:
        logger.warning(f"Could not load availability settings, using defaults: {e}")
        return WeeklySchedule.default()
    rows = response.data or []
    if not rows:
        return WeeklySchedule.default()
    return WeeklySchedule.from_row(rows[0])


def load_blocked_dates(start: date, end: date, client=None) -> frozenset[date]:
    """Every day in [start, end] covered by a ``blocked_dates`` range."""
    client = client or get_supabase_client()
    if client is None:
        return frozenset()
    response = (
        client.table("blocked_dates")
        .select("start_date, end_date")
        .lte("start_date", end.isoformat())
        .gte("end_date", start.isoformat())
        .execute()
    )
    blocked: set[date] = set()
    for row in response.data or []:
        range_start = max(date.fromisoformat(str(row["start_date"])[:10]), start)
        range_end = min(date.fromisoformat(str(row.get("end_date") or row["start_date"])[:10]), end)
        current = range_start
        while current <= range_end:
            blocked.add(current)
            current += timedelta(days=1)
    return frozenset(blocked)


def _to_local(value: Any, zone: ZoneInfo) -> datetime:
    moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(zone).replace(tzinfo=None)


def load_busy_blocks(start: date, end: date, client=None) -> tuple[TimeInterval, ...]:
    """Synced calendar events overlapping [start, end], as naive business-local intervals."""
    client = client or get_supabase_client()
    if client is None:
        return ()
    zone = ZoneInfo(settings.timezone)
    window_start = datetime.combine(start, datetime.min.time()).replace(tzinfo=zone)
    window_end = datetime.combine(end + timedelta(days=1), datetime.min.time()).replace(tzinfo=zone)
    response = (
        client.table("events")
        .select("id, start_time, end_time, title")
        .lt("start_time", window_end.isoformat())
        .gt("end_time", window_start.isoformat())
        .execute()
    )
    blocks: list[TimeInterval] = []
    for row in response.data or []:
        try:
            block_start = _to_local(row["start_time"], zone)
            block_end = _to_local(row["end_time"], zone)
            blocks.append(TimeInterval(block_start, block_end))
        except (KeyError, ValueError) as e:
            logger.warning(f"Ignoring calendar event {row.get('id')}: {e}")
    return tuple(sorted(blocks, key=lambda block: block.start))


def load_calendar_snapshot(
    start: date,
    end: date,
    store: BookingStore | None = None,
    client=None,
    cache: AvailabilityCache | None = None,
) -> CalendarSnapshot:
    """Read every obstacle for [start, end] once, reusing fresh cached days."""
    cache = cache if cache is not None else availability_cache
    cached = cache.get_range(start, end)
    if cached is not None:
        logger.debug(f"Calendar snapshot {start.isoformat()}..{end.isoformat()} served from cache")
        return cached

    if store is None:
        logger.warning("Booking store not configured; existing bookings are not considered")
    bookings = tuple(store.fetch_bookings(start, end)) if store is not None else ()
    snapshot = CalendarSnapshot(
        bookings=bookings,
        busy_blocks=load_busy_blocks(start, end, client),
        blocked_dates=load_blocked_dates(start, end, client),
    )
    cache.put_range(start, end, snapshot)
    logger.info(
        f"Calendar snapshot {start.isoformat()}..{end.isoformat()}: {len(snapshot.bookings)} bookings, "
        f"{len(snapshot.busy_blocks)} busy blocks, {len(snapshot.blocked_dates)} blocked days"
    )
    return snapshot
