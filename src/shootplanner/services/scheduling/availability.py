"""Free-time computation for a single calendar day."""

from __future__ import annotations

import threading
import time as monotonic_time
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Mapping, Sequence
from zoneinfo import ZoneInfo

from ...config import settings
from ...models.domain import CalendarSnapshot, DayAvailability, ExistingBooking, TimeInterval

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
WEEKDAY_CODES = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")


@dataclass(frozen=True, slots=True)
class BusinessHours:
    start: time
    end: time

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(f"Business hours start {self.start} must be before end {self.end}")


@dataclass(frozen=True, slots=True)
class DaySchedule:
    enabled: bool
    hours: BusinessHours


class WeeklySchedule:
    """Opening hours per weekday (0=Monday)."""

    def __init__(self, days: Mapping[int, DaySchedule]) -> None:
        missing = set(range(7)) - set(days)
        if missing:
            raise ValueError(f"Weekly schedule missing weekdays: {sorted(missing)}")
        self._days = dict(days)

    @classmethod
    def default(cls) -> "WeeklySchedule":
        weekday_hours = BusinessHours(settings.business_start, settings.business_end)
        weekend_hours = BusinessHours(settings.weekend_start, settings.weekend_end)
        working = set(settings.working_days)
        return cls(
            {
                index: DaySchedule(
                    enabled=code in working and index < 5,
                    hours=weekday_hours if index < 5 else weekend_hours,
                )
                for index, code in enumerate(WEEKDAY_CODES)
            }
        )

    @classmethod
    def from_row(cls, row: Mapping) -> "WeeklySchedule":
        """Build from an ``availability_settings`` row (``monday_enabled``, ``monday_start``, ...)."""
        base = cls.default()
        days: dict[int, DaySchedule] = {}
        for index, name in enumerate(WEEKDAY_NAMES):
            fallback = base.for_weekday(index)
            start = row.get(f"{name}_start")
            end = row.get(f"{name}_end")
            days[index] = DaySchedule(
                enabled=bool(row.get(f"{name}_enabled", fallback.enabled)),
                hours=BusinessHours(
                    _parse_time(start) if start else fallback.hours.start,
                    _parse_time(end) if end else fallback.hours.end,
                ),
            )
        return cls(days)

    def for_weekday(self, weekday: int) -> DaySchedule:
        return self._days[weekday]

    def for_day(self, day: date) -> DaySchedule:
        return self._days[day.weekday()]

    def covers(self, start: datetime, end: datetime) -> bool:
        """True when [start, end) lies inside the enabled opening hours of its day."""
        day = start.date()
        day_schedule = self.for_day(day)
        if not day_schedule.enabled:
            return False
        window = TimeInterval(
            datetime.combine(day, day_schedule.hours.start),
            datetime.combine(day, day_schedule.hours.end),
        )
        return window.contains(start, end)


def _parse_time(value: str | time) -> time:
    if isinstance(value, time):
        return value
    # Postgres time columns come back as "HH:MM:SS"
    return time.fromisoformat(str(value)[:5])


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def ceil_to_step(moment: datetime, step_minutes: int) -> datetime:
    """Round up to the next multiple of ``step_minutes`` after midnight."""
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = moment - midnight
    step = timedelta(minutes=step_minutes)
    remainder = elapsed % step
    if remainder:
        return moment + (step - remainder)
    return moment


def business_now() -> datetime:
    """Current wall-clock time in the business timezone, naive like all schedule datetimes."""
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def resolve(
    day: date,
    business_hours: BusinessHours | None,
    existing_bookings: Sequence[ExistingBooking],
    *,
    busy_blocks: Sequence[TimeInterval] = (),
    blocked_dates: Iterable[date] = (),
    schedule: WeeklySchedule | None = None,
    allow_weekend: bool = False,
    now: datetime | None = None,
    slot_interval_minutes: int | None = None,
    travel_aware: bool = False,
) -> DayAvailability:
    """Continuous free intervals of ``day`` after subtracting bookings (with their drive buffers) and busy blocks.

    Weekend days come back empty unless ``allow_weekend`` is set, but are always
    tagged ``is_weekend`` so a weekend option can still be offered on request.
    With ``travel_aware`` bookings that carry coordinates are subtracted without
    the flat buffer and returned as ``located_bookings`` for the sequencer.
    """
    weekend = is_weekend(day)
    if day in set(blocked_dates):
        return DayAvailability(date=day, intervals=(), is_weekend=weekend, is_blocked=True)

    schedule = schedule or WeeklySchedule.default()
    day_schedule = schedule.for_day(day)
    if weekend and not allow_weekend:
        return DayAvailability(date=day, intervals=(), is_weekend=True)
    if not weekend and not day_schedule.enabled:
        return DayAvailability(date=day, intervals=(), is_weekend=False)

    hours = business_hours or day_schedule.hours
    window = TimeInterval(datetime.combine(day, hours.start), datetime.combine(day, hours.end))
    free = [window]

    if now is not None:
        if now.date() > day:
            return DayAvailability(date=day, intervals=(), is_weekend=weekend, window=window)
        if now.date() == day:
            cutoff = ceil_to_step(now.replace(second=0, microsecond=0), slot_interval_minutes or settings.slot_interval_minutes)
            if cutoff >= window.end:
                return DayAvailability(date=day, intervals=(), is_weekend=weekend, window=window)
            if cutoff > window.start:
                free = [TimeInterval(cutoff, window.end)]

    obstacles = [booking.blocked_interval(travel_aware) for booking in existing_bookings]
    obstacles.extend(busy_blocks)
    for obstacle in obstacles:
        if not obstacle.overlaps(window):
            continue
        free = [piece for interval in free for piece in interval.subtract(obstacle)]

    return DayAvailability(
        date=day,
        intervals=tuple(sorted(free, key=lambda interval: interval.start)),
        is_weekend=weekend,
        window=window,
        located_bookings=tuple(
            sorted(
                (booking for booking in existing_bookings if travel_aware and booking.coordinates is not None),
                key=lambda booking: booking.start,
            )
        ),
    )


def list_slots(
    availability: DayAvailability,
    duration_minutes: int,
    slot_interval_minutes: int | None = None,
    buffer_after_minutes: int | None = None,
) -> list[TimeInterval]:
    """Fixed-step single-shoot slots that fit, with the after-shoot buffer, inside the free intervals."""
    step_minutes = slot_interval_minutes or settings.slot_interval_minutes
    buffer_minutes = buffer_after_minutes if buffer_after_minutes is not None else settings.buffer_after_minutes
    duration = timedelta(minutes=duration_minutes)
    needed = duration + timedelta(minutes=buffer_minutes)
    step = timedelta(minutes=step_minutes)
    slots: list[TimeInterval] = []
    for interval in availability.intervals:
        start = ceil_to_step(interval.start, step_minutes)
        while start + needed <= interval.end:
            slots.append(TimeInterval(start, start + duration))
            start += step
    return slots


class AvailabilityCache:
    """Per-day calendar obstacles shared between optimization calls, invalidated on commit."""

    def __init__(self, ttl_seconds: float | None = None) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.availability_cache_ttl_seconds
        self._entries: dict[date, tuple[float, CalendarSnapshot]] = {}
        self._lock = threading.Lock()

    def get_range(self, start: date, end: date) -> CalendarSnapshot | None:
        """Merged snapshot for [start, end], or None if any day is missing or stale."""
        if self.ttl_seconds <= 0:
            return None
        now = monotonic_time.monotonic()
        days: list[CalendarSnapshot] = []
        with self._lock:
            current = start
            while current <= end:
                entry = self._entries.get(current)
                if entry is None or now - entry[0] > self.ttl_seconds:
                    return None
                days.append(entry[1])
                current += timedelta(days=1)
        return CalendarSnapshot(
            bookings=tuple(booking for snapshot in days for booking in snapshot.bookings),
            busy_blocks=tuple(block for snapshot in days for block in snapshot.busy_blocks),
            blocked_dates=frozenset(day for snapshot in days for day in snapshot.blocked_dates),
        )

    def put_range(self, start: date, end: date, snapshot: CalendarSnapshot) -> None:
        stamp = monotonic_time.monotonic()
        with self._lock:
            current = start
            while current <= end:
                self._entries[current] = (
                    stamp,
                    CalendarSnapshot(
                        bookings=tuple(b for b in snapshot.bookings if b.date == current),
                        busy_blocks=tuple(
                            block for block in snapshot.busy_blocks
                            if block.start.date() <= current <= block.end.date()
                        ),
                        blocked_dates=frozenset({current} & snapshot.blocked_dates),
                    ),
                )
                current += timedelta(days=1)

    def invalidate(self, days: Iterable[date]) -> None:
        with self._lock:
            for day in days:
                self._entries.pop(day, None)


availability_cache = AvailabilityCache()
