from datetime import date, datetime, time, timedelta

from shootplanner.models.domain import CalendarSnapshot, Coordinates, ExistingBooking, TimeInterval
from shootplanner.services.scheduling.availability import (
    AvailabilityCache,
    BusinessHours,
    WeeklySchedule,
    ceil_to_step,
    list_slots,
    resolve,
)

TUESDAY = date(2026, 10, 20)
SATURDAY = date(2026, 10, 24)
HOURS = BusinessHours(time(8, 0), time(18, 0))


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))


def test_empty_weekday_is_one_business_hours_interval():
    availability = resolve(TUESDAY, HOURS, [])

    assert not availability.is_weekend
    assert availability.intervals == (TimeInterval(_at(TUESDAY, 8), _at(TUESDAY, 18)),)


def test_single_sixty_minute_slot_fits_inside_business_hours():
    availability = resolve(TUESDAY, HOURS, [])
    slots = list_slots(availability, 60)

    assert slots[0].start == _at(TUESDAY, 8)
    assert all(slot.start >= _at(TUESDAY, 8) and slot.end <= _at(TUESDAY, 18) for slot in slots)
    # 60 min shoot plus the 15 min after-shoot buffer must end by closing time
    assert slots[-1].start == _at(TUESDAY, 16, 30)
    assert slots[-1].end == _at(TUESDAY, 17, 30)


def test_slot_listing_keeps_buffer_before_a_booking():
    availability = resolve(TUESDAY, HOURS, [], busy_blocks=[TimeInterval(_at(TUESDAY, 9, 15), _at(TUESDAY, 18))])

    assert list_slots(availability, 60) == [TimeInterval(_at(TUESDAY, 8), _at(TUESDAY, 9))]
    assert list_slots(availability, 60, buffer_after_minutes=30) == []


def test_existing_booking_is_subtracted_with_drive_buffer():
    booking = ExistingBooking(start=_at(TUESDAY, 10), end=_at(TUESDAY, 11), drive_buffer_minutes=15)

    availability = resolve(TUESDAY, HOURS, [booking])

    assert availability.intervals == (
        TimeInterval(_at(TUESDAY, 8), _at(TUESDAY, 9, 45)),
        TimeInterval(_at(TUESDAY, 11, 15), _at(TUESDAY, 18)),
    )


def test_busy_blocks_are_subtracted_without_buffer():
    block = TimeInterval(_at(TUESDAY, 12), _at(TUESDAY, 13))

    availability = resolve(TUESDAY, HOURS, [], busy_blocks=[block])

    assert availability.intervals == (
        TimeInterval(_at(TUESDAY, 8), _at(TUESDAY, 12)),
        TimeInterval(_at(TUESDAY, 13), _at(TUESDAY, 18)),
    )


def test_booking_covering_whole_day_leaves_nothing():
    booking = ExistingBooking(start=_at(TUESDAY, 7), end=_at(TUESDAY, 19))

    availability = resolve(TUESDAY, HOURS, [booking])

    assert availability.intervals == ()
    assert not availability.has_capacity


def test_weekend_is_empty_but_tagged():
    availability = resolve(SATURDAY, None, [])

    assert availability.is_weekend
    assert availability.intervals == ()


def test_weekend_opens_with_weekend_hours_on_request():
    availability = resolve(SATURDAY, None, [], allow_weekend=True)

    assert availability.is_weekend
    assert availability.intervals == (TimeInterval(_at(SATURDAY, 9), _at(SATURDAY, 14)),)


def test_blocked_date_is_empty():
    availability = resolve(TUESDAY, HOURS, [], blocked_dates={TUESDAY})

    assert availability.is_blocked
    assert availability.intervals == ()


def test_today_is_clipped_to_now_rounded_to_slot_interval():
    availability = resolve(TUESDAY, HOURS, [], now=_at(TUESDAY, 10, 7))

    assert availability.intervals[0].start == _at(TUESDAY, 10, 30)


def test_past_day_has_no_availability():
    availability = resolve(TUESDAY, HOURS, [], now=_at(TUESDAY + timedelta(days=1), 9))

    assert availability.intervals == ()


def test_weekly_schedule_row_disables_a_weekday_and_parses_times():
    row = {"tuesday_enabled": False, "wednesday_start": "09:30:00", "wednesday_end": "16:00:00"}
    schedule = WeeklySchedule.from_row(row)

    assert resolve(TUESDAY, None, [], schedule=schedule).intervals == ()
    wednesday = TUESDAY + timedelta(days=1)
    assert resolve(wednesday, None, [], schedule=schedule).intervals == (
        TimeInterval(_at(wednesday, 9, 30), _at(wednesday, 16)),
    )


def test_ceil_to_step():
    assert ceil_to_step(_at(TUESDAY, 8, 10), 30) == _at(TUESDAY, 8, 30)
    assert ceil_to_step(_at(TUESDAY, 8, 30), 30) == _at(TUESDAY, 8, 30)
    assert ceil_to_step(_at(TUESDAY, 9, 56), 5) == _at(TUESDAY, 10, 0)


def test_availability_cache_round_trip_and_invalidation():
    cache = AvailabilityCache(ttl_seconds=60)
    wednesday = TUESDAY + timedelta(days=1)
    booking = ExistingBooking(start=_at(TUESDAY, 10), end=_at(TUESDAY, 11))
    snapshot = CalendarSnapshot(bookings=(booking,), blocked_dates=frozenset({wednesday}))

    assert cache.get_range(TUESDAY, wednesday) is None
    cache.put_range(TUESDAY, wednesday, snapshot)

    cached = cache.get_range(TUESDAY, wednesday)
    assert cached is not None
    assert cached.bookings == (booking,)
    assert cached.blocked_dates == frozenset({wednesday})

    cache.invalidate([TUESDAY])
    assert cache.get_range(TUESDAY, wednesday) is None
    assert cache.get_range(wednesday, wednesday) is not None


def test_disabled_cache_never_hits():
    cache = AvailabilityCache(ttl_seconds=0)
    cache.put_range(TUESDAY, TUESDAY, CalendarSnapshot())

    assert cache.get_range(TUESDAY, TUESDAY) is None


def test_located_booking_blocks_only_its_own_time_when_travel_aware():
    booking = ExistingBooking(
        start=_at(TUESDAY, 10),
        end=_at(TUESDAY, 11),
        drive_buffer_minutes=15,
        coordinates=Coordinates(lat=48.40, lng=10.95),
    )
    unlocated = ExistingBooking(start=_at(TUESDAY, 14), end=_at(TUESDAY, 15), drive_buffer_minutes=15)

    availability = resolve(TUESDAY, HOURS, [booking, unlocated], travel_aware=True)

    assert availability.intervals == (
        TimeInterval(_at(TUESDAY, 8), _at(TUESDAY, 10)),
        TimeInterval(_at(TUESDAY, 11), _at(TUESDAY, 13, 45)),
        TimeInterval(_at(TUESDAY, 15, 15), _at(TUESDAY, 18)),
    )
    assert availability.located_bookings == (booking,)

    plain = resolve(TUESDAY, HOURS, [booking, unlocated])
    assert plain.intervals[0].end == _at(TUESDAY, 9, 45)
    assert plain.located_bookings == ()


def test_weekly_schedule_covers_only_enabled_opening_hours():
    schedule = WeeklySchedule.from_row({"wednesday_enabled": False})
    wednesday = TUESDAY + timedelta(days=1)

    assert schedule.covers(_at(TUESDAY, 8), _at(TUESDAY, 18))
    assert not schedule.covers(_at(TUESDAY, 17, 30), _at(TUESDAY, 18, 30))
    assert not schedule.covers(_at(TUESDAY, 20), _at(TUESDAY, 21))
    assert not schedule.covers(_at(wednesday, 9), _at(wednesday, 10))
    assert not schedule.covers(_at(SATURDAY, 10), _at(SATURDAY, 11))
