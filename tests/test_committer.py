from datetime import date, datetime, time

import pytest

from shootplanner.models.domain import (
    CalendarSnapshot,
    ContactDetails,
    Coordinates,
    ExistingBooking,
    PropertyRequest,
    TimeInterval,
)
from shootplanner.persistence.bookings import booking_from_row
from shootplanner.services.bookings.committer import assignment_from_slot, commit
from shootplanner.services.errors import PartialBatchWriteFailure, SlotNoLongerAvailable
from shootplanner.services.scheduling.availability import AvailabilityCache, WeeklySchedule

TUESDAY = date(2026, 10, 20)
SATURDAY = date(2026, 10, 24)
CONTACT = ContactDetails(name="Anna Huber", email="anna@example.de", phone="+49 821 123456", company="Huber Immobilien")


class FakeBookingStore:
    def __init__(self, bookings=(), fail_insert: bool = False, short_insert: bool = False) -> None:
        self.bookings = list(bookings)
        self.rows: list[dict] = []
        self.fail_insert = fail_insert
        self.short_insert = short_insert
        self.insert_calls = 0
        self.deleted: list[tuple[str, list[int]]] = []

    def fetch_bookings(self, start, end):
        from_rows = [booking_from_row(row) for row in self.rows]
        return [b for b in [*self.bookings, *from_rows] if b is not None and start <= b.date <= end]

    def find_batch(self, batch_id):
        return [row for row in self.rows if row["batch_id"] == batch_id]

    def insert_bookings(self, rows):
        self.insert_calls += 1
        if self.fail_insert:
            raise RuntimeError("connection reset")
        written = rows[:1] if self.short_insert else rows
        stored = [{**row, "id": f"row-{len(self.rows) + i}"} for i, row in enumerate(written)]
        self.rows.extend(stored)
        return stored

    def delete_rows(self, batch_id, property_indexes):
        self.deleted.append((batch_id, list(property_indexes)))
        self.rows = [
            row for row in self.rows
            if not (row["batch_id"] == batch_id and row["property_index"] in property_indexes)
        ]


def _property(index: int, duration: int = 60) -> PropertyRequest:
    return PropertyRequest(
        address=f"Bahnhofstraße {index + 1}, Augsburg",
        duration_minutes=duration,
        property_index=index,
        coordinates=Coordinates(lat=48.36 + index / 100, lng=10.89),
    )


def _slots(day: date = TUESDAY):
    properties = [_property(0), _property(1)]
    chosen = [
        assignment_from_slot(properties[0], day, time(9, 0), time(10, 0), drive_minutes=12, drive_km=6.5),
        assignment_from_slot(properties[1], day, time(10, 30), time(11, 30), drive_minutes=10, drive_km=4.0),
    ]
    return properties, chosen


def test_commit_writes_rows_with_proposed_times():
    store = FakeBookingStore()
    properties, chosen = _slots()

    result = commit(properties, chosen, CONTACT, store, batch_id="batch-1", cache=AvailabilityCache())

    assert result.batch_id == "batch-1"
    assert result.status == "confirmed"
    assert result.created == 2
    for row, assignment in zip(store.rows, chosen):
        assert row["scheduled_date"] == "2026-10-20"
        assert row["status"] == "confirmed"
        assert row["source"] == "web"
        assert row["is_weekend_request"] is False
        restored = booking_from_row(row)
        assert restored.start == assignment.start
        assert restored.end == assignment.end
    assert store.rows[0]["drive_time_from_previous_minutes"] == 12
    assert store.rows[0]["contact_email"] == "anna@example.de"


def test_commit_generates_batch_id():
    properties, chosen = _slots()

    result = commit(properties, chosen, CONTACT, FakeBookingStore(), cache=AvailabilityCache())

    assert len(result.batch_id) == 36


def test_committing_twice_does_not_duplicate_rows():
    store = FakeBookingStore()
    properties, chosen = _slots()

    commit(properties, chosen, CONTACT, store, batch_id="batch-1", cache=AvailabilityCache())
    retry = commit(properties, chosen, CONTACT, store, batch_id="batch-1", cache=AvailabilityCache())

    assert retry.created == 0
    assert len(store.rows) == 2
    assert store.insert_calls == 1


def test_retry_only_writes_missing_properties():
    store = FakeBookingStore()
    properties, chosen = _slots()

    commit(properties, chosen[:1], CONTACT, store, batch_id="batch-1", cache=AvailabilityCache())
    retry = commit(properties, chosen, CONTACT, store, batch_id="batch-1", cache=AvailabilityCache())

    assert retry.created == 1
    assert sorted(row["property_index"] for row in store.rows) == [0, 1]
    assert [row["property_index"] for row in retry.rows] == [0, 1]


def test_weekend_slots_are_requests():
    store = FakeBookingStore()
    properties, chosen = _slots(SATURDAY)

    result = commit(properties, chosen, CONTACT, store, cache=AvailabilityCache())

    assert result.status == "request"
    assert all(row["status"] == "request" and row["is_weekend_request"] for row in store.rows)


def test_weekend_request_flag_forces_request_status():
    store = FakeBookingStore()
    properties, chosen = _slots()

    result = commit(properties, chosen, CONTACT, store, is_weekend_request=True, cache=AvailabilityCache())

    assert result.status == "request"
    assert {row["status"] for row in store.rows} == {"request"}


def test_taken_slot_raises_and_writes_nothing():
    taken = ExistingBooking(
        start=datetime.combine(TUESDAY, time(10, 0)),
        end=datetime.combine(TUESDAY, time(11, 0)),
        batch_id="other",
    )
    store = FakeBookingStore(bookings=[taken])
    properties, chosen = _slots()

    with pytest.raises(SlotNoLongerAvailable) as excinfo:
        commit(properties, chosen, CONTACT, store, cache=AvailabilityCache())

    assert excinfo.value.property_index == 1
    assert excinfo.value.to_detail()["start"] == "10:30"
    assert store.rows == []
    assert store.insert_calls == 0


def test_busy_calendar_event_blocks_commit():
    block = TimeInterval(datetime.combine(TUESDAY, time(9, 30)), datetime.combine(TUESDAY, time(9, 45)))
    properties, chosen = _slots()

    with pytest.raises(SlotNoLongerAvailable):
        commit(properties, chosen, CONTACT, FakeBookingStore(), busy_blocks=[block], cache=AvailabilityCache())


def test_failed_insert_is_compensated():
    store = FakeBookingStore(fail_insert=True)
    properties, chosen = _slots()

    with pytest.raises(PartialBatchWriteFailure) as excinfo:
        commit(properties, chosen, CONTACT, store, batch_id="batch-1", cache=AvailabilityCache())

    assert excinfo.value.batch_id == "batch-1"
    assert store.deleted == [("batch-1", [0, 1])]


def test_short_insert_is_rolled_back():
    store = FakeBookingStore(short_insert=True)
    properties, chosen = _slots()

    with pytest.raises(PartialBatchWriteFailure) as excinfo:
        commit(properties, chosen, CONTACT, store, batch_id="batch-1", cache=AvailabilityCache())

    assert excinfo.value.written == 1
    assert store.rows == []


def test_commit_invalidates_cached_days():
    cache = AvailabilityCache(ttl_seconds=60)
    cache.put_range(TUESDAY, TUESDAY, CalendarSnapshot())
    properties, chosen = _slots()

    commit(properties, chosen, CONTACT, FakeBookingStore(), cache=cache)

    assert cache.get_range(TUESDAY, TUESDAY) is None


def test_slot_length_must_match_duration():
    properties = [_property(0, duration=90)]
    chosen = [assignment_from_slot(properties[0], TUESDAY, time(9, 0), time(10, 0))]

    with pytest.raises(ValueError):
        commit(properties, chosen, CONTACT, FakeBookingStore(), cache=AvailabilityCache())


def test_overlapping_choices_are_rejected():
    properties = [_property(0), _property(1)]
    chosen = [
        assignment_from_slot(properties[0], TUESDAY, time(9, 0), time(10, 0)),
        assignment_from_slot(properties[1], TUESDAY, time(9, 30), time(10, 30)),
    ]

    with pytest.raises(ValueError):
        commit(properties, chosen, CONTACT, FakeBookingStore(), cache=AvailabilityCache())


def test_after_hours_weekday_slot_is_stored_as_request():
    store = FakeBookingStore()
    prop = _property(0)
    chosen = [assignment_from_slot(prop, TUESDAY, time(20, 0), time(21, 0))]

    result = commit([prop], chosen, CONTACT, store, cache=AvailabilityCache())

    assert result.status == "request"
    assert store.rows[0]["status"] == "request"
    assert store.rows[0]["is_weekend_request"] is False


def test_slot_running_past_closing_is_stored_as_request():
    store = FakeBookingStore()
    prop = _property(0)
    chosen = [assignment_from_slot(prop, TUESDAY, time(17, 30), time(18, 30))]

    assert commit([prop], chosen, CONTACT, store, cache=AvailabilityCache()).status == "request"


def test_slot_on_disabled_weekday_is_stored_as_request():
    store = FakeBookingStore()
    properties, chosen = _slots()
    schedule = WeeklySchedule.from_row({"tuesday_enabled": False})

    result = commit(properties, chosen, CONTACT, store, schedule=schedule, cache=AvailabilityCache())

    assert result.status == "request"
    assert {row["status"] for row in store.rows} == {"request"}


def test_located_booking_is_checked_without_flat_buffer():
    # Placement already kept the real drive to this booking; only its own time is taken.
    neighbour = ExistingBooking(
        start=datetime.combine(TUESDAY, time(11, 35)),
        end=datetime.combine(TUESDAY, time(12, 30)),
        drive_buffer_minutes=15,
        batch_id="other",
        coordinates=Coordinates(lat=48.37, lng=10.90),
    )
    store = FakeBookingStore(bookings=[neighbour])
    properties, chosen = _slots()

    result = commit(properties, chosen, CONTACT, store, cache=AvailabilityCache())

    assert result.created == 2
