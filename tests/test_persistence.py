from datetime import date, datetime, time

import pytest

from shootplanner.db import supabase as supabase_db
from shootplanner.models.domain import Coordinates, ExistingBooking
from shootplanner.persistence import calendar as calendar_store
from shootplanner.persistence.bookings import SupabaseBookingStore, booking_from_row
from shootplanner.services.scheduling.availability import AvailabilityCache

TUESDAY = date(2026, 10, 20)


class DummyResponse:
    def __init__(self, data):
        self.data = data


class DummyQuery:
    """Records a PostgREST call chain and returns canned rows on execute()."""

    def __init__(self, table: str, rows: list[dict], log: list) -> None:
        self.table = table
        self.rows = rows
        self.log = log
        self.calls: list[tuple] = []

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args))
            return self

        return method

    def execute(self):
        self.log.append((self.table, self.calls))
        return DummyResponse(self.rows)


class DummySupabase:
    def __init__(self, tables: dict[str, list[dict]]) -> None:
        self.tables = tables
        self.log: list = []

    def table(self, name: str) -> DummyQuery:
        return DummyQuery(name, self.tables.get(name, []), self.log)


def test_booking_from_row_combines_date_and_times():
    booking = booking_from_row(
        {
            "id": "b1",
            "batch_id": "batch-1",
            "property_index": 0,
            "scheduled_date": "2026-10-20",
            "scheduled_start": "09:00:00",
            "scheduled_end": "10:30:00",
            "status": "confirmed",
        }
    )

    assert booking == ExistingBooking(
        start=datetime(2026, 10, 20, 9, 0),
        end=datetime(2026, 10, 20, 10, 30),
        drive_buffer_minutes=15,
        batch_id="batch-1",
        property_index=0,
        status="confirmed",
    )


def test_booking_from_row_keeps_location():
    row = {
        "id": "b4",
        "scheduled_date": "2026-10-20",
        "scheduled_start": "09:00:00",
        "scheduled_end": "10:00:00",
        "latitude": 48.3705,
        "longitude": "10.8978",
    }

    assert booking_from_row(row).coordinates == Coordinates(lat=48.3705, lng=10.8978)
    assert booking_from_row({**row, "longitude": None}).coordinates is None
    assert booking_from_row({**row, "latitude": 123.0}).coordinates is None


def test_booking_from_row_skips_rows_without_times():
    assert booking_from_row({"id": "b2", "scheduled_date": "2026-10-20"}) is None
    assert booking_from_row(
        {"id": "b3", "scheduled_date": "2026-10-20", "scheduled_start": "11:00", "scheduled_end": "10:00"}
    ) is None


def test_store_fetches_only_active_bookings():
    client = DummySupabase(
        {"bookings": [{"scheduled_date": "2026-10-20", "scheduled_start": "09:00", "scheduled_end": "10:00"}]}
    )

    bookings = SupabaseBookingStore(client).fetch_bookings(TUESDAY, TUESDAY)

    assert len(bookings) == 1
    table, calls = client.log[0]
    assert table == "bookings"
    assert ("in_", ("status", ["confirmed", "request"])) in calls


def test_store_deletes_only_listed_rows():
    client = DummySupabase({})

    SupabaseBookingStore(client).delete_rows("batch-1", [0, 2])

    _, calls = client.log[0]
    assert ("eq", ("batch_id", "batch-1")) in calls
    assert ("in_", ("property_index", [0, 2])) in calls


def test_blocked_ranges_expand_to_days_inside_window():
    client = DummySupabase({"blocked_dates": [{"start_date": "2026-10-18", "end_date": "2026-10-21"}]})

    blocked = calendar_store.load_blocked_dates(TUESDAY, date(2026, 10, 30), client)

    assert blocked == frozenset({TUESDAY, date(2026, 10, 21)})


def test_busy_events_are_converted_to_local_time():
    client = DummySupabase(
        {"events": [{"id": "e1", "start_time": "2026-10-20T08:00:00Z", "end_time": "2026-10-20T09:30:00+00:00"}]}
    )

    blocks = calendar_store.load_busy_blocks(TUESDAY, TUESDAY, client)

    # Europe/Berlin is UTC+2 in October before the switch
    assert blocks[0].start == datetime(2026, 10, 20, 10, 0)
    assert blocks[0].end == datetime(2026, 10, 20, 11, 30)


def test_weekly_schedule_defaults_without_row():
    schedule = calendar_store.load_weekly_schedule(DummySupabase({}))

    assert schedule.for_day(TUESDAY).enabled
    assert schedule.for_day(TUESDAY).hours.start == time(8, 0)


def test_weekly_schedule_reads_settings_row():
    client = DummySupabase({"availability_settings": [{"tuesday_start": "10:00:00", "tuesday_end": "15:00:00"}]})

    schedule = calendar_store.load_weekly_schedule(client)

    assert schedule.for_day(TUESDAY).hours.start == time(10, 0)
    assert schedule.for_day(TUESDAY).hours.end == time(15, 0)


def test_calendar_snapshot_is_cached():
    class CountingStore:
        calls = 0

        def fetch_bookings(self, start, end):
            CountingStore.calls += 1
            return []

    cache = AvailabilityCache(ttl_seconds=60)
    client = DummySupabase({})

    calendar_store.load_calendar_snapshot(TUESDAY, TUESDAY, CountingStore(), client=client, cache=cache)
    calendar_store.load_calendar_snapshot(TUESDAY, TUESDAY, CountingStore(), client=client, cache=cache)

    assert CountingStore.calls == 1


@pytest.fixture
def fresh_client_cache():
    supabase_db.get_supabase_client.cache_clear()
    yield
    supabase_db.get_supabase_client.cache_clear()


def test_supabase_client_is_none_without_credentials(monkeypatch, fresh_client_cache):
    monkeypatch.setattr(supabase_db.settings, "supabase_url", None)

    assert supabase_db.get_supabase_client() is None


def test_supabase_client_is_created_once(monkeypatch, fresh_client_cache):
    created = []
    monkeypatch.setattr(supabase_db.settings, "supabase_url", "https://shoots.supabase.co")
    monkeypatch.setattr(supabase_db.settings, "supabase_key", "service-role-key")
    monkeypatch.setattr(supabase_db, "create_client", lambda url, key: created.append((url, key)) or object())

    first = supabase_db.get_supabase_client()

    assert supabase_db.get_supabase_client() is first
    assert created == [("https://shoots.supabase.co", "service-role-key")]


def test_supabase_client_failure_returns_none(monkeypatch, fresh_client_cache):
    def broken(url, key):
        raise ValueError("Invalid API key")

    monkeypatch.setattr(supabase_db.settings, "supabase_url", "https://shoots.supabase.co")
    monkeypatch.setattr(supabase_db.settings, "supabase_key", "bad")
    monkeypatch.setattr(supabase_db, "create_client", broken)

    assert supabase_db.get_supabase_client() is None
