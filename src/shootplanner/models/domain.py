"""Domain models for shoot requests, calendar obstacles and schedule proposals."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional


class StrategyType(str, Enum):
    RECOMMENDED = "recommended"
    CHEAPEST = "cheapest"
    FLEXIBLE = "flexible"
    WEEKEND = "weekend"


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    REQUEST = "request"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that occupy the calendar.
ACTIVE_BOOKING_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.REQUEST.value)


@dataclass(frozen=True, slots=True)
class Coordinates:
    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not (-90 <= self.lat <= 90) or not (-180 <= self.lng <= 180):
            raise ValueError(f"Invalid coordinates: ({self.lat}, {self.lng})")


@dataclass(frozen=True, slots=True)
class PropertyRequest:
    """One property of a batch. Coordinates stay None until geocoded."""

    address: str
    duration_minutes: int
    property_index: int
    coordinates: Optional[Coordinates] = None
    package_type: str = "standard"
    photo_count: int = 0
    property_type: Optional[str] = None
    square_meters: Optional[float] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if self.duration_minutes <= 0:
            raise ValueError(f"Property {self.property_index}: duration must be positive, got {self.duration_minutes}")

    def with_coordinates(self, coordinates: Coordinates) -> "PropertyRequest":
        if self.coordinates is not None:
            raise ValueError(f"Property {self.property_index} is already geocoded")
        return replace(self, coordinates=coordinates)


@dataclass(frozen=True, slots=True)
class TimeInterval:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(f"Interval start {self.start} must be before end {self.end}")

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "TimeInterval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end

    def subtract(self, other: "TimeInterval") -> list["TimeInterval"]:
        if not self.overlaps(other):
            return [self]
        remainder: list[TimeInterval] = []
        if self.start < other.start:
            remainder.append(TimeInterval(self.start, other.start))
        if other.end < self.end:
            remainder.append(TimeInterval(other.end, self.end))
        return remainder


@dataclass(frozen=True, slots=True)
class ExistingBooking:
    """An occupied calendar block. Read-only to the optimizer."""

    start: datetime
    end: datetime
    drive_buffer_minutes: int = 0
    batch_id: Optional[str] = None
    property_index: Optional[int] = None
    status: str = BookingStatus.CONFIRMED.value
    coordinates: Optional[Coordinates] = None

    @property
    def date(self) -> date:
        return self.start.date()

    def blocked_interval(self, travel_aware: bool = False) -> TimeInterval:
        """Occupied time plus the flat drive buffer.

        With ``travel_aware`` a booking with known coordinates blocks only its own
        time; the drive to and from it is checked against the travel matrix instead.
        """
        if travel_aware and self.coordinates is not None:
            return TimeInterval(self.start, self.end)
        buffer = timedelta(minutes=self.drive_buffer_minutes)
        return TimeInterval(self.start - buffer, self.end + buffer)


@dataclass(frozen=True, slots=True)
class DayAvailability:
    date: date
    intervals: tuple[TimeInterval, ...]
    is_weekend: bool
    is_blocked: bool = False
    window: Optional[TimeInterval] = None
    # Bookings with coordinates; placement keeps real drive time to and from them.
    located_bookings: tuple[ExistingBooking, ...] = ()

    @property
    def free_minutes(self) -> int:
        return sum(interval.duration_minutes for interval in self.intervals)

    @property
    def has_capacity(self) -> bool:
        return bool(self.intervals)


@dataclass(frozen=True, slots=True)
class RouteLeg:
    from_index: int
    to_index: int
    drive_minutes: int
    drive_km: float


@dataclass(frozen=True, slots=True)
class SlotAssignment:
    property_index: int
    address: str
    start: datetime
    end: datetime
    preceding_drive_minutes: int
    preceding_drive_km: float = 0.0

    @property
    def date(self) -> date:
        return self.start.date()


@dataclass(frozen=True, slots=True)
class ScheduleSuggestion:
    strategy_type: StrategyType
    label: str
    description: str
    assignments: tuple[SlotAssignment, ...]
    total_drive_minutes: int
    total_drive_km: float
    idle_minutes: int
    efficiency_score: float
    is_weekend_request: bool = False

    @property
    def dates(self) -> tuple[date, ...]:
        return tuple(sorted({assignment.date for assignment in self.assignments}))

    @property
    def date(self) -> date:
        return self.dates[0]

    @property
    def status_on_commit(self) -> BookingStatus:
        return BookingStatus.REQUEST if self.is_weekend_request else BookingStatus.CONFIRMED


@dataclass(frozen=True, slots=True)
class ContactDetails:
    name: str
    email: str
    phone: Optional[str] = None
    company: Optional[str] = None


@dataclass(slots=True)
class CalendarSnapshot:
    """Calendar state read once at the start of an optimization call."""

    bookings: tuple[ExistingBooking, ...] = ()
    busy_blocks: tuple[TimeInterval, ...] = ()
    blocked_dates: frozenset[date] = field(default_factory=frozenset)
