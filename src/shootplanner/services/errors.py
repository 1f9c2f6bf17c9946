"""Scheduling and booking error taxonomy."""

from __future__ import annotations

from datetime import date, time


class SchedulingError(ValueError):
    """Base class for logical scheduling failures surfaced to the caller."""

    def to_detail(self) -> dict:
        return {"error": type(self).__name__, "message": str(self)}


class GeocodingFailed(SchedulingError):
    def __init__(self, property_index: int, address: str, reason: str | None = None) -> None:
        self.property_index = property_index
        self.address = address
        self.reason = reason
        message = f"Could not geocode property {property_index} ('{address}')"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail.update(property_index=self.property_index, address=self.address)
        return detail


class NoFeasibleSchedule(SchedulingError):
    def __init__(self, horizon_start: date, horizon_end: date, reason: str | None = None) -> None:
        self.horizon_start = horizon_start
        self.horizon_end = horizon_end
        message = (
            f"No feasible schedule between {horizon_start.isoformat()} and {horizon_end.isoformat()}. "
            "Please pick a date manually."
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail.update(
            horizon_start=self.horizon_start.isoformat(),
            horizon_end=self.horizon_end.isoformat(),
        )
        return detail


class SlotNoLongerAvailable(SchedulingError):
    """A chosen slot was taken between optimization and commit. Re-run the optimization."""

    def __init__(self, property_index: int, day: date, start: time) -> None:
        self.property_index = property_index
        self.day = day
        self.start = start
        super().__init__(
            f"Slot for property {property_index} on {day.isoformat()} at {start.strftime('%H:%M')} "
            "is no longer available."
        )

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail.update(
            property_index=self.property_index,
            date=self.day.isoformat(),
            start=self.start.strftime("%H:%M"),
        )
        return detail


class PartialBatchWriteFailure(RuntimeError):
    """Booking insert failed part-way; the written rows were removed again."""

    def __init__(self, batch_id: str, written: int, expected: int, cause: str | None = None) -> None:
        self.batch_id = batch_id
        self.written = written
        self.expected = expected
        message = f"Batch {batch_id} write failed ({written}/{expected} rows written, rolled back)"
        if cause:
            message = f"{message}: {cause}"
        super().__init__(message)

    def to_detail(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "batch_id": self.batch_id,
        }
