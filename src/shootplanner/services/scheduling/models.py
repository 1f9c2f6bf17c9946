"""Scheduling working models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import List

from ...models.domain import SlotAssignment


@dataclass(slots=True)
class CandidateSchedule:
    """A time-feasible placement of an ordering, not yet ranked."""

    assignments: List[SlotAssignment]
    ordering: tuple[int, ...]
    total_drive_minutes: int
    total_drive_km: float
    idle_minutes: int
    is_weekend: bool = False

    @property
    def dates(self) -> tuple[date, ...]:
        return tuple(sorted({assignment.date for assignment in self.assignments}))

    @property
    def first_start(self) -> datetime:
        return min(assignment.start for assignment in self.assignments)

    @property
    def signature(self) -> tuple:
        return tuple((a.property_index, a.start) for a in self.assignments)

    def sort_key(self) -> tuple:
        return (self.total_drive_minutes, self.first_start, self.ordering)
