"""Schedule optimization request/response schemas."""

from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import StrategyType


class PropertyInput(BaseModel):
    address: str = Field(..., min_length=1)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    duration_minutes: int = Field(..., ge=1, description="Shoot duration on site.")
    package_type: str = "standard"
    photo_count: int = Field(default=0, ge=0)
    property_type: Optional[str] = None
    square_meters: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class OptimizationRequest(BaseModel):
    properties: List[PropertyInput] = Field(..., min_length=1)
    date: dt.date = Field(..., description="Preferred shoot date; the search starts here.")
    single_day: bool = Field(
        default=True,
        description="If False, the batch may be split across consecutive days when no single day fits.",
    )
    include_weekend: bool = Field(default=False, description="Also offer a weekend (request-only) option.")
    allow_partial: bool = Field(
        default=False,
        description="Skip properties whose address cannot be geocoded instead of failing the request.",
    )


class SlotModel(BaseModel):
    property_index: int
    address: str
    date: dt.date
    start: dt.time
    end: dt.time
    drive_time_minutes: int
    drive_distance_km: float = 0.0


class SuggestionModel(BaseModel):
    type: StrategyType
    label: str
    description: str
    date: dt.date
    dates: List[dt.date]
    slots: List[SlotModel]
    total_drive_time_minutes: int
    total_drive_km: float
    idle_minutes: int
    efficiency_score: float
    is_weekend_request: bool
    booking_status: str = Field(..., description="Status the bookings get on commit: confirmed or request.")


class SkippedPropertyModel(BaseModel):
    property_index: int
    address: str
    reason: str


class OptimizationResponse(BaseModel):
    suggestions: List[SuggestionModel]
    total_duration_minutes: int
    total_drive_time_minutes: int
    horizon_start: dt.date
    horizon_end: dt.date
    travel_sources: List[str]
    travel_degraded: bool = False
    skipped_properties: List[SkippedPropertyModel] = Field(default_factory=list)


class AvailableSlotModel(BaseModel):
    date: dt.date
    start: dt.time
    end: dt.time
    is_weekend: bool = False
    is_request_only: bool = False


class AvailabilityResponse(BaseModel):
    recommended: List[AvailableSlotModel]
    all: List[AvailableSlotModel]
    weekend_requests: List[AvailableSlotModel]
