"""Booking commit schemas."""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .scheduling import PropertyInput


class ContactModel(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[str] = None
    company: Optional[str] = None


class ChosenSlotModel(BaseModel):
    property_index: int = Field(..., ge=0)
    date: dt.date
    start: dt.time
    end: dt.time
    drive_time_minutes: int = Field(default=0, ge=0)
    drive_distance_km: float = Field(default=0.0, ge=0)


class CommitRequest(BaseModel):
    batch_id: Optional[str] = Field(default=None, description="Existing batch to retry; generated when omitted.")
    idempotency_key: Optional[str] = Field(
        default=None,
        description="Client retry key, used as the batch id when no batch_id is given.",
    )
    properties: List[PropertyInput] = Field(..., min_length=1)
    chosen_slots: List[ChosenSlotModel] = Field(..., min_length=1)
    contact: ContactModel
    is_weekend_request: bool = False

    @model_validator(mode="after")
    def _one_slot_per_property(self) -> "CommitRequest":
        indexes = [slot.property_index for slot in self.chosen_slots]
        if len(set(indexes)) != len(indexes):
            raise ValueError("chosen_slots contains the same property index more than once")
        unknown = [index for index in indexes if index >= len(self.properties)]
        if unknown:
            raise ValueError(f"chosen_slots reference unknown property indexes: {unknown}")
        return self


class CommitResponse(BaseModel):
    batch_id: str
    status: str
    created: int
    bookings: List[Dict[str, Any]]
