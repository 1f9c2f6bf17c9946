"""Schedule optimization endpoints."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query, status

from ...schemas.scheduling import AvailabilityResponse, OptimizationRequest, OptimizationResponse
from ...services.errors import GeocodingFailed, NoFeasibleSchedule
from ...services.scheduling.service import find_available_slots, optimize_schedule

router = APIRouter(prefix="/schedule", tags=["schedule"])


@router.post("/optimize", response_model=OptimizationResponse, status_code=status.HTTP_200_OK)
def optimize(payload: OptimizationRequest) -> OptimizationResponse:
    try:
        return optimize_schedule(payload)
    except GeocodingFailed as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.to_detail()) from exc
    except NoFeasibleSchedule as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_detail()) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error optimizing schedule: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to optimize schedule: {str(exc)}"
        ) from exc


@router.get("/availability", response_model=AvailabilityResponse, status_code=status.HTTP_200_OK)
def availability(
    day: date = Query(..., alias="date", description="First day to search (YYYY-MM-DD)"),
    duration_minutes: int = Query(..., ge=1),
) -> AvailabilityResponse:
    """Open single-shoot slots from ``date`` through the look-ahead window."""
    try:
        return find_available_slots(day, duration_minutes)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error listing availability: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list availability: {str(exc)}"
        ) from exc
