"""Address search endpoint."""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, HTTPException, Query, status

from ...services.mapping.mapbox_client import MapboxClient

router = APIRouter(tags=["geocoding"])

MIN_QUERY_LENGTH = 3


@router.get("/geocode", status_code=status.HTTP_200_OK)
def geocode(
    query: str = Query(..., description="Free-text address"),
    limit: int = Query(5, ge=1, le=10),
) -> dict:
    if len(query.strip()) < MIN_QUERY_LENGTH:
        return {"results": []}
    try:
        client = MapboxClient()
    except ValueError as exc:
        return {"error": str(exc), "results": []}

    try:
        return {"results": client.search(query.strip(), limit=limit)}
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (httpx.HTTPError, ConnectionError) as exc:
        logging.warning(f"Geocoding search failed for '{query}': {exc}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Geocoding service unavailable: {exc}",
        ) from exc
