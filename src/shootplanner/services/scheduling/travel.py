"""Drive time estimation between shoot locations.

One ``TravelEstimator`` lives for one optimization call. It memoizes every
coordinate pair it has resolved and hands the sequencer a ``TravelMatrix``:
an index-addressed table of drive minutes and kilometres computed once, so the
permutation search never touches the network.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Sequence

import httpx

from ...config import settings
from ...models.domain import Coordinates, RouteLeg
from ..geospatial import estimate_drive_minutes, haversine_km
from ..mapping.mapbox_client import MapboxClient

logger = logging.getLogger(__name__)

SOURCE_MAPBOX = "mapbox"
SOURCE_HAVERSINE = "haversine"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True, slots=True)
class TravelEstimate:
    drive_minutes: int
    drive_km: float
    source: str


class TravelMatrix:
    """Drive minutes/km between locations.

    Index 0 is the home base and index k the k-th property; located bookings, if
    any, follow the properties.
    """

    def __init__(
        self,
        locations: Sequence[Coordinates],
        minutes: list[list[int]],
        km: list[list[float]],
        sources: set[str],
    ) -> None:
        if len(minutes) != len(locations) or len(km) != len(locations):
            raise ValueError(f"Matrix size mismatch: locations={len(locations)}, minutes={len(minutes)}, km={len(km)}")
        self.locations = tuple(locations)
        self._minutes = minutes
        self._km = km
        self.sources = frozenset(sources)

    @classmethod
    def from_rows(cls, minutes: list[list[int]], km: list[list[float]] | None = None) -> "TravelMatrix":
        """Build a matrix from literal rows; locations are placeholders."""
        size = len(minutes)
        km_rows = km if km is not None else [[float(value) for value in row] for row in minutes]
        placeholders = [Coordinates(lat=0.0, lng=0.0)] * size
        return cls(placeholders, minutes, km_rows, {"static"})

    @property
    def degraded(self) -> bool:
        return SOURCE_FALLBACK in self.sources

    def minutes(self, from_index: int, to_index: int) -> int:
        return self._minutes[from_index][to_index]

    def km(self, from_index: int, to_index: int) -> float:
        return self._km[from_index][to_index]

    def leg(self, from_index: int, to_index: int) -> RouteLeg:
        return RouteLeg(
            from_index=from_index,
            to_index=to_index,
            drive_minutes=self.minutes(from_index, to_index),
            drive_km=self.km(from_index, to_index),
        )

    def route_minutes(self, ordering: Sequence[int], start: int = 0) -> int:
        total = 0
        previous = start
        for node in ordering:
            total += self._minutes[previous][node]
            previous = node
        return total

    def route_km(self, ordering: Sequence[int], start: int = 0) -> float:
        total = 0.0
        previous = start
        for node in ordering:
            total += self._km[previous][node]
            previous = node
        return total


class TravelEstimator:
    def __init__(
        self,
        client: MapboxClient | None = None,
        average_speed_kmh: float | None = None,
        fallback_drive_minutes: int | None = None,
    ) -> None:
        self._client = client
        self.average_speed_kmh = average_speed_kmh or settings.average_speed_kmh
        self.fallback_drive_minutes = (
            fallback_drive_minutes if fallback_drive_minutes is not None else settings.fallback_drive_minutes
        )
        self._cache: dict[tuple[Coordinates, Coordinates], TravelEstimate] = {}
        self._lock = threading.Lock()
        self.external_calls = 0

    def _haversine(self, origin: Coordinates, destination: Coordinates) -> TravelEstimate:
        distance = haversine_km(origin.lat, origin.lng, destination.lat, destination.lng)
        return TravelEstimate(
            drive_minutes=estimate_drive_minutes(distance, self.average_speed_kmh),
            drive_km=round(distance, 2),
            source=SOURCE_HAVERSINE,
        )

    def _fallback(self, origin: Coordinates, destination: Coordinates) -> TravelEstimate:
        estimate = self._haversine(origin, destination)
        return TravelEstimate(
            drive_minutes=max(estimate.drive_minutes, self.fallback_drive_minutes),
            drive_km=estimate.drive_km,
            source=SOURCE_FALLBACK,
        )

    def _from_cells(
        self, origin: Coordinates, destination: Coordinates, seconds: float | None, meters: float | None
    ) -> TravelEstimate:
        if seconds is None or meters is None:
            return self._fallback(origin, destination)
        return TravelEstimate(
            drive_minutes=math.ceil(seconds / 60.0),
            drive_km=round(meters / 1000.0, 2),
            source=SOURCE_MAPBOX,
        )

    def _remember(self, origin: Coordinates, destination: Coordinates, estimate: TravelEstimate) -> TravelEstimate:
        with self._lock:
            return self._cache.setdefault((origin, destination), estimate)

    def estimate(self, origin: Coordinates, destination: Coordinates) -> TravelEstimate:
        if origin == destination:
            return TravelEstimate(drive_minutes=0, drive_km=0.0, source=SOURCE_HAVERSINE)
        with self._lock:
            cached = self._cache.get((origin, destination))
        if cached is not None:
            return cached
        if self._client is None:
            return self._remember(origin, destination, self._haversine(origin, destination))

        try:
            self.external_calls += 1
            data = self._client.matrix([origin, destination])
            estimate = self._from_cells(origin, destination, data["durations"][0][1], data["distances"][0][1])
        except (httpx.HTTPError, ConnectionError, ValueError) as e:
            logger.warning(f"Travel lookup failed, using fallback penalty: {e}")
            estimate = self._fallback(origin, destination)
        return self._remember(origin, destination, estimate)

    def build_matrix(self, locations: Sequence[Coordinates]) -> TravelMatrix:
        """Resolve all ordered pairs, fetching only pairs not seen before (one matrix call at most)."""
        n = len(locations)
        with self._lock:
            missing = [
                (i, j)
                for i in range(n)
                for j in range(n)
                if i != j and locations[i] != locations[j] and (locations[i], locations[j]) not in self._cache
            ]

        if missing:
            if self._client is None:
                for i, j in missing:
                    self._remember(locations[i], locations[j], self._haversine(locations[i], locations[j]))
            else:
                table: dict | None
                try:
                    self.external_calls += 1
                    table = self._client.matrix(locations)
                except (httpx.HTTPError, ConnectionError, ValueError) as e:
                    logger.warning(f"Mapbox matrix unavailable ({e}); using fallback penalty for {len(missing)} legs")
                    table = None
                for i, j in missing:
                    if table is None:
                        estimate = self._fallback(locations[i], locations[j])
                    else:
                        estimate = self._from_cells(
                            locations[i], locations[j], table["durations"][i][j], table["distances"][i][j]
                        )
                    self._remember(locations[i], locations[j], estimate)

        minutes = [[0] * n for _ in range(n)]
        km = [[0.0] * n for _ in range(n)]
        sources: set[str] = set()
        for i in range(n):
            for j in range(n):
                if i == j:
                    continue
                estimate = self.estimate(locations[i], locations[j])
                minutes[i][j] = estimate.drive_minutes
                km[i][j] = estimate.drive_km
                sources.add(estimate.source)

        if SOURCE_FALLBACK in sources:
            logger.warning("Travel matrix contains fallback penalties; schedules may be conservative")
        return TravelMatrix(locations, minutes, km, sources)
