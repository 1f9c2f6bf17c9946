"""HTTP client for the Mapbox geocoding and driving matrix APIs."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence
from urllib.parse import quote

import httpx

from ...config import settings
from ...models.domain import Coordinates

logger = logging.getLogger(__name__)


class MapboxClient:
    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_coordinates_per_request: int | None = None,
        max_parallel_requests: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.access_token = access_token or settings.mapbox_access_token
        if not self.access_token:
            raise ValueError("Mapbox access token is not configured.")
        self.base_url = (base_url or settings.mapbox_base_url).rstrip("/")
        self.profile = profile or settings.mapbox_profile
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.mapbox_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.mapbox_backoff_seconds
        self.max_coordinates_per_request = max_coordinates_per_request or settings.mapbox_max_coordinates_per_request
        self.max_parallel_requests = max_parallel_requests or settings.max_parallel_requests
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        """Create a client per call so worker threads never share one."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
            transport=self._transport,
        )

    def _get_json(self, url: str, params: dict) -> dict:
        params = {**params, "access_token": self.access_token}
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    return response.json()
                except httpx.HTTPStatusError as e:
                    # Client errors will not improve on retry
                    if 400 <= e.response.status_code < 500 and e.response.status_code != 429:
                        raise ValueError(
                            f"Mapbox rejected request ({e.response.status_code}): {e.response.text[:200]}"
                        ) from e
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"Mapbox request timed out after {attempt} attempts: {e}")
                        raise
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Mapbox timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.ConnectError, httpx.NetworkError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(f"Failed to connect to Mapbox at {self.base_url}: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Mapbox network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
        finally:
            client.close()

    def search(self, query: str, limit: int = 5) -> list[dict]:
        """Address search used for autocomplete. Results are (address, lat, lng, place_name) dicts."""
        url = f"{self.base_url}/geocoding/v5/mapbox.places/{quote(query, safe='')}.json"
        params = {
            "country": settings.geocoding_country,
            "language": settings.geocoding_language,
            "types": "address,place",
            "limit": limit,
        }
        data = self._get_json(url, params)
        return [
            {
                "address": feature.get("place_name", ""),
                "lat": feature["center"][1],
                "lng": feature["center"][0],
                "place_name": feature.get("text", ""),
            }
            for feature in data.get("features", [])
            if feature.get("center")
        ]

    def geocode(self, address: str) -> Coordinates:
        results = self.search(address, limit=1)
        if not results:
            raise ValueError(f"No geocoding result for '{address}'")
        best = results[0]
        return Coordinates(lat=float(best["lat"]), lng=float(best["lng"]))

    def _matrix_single_request(
        self,
        coordinates: Sequence[Coordinates],
        sources: Sequence[int] | None = None,
        destinations: Sequence[int] | None = None,
    ) -> dict:
        """Single directions-matrix request. Durations in seconds, distances in meters."""
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for a Mapbox matrix.")

        coordinate_str = ";".join(f"{c.lng},{c.lat}" for c in coordinates)
        params = {"annotations": "duration,distance"}
        if sources is not None:
            params["sources"] = ";".join(str(i) for i in sources)
        if destinations is not None:
            params["destinations"] = ";".join(str(i) for i in destinations)
        url = f"{self.base_url}/directions-matrix/v1/mapbox/{self.profile}/{coordinate_str}"

        data = self._get_json(url, params)
        if data.get("code") != "Ok":
            raise ValueError(f"Mapbox matrix request failed: {data.get('message', data.get('code'))}")
        if "durations" not in data or "distances" not in data:
            raise ValueError("Mapbox matrix response missing durations/distances.")
        return data

    def _process_chunk_request(
        self,
        coordinates: Sequence[Coordinates],
        src_range: tuple[int, int],
        dst_range: tuple[int, int],
    ) -> tuple[tuple[int, int], tuple[int, int], dict | None]:
        src_start, src_end = src_range
        dst_start, dst_end = dst_range
        try:
            if src_range == dst_range:
                result = self._matrix_single_request(coordinates[src_start:src_end])
            else:
                chunk_coords = list(coordinates[src_start:src_end]) + list(coordinates[dst_start:dst_end])
                src_count = src_end - src_start
                result = self._matrix_single_request(
                    chunk_coords,
                    sources=range(src_count),
                    destinations=range(src_count, len(chunk_coords)),
                )
            return src_range, dst_range, result
        except (httpx.HTTPError, ConnectionError, ValueError) as e:
            logger.warning(f"Mapbox matrix chunk [{src_start}:{src_end}] -> [{dst_start}:{dst_end}] failed: {e}")
            return src_range, dst_range, None

    def matrix(self, coordinates: Sequence[Coordinates]) -> dict:
        """Full duration/distance matrix, chunked and fetched in parallel when too large.

        Cells of failed chunks are left as None; callers decide the fallback.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for a Mapbox matrix.")

        if len(coordinates) <= self.max_coordinates_per_request:
            return self._matrix_single_request(coordinates)

        # Source and destination chunks are combined in one request, so each half gets half the limit.
        chunk_size = max(1, self.max_coordinates_per_request // 2)
        chunk_ranges = [
            (i, min(i + chunk_size, len(coordinates)))
            for i in range(0, len(coordinates), chunk_size)
        ]
        n = len(coordinates)
        durations: list[list[float | None]] = [[None] * n for _ in range(n)]
        distances: list[list[float | None]] = [[None] * n for _ in range(n)]

        total_requests = len(chunk_ranges) ** 2
        logger.info(
            f"Chunking Mapbox matrix request: {n} coordinates, {total_requests} requests "
            f"(max {self.max_parallel_requests} concurrent)"
        )
        failed_chunks = 0
        with ThreadPoolExecutor(max_workers=self.max_parallel_requests) as executor:
            futures = [
                executor.submit(self._process_chunk_request, coordinates, src_range, dst_range)
                for src_range in chunk_ranges
                for dst_range in chunk_ranges
            ]
            for future in as_completed(futures):
                (src_start, src_end), (dst_start, dst_end), result = future.result()
                if result is None:
                    failed_chunks += 1
                    continue
                for local_src, global_src in enumerate(range(src_start, src_end)):
                    for local_dst, global_dst in enumerate(range(dst_start, dst_end)):
                        durations[global_src][global_dst] = result["durations"][local_src][local_dst]
                        distances[global_src][global_dst] = result["distances"][local_src][local_dst]

        if failed_chunks == total_requests:
            raise ConnectionError(f"All {total_requests} Mapbox matrix chunk requests failed.")
        if failed_chunks:
            logger.warning(f"Partial Mapbox matrix: {failed_chunks}/{total_requests} chunk requests failed.")

        return {"durations": durations, "distances": distances}


def check_health(access_token: str | None = None) -> bool:
    """Check Mapbox reachability with a minimal two-point matrix request."""
    token = access_token or settings.mapbox_access_token
    if not token:
        return False
    try:
        client = MapboxClient(access_token=token, max_retries=0)
        data = client._matrix_single_request(
            [Coordinates(lat=48.3705, lng=10.8978), Coordinates(lat=48.3668, lng=10.8986)]
        )
        return isinstance(data.get("durations"), list)
    except (httpx.HTTPError, ConnectionError, ValueError):
        return False
