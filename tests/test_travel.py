from shootplanner.models.domain import Coordinates
from shootplanner.services.scheduling.travel import (
    SOURCE_FALLBACK,
    SOURCE_HAVERSINE,
    SOURCE_MAPBOX,
    TravelEstimator,
)

HOME = Coordinates(lat=48.3705, lng=10.8978)
KOENIGSPLATZ = Coordinates(lat=48.3650, lng=10.8930)
GERSTHOFEN = Coordinates(lat=48.4240, lng=10.8790)


class DummyMapbox:
    def __init__(self) -> None:
        self.calls = 0

    def matrix(self, coordinates):
        self.calls += 1
        count = len(coordinates)
        return {
            "durations": [[0 if i == j else 600 for j in range(count)] for i in range(count)],
            "distances": [[0 if i == j else 4200 for j in range(count)] for i in range(count)],
        }


class FailingMapbox:
    def matrix(self, coordinates):
        raise ConnectionError("Mapbox unreachable")


def test_identical_points_cost_nothing():
    estimate = TravelEstimator().estimate(HOME, HOME)

    assert estimate.drive_minutes == 0
    assert estimate.drive_km == 0.0


def test_without_client_uses_haversine():
    estimator = TravelEstimator(average_speed_kmh=50)

    estimate = estimator.estimate(HOME, GERSTHOFEN)

    assert estimate.source == SOURCE_HAVERSINE
    assert 5.0 < estimate.drive_km < 7.0
    assert estimate.drive_minutes >= 7


def test_matrix_is_fetched_once_and_memoized():
    client = DummyMapbox()
    estimator = TravelEstimator(client)

    matrix = estimator.build_matrix([HOME, KOENIGSPLATZ, GERSTHOFEN])
    estimator.build_matrix([HOME, KOENIGSPLATZ, GERSTHOFEN])
    single = estimator.estimate(KOENIGSPLATZ, GERSTHOFEN)

    assert client.calls == 1
    assert matrix.minutes(0, 2) == 10
    assert matrix.km(1, 2) == 4.2
    assert matrix.sources == {SOURCE_MAPBOX}
    assert single.source == SOURCE_MAPBOX


def test_route_minutes_from_home():
    matrix = TravelEstimator(DummyMapbox()).build_matrix([HOME, KOENIGSPLATZ, GERSTHOFEN])

    assert matrix.route_minutes((1, 2)) == 20
    assert matrix.leg(1, 2).drive_minutes == 10


def test_failed_lookup_degrades_to_fallback_penalty():
    estimator = TravelEstimator(FailingMapbox(), fallback_drive_minutes=45)

    matrix = estimator.build_matrix([HOME, GERSTHOFEN])

    assert matrix.degraded
    assert matrix.minutes(0, 1) == 45
    assert estimator.estimate(HOME, GERSTHOFEN).source == SOURCE_FALLBACK


def test_missing_cells_fall_back_per_leg():
    class PartialMapbox(DummyMapbox):
        def matrix(self, coordinates):
            data = super().matrix(coordinates)
            data["durations"][0][1] = None
            return data

    matrix = TravelEstimator(PartialMapbox(), fallback_drive_minutes=45).build_matrix([HOME, GERSTHOFEN])

    assert matrix.minutes(0, 1) == 45
    assert matrix.minutes(1, 0) == 10
    assert matrix.degraded
