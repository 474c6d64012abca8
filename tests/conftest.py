from concurrent.futures import Future
from math import asin, cos, radians, sin, sqrt
from random import Random

import pytest

from coarse_location.models.dto import Coordinate, FineReading

EARTH_RADIUS_METERS = 6_371_000.0


def haversine_meters(lat1, lon1, lat2, lon2):
    """Great-circle distance in meters, used to bound how far coarsening moves a point."""
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    a = sin((lat2 - lat1) / 2) ** 2 + cos(lat1) * cos(lat2) * sin((lon2 - lon1) / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * asin(sqrt(min(1.0, a)))


class ZeroRandom(Random):
    """Random whose gaussian draws are always zero, so offsets vanish."""

    def gauss(self, mu=0.0, sigma=1.0):
        return 0.0


class FakeClock:
    def __init__(self, now_ms: int = 0):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class StubDensityCache:
    def __init__(self, level=6, ready=True):
        self.level = level
        self.ready = ready
        self.level_calls = []
        self.default_requests = 0

    def has_default_level(self) -> bool:
        return self.ready

    def level_for(self, lat, lon) -> int:
        self.level_calls.append((lat, lon))
        return self.level

    def request_default_level_async(self) -> None:
        self.default_requests += 1


class StubGeometry:
    """Cells are identified by (level, rounded lat, rounded lon)."""

    def __init__(self):
        self.calls = []

    def cell_for_point(self, lat, lon, level):
        self.calls.append(level)
        return (level, round(lat), round(lon))

    def cell_center(self, cell_id):
        _, lat, lon = cell_id
        return Coordinate(latitude=float(lat), longitude=float(lon))


class ImmediateExecutor:
    """Runs submitted work inline so background fetches finish before asserting."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True):
        pass


@pytest.fixture
def rng():
    return Random(1234)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fine_reading():
    return FineReading(
        latitude=37.4219983,
        longitude=-122.0840000,
        accuracy_meters=10.0,
        timestamp_ms=1_700_000_000_000,
        elapsed_realtime_ms=123_456,
        provider="fused",
        bearing=90.0,
        speed=1.5,
        altitude=30.0,
        extras={"satellites": 7},
    )
