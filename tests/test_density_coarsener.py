import pytest

from coarse_location.models.dto import Coordinate
from coarse_location.services.density_coarsener import (
    MAX_DENSITY_LEVEL,
    S2_CELL_AVG_EDGE_KM,
    DensityCoarsener,
    clamp_level,
    edge_length_meters,
)
from coarse_location.utils.s2_geometry import S2Geometry

from conftest import StubDensityCache, StubGeometry


def test_edge_table_covers_every_level_and_decreases():
    assert len(S2_CELL_AVG_EDGE_KM) == MAX_DENSITY_LEVEL + 1
    assert all(a > b for a, b in zip(S2_CELL_AVG_EDGE_KM, S2_CELL_AVG_EDGE_KM[1:]))
    assert edge_length_meters(0) == pytest.approx(9_220_000.0)
    assert edge_length_meters(6) == pytest.approx(144_100.0)


@pytest.mark.parametrize("level,expected", [(-3, 0), (0, 0), (6, 6), (13, 13), (20, 13)])
def test_clamp_level(level, expected):
    assert clamp_level(level) == expected


def test_coarsen_returns_cell_center_and_edge_length():
    geometry = StubGeometry()
    coarsener = DensityCoarsener(geometry)
    cache = StubDensityCache(level=6)

    point, accuracy = coarsener.coarsen(37.6, -122.4, cache)

    assert point == Coordinate(latitude=38.0, longitude=-122.0)
    assert accuracy == edge_length_meters(6)
    assert geometry.calls == [6]
    assert cache.level_calls == [(37.6, -122.4)]


def test_coarsen_clamps_out_of_range_levels():
    geometry = StubGeometry()
    coarsener = DensityCoarsener(geometry)

    _, accuracy = coarsener.coarsen(1.0, 1.0, StubDensityCache(level=42))

    assert geometry.calls == [MAX_DENSITY_LEVEL]
    assert accuracy == edge_length_meters(MAX_DENSITY_LEVEL)


def test_is_available_requires_default_level():
    assert DensityCoarsener.is_available(StubDensityCache(ready=True))
    assert not DensityCoarsener.is_available(StubDensityCache(ready=False))
    assert not DensityCoarsener.is_available(None)


class TestS2Geometry:
    def test_points_in_the_same_cell_share_a_center(self):
        geometry = S2Geometry()
        a = geometry.cell_for_point(37.4219983, -122.0840000, 6)
        b = geometry.cell_for_point(37.4220500, -122.0840500, 6)
        assert a == b

    def test_center_is_near_the_point_at_deep_levels(self):
        geometry = S2Geometry()
        center = geometry.cell_center(geometry.cell_for_point(37.4219983, -122.0840000, 13))
        assert center.latitude == pytest.approx(37.4219983, abs=0.02)
        assert center.longitude == pytest.approx(-122.0840000, abs=0.02)

    def test_center_belongs_to_its_own_cell(self):
        geometry = S2Geometry()
        cell = geometry.cell_for_point(-33.8688, 151.2093, 9)
        center = geometry.cell_center(cell)
        assert geometry.cell_for_point(center.latitude, center.longitude, 9) == cell

    def test_rejects_invalid_level(self):
        with pytest.raises(ValueError):
            S2Geometry.cell_for_point(0.0, 0.0, 31)
