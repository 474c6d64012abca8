from typing import Protocol, Tuple

import structlog

from coarse_location.models.dto import Coordinate

logger = structlog.get_logger(__name__)

MIN_DENSITY_LEVEL = 0
MAX_DENSITY_LEVEL = 13

# Average S2 cell edge length per level, in kilometers (sqrt of the average
# cell area). Index is the S2 level.
S2_CELL_AVG_EDGE_KM = (
    9220.0, 4610.0, 2305.0, 1152.0, 576.3, 288.1, 144.1,
    72.03, 36.01, 18.01, 9.004, 4.502, 2.251, 1.126,
)

# --- Contracts ---

class DensityCache(Protocol):
    """Maps a location to the S2 level its population density calls for."""
    def has_default_level(self) -> bool: ...
    def level_for(self, lat: float, lon: float) -> int: ...
    def request_default_level_async(self) -> None: ...

class CellGeometry(Protocol):
    """Hierarchical cell math, kept behind a narrow seam."""
    def cell_for_point(self, lat: float, lon: float, level: int) -> int: ...
    def cell_center(self, cell_id: int) -> Coordinate: ...


def clamp_level(level: int) -> int:
    return max(MIN_DENSITY_LEVEL, min(MAX_DENSITY_LEVEL, int(level)))


def edge_length_meters(level: int) -> float:
    """Approximate edge length of a cell at `level`, in meters."""
    return S2_CELL_AVG_EDGE_KM[clamp_level(level)] * 1000.0


class DensityCoarsener:
    """
    Snaps a coordinate to the center of an S2 cell sized by population density.

    Dense areas get a deep level (small cells, more useful results), sparse
    areas a shallow one (large cells, so a single household cannot be singled
    out). The reported accuracy is the average edge length of the chosen cell.
    """

    def __init__(self, geometry: CellGeometry):
        self.geometry = geometry

    @staticmethod
    def is_available(cache: DensityCache) -> bool:
        return cache is not None and cache.has_default_level()

    def coarsen(self, lat: float, lon: float, cache: DensityCache) -> Tuple[Coordinate, float]:
        """
        Args:
            lat: Latitude in degrees.
            lon: Longitude in degrees.
            cache: Density source; must report a default level.

        Returns:
            (center of the containing cell, accuracy in meters)
        """
        level = clamp_level(cache.level_for(lat, lon))
        cell_id = self.geometry.cell_for_point(lat, lon, level)
        center = self.geometry.cell_center(cell_id)
        logger.debug("density_coarsening_applied", level=level)
        return center, edge_length_meters(level)
