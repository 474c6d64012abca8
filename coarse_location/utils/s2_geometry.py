import s2sphere

from coarse_location.models.dto import Coordinate

# Deepest level S2 supports.
MAX_S2_LEVEL = 30


class S2Geometry:
    """CellGeometry backed by the s2sphere library. Cell ids are 64-bit ints."""

    @staticmethod
    def cell_for_point(lat: float, lon: float, level: int) -> int:
        """Returns the id of the S2 cell at `level` containing (lat, lon)."""
        if not 0 <= level <= MAX_S2_LEVEL:
            raise ValueError(f"S2 level must be within [0, {MAX_S2_LEVEL}], got {level}")
        leaf = s2sphere.CellId.from_lat_lng(s2sphere.LatLng.from_degrees(lat, lon))
        return leaf.parent(level).id()

    @staticmethod
    def cell_center(cell_id: int) -> Coordinate:
        center = s2sphere.CellId(cell_id).to_lat_lng()
        return Coordinate(latitude=center.lat().degrees, longitude=center.lng().degrees)
