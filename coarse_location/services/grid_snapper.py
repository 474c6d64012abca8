import math

from coarse_location.core.exceptions import InvalidInputError
from coarse_location.models.dto import Coordinate

# Rough meters per degree of latitude (and of longitude at the equator).
APPROXIMATE_METERS_PER_DEGREE_AT_EQUATOR = 111_000

# Keep one meter away from the poles so cos(latitude) never hits zero.
MAX_LATITUDE = 90.0 - (1.0 / APPROXIMATE_METERS_PER_DEGREE_AT_EQUATOR)

# Longitude granularity used when cos(latitude) vanishes numerically.
FALLBACK_LONGITUDE_GRANULARITY = 0.0001


def wrap_latitude(lat: float) -> float:
    """Clamps latitude into [-MAX_LATITUDE, MAX_LATITUDE]."""
    if lat > MAX_LATITUDE:
        lat = MAX_LATITUDE
    if lat < -MAX_LATITUDE:
        lat = -MAX_LATITUDE
    return lat


def wrap_longitude(lon: float) -> float:
    """Wraps longitude into [-180, 180)."""
    lon %= 360.0
    if lon >= 180.0:
        lon -= 360.0
    if lon < -180.0:
        lon += 360.0
    return lon


def meters_to_degrees_latitude(distance: float) -> float:
    return distance / APPROXIMATE_METERS_PER_DEGREE_AT_EQUATOR


def meters_to_degrees_longitude(distance: float, lat: float) -> float:
    return distance / APPROXIMATE_METERS_PER_DEGREE_AT_EQUATOR / math.cos(math.radians(lat))


class GridSnapper:
    """
    Quantizes coordinates onto a fixed geodesic grid.

    Cell size is the requested accuracy in both directions: ~accuracy/111000
    degrees of latitude, and the longitude step widens with latitude so the
    cells stay roughly square on the ground.
    """

    @staticmethod
    def snap(lat: float, lon: float, accuracy_meters: float) -> Coordinate:
        """
        Snaps a coordinate to the nearest grid point.

        Latitude is snapped first; the longitude step is derived from the
        snapped latitude so the pair leaks no more precision than either axis.

        Args:
            lat: Latitude in degrees.
            lon: Longitude in degrees.
            accuracy_meters: Grid cell size in meters.

        Returns:
            The grid point, within [-90, 90] x [-180, 180).
        """
        if not math.isfinite(accuracy_meters) or accuracy_meters <= 0:
            raise InvalidInputError(f"accuracy must be a positive number, got {accuracy_meters!r}")

        lat_granularity = meters_to_degrees_latitude(accuracy_meters)
        lat = wrap_latitude(round(lat / lat_granularity) * lat_granularity)

        cos_lat = math.cos(math.radians(lat))
        if abs(cos_lat) < 1e-12:
            lon_granularity = FALLBACK_LONGITUDE_GRANULARITY
        else:
            lon_granularity = accuracy_meters / (APPROXIMATE_METERS_PER_DEGREE_AT_EQUATOR * cos_lat)
        # Longitude steps count from the antimeridian so every grid point lies
        # in [-180, 180) and snapping a grid point returns it unchanged.
        lon = -180.0 + round((wrap_longitude(lon) + 180.0) / lon_granularity) * lon_granularity
        if lon >= 180.0:
            lon = -180.0

        return Coordinate(latitude=lat, longitude=lon)
