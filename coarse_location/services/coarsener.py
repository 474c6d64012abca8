import math
import threading
import time
from enum import Enum
from random import Random
from typing import Callable, Optional

import structlog

from coarse_location.core.config import MIN_ACCURACY_METERS, Settings, settings as default_settings
from coarse_location.core.exceptions import InvalidInputError
from coarse_location.models.dto import (
    SENSITIVE_FIELDS,
    CoarseLocationResult,
    CoarseReading,
    Coordinate,
    FineReading,
    LocationResult,
)
from coarse_location.services.density_coarsener import CellGeometry, DensityCache, DensityCoarsener
from coarse_location.services.grid_snapper import (
    GridSnapper,
    meters_to_degrees_latitude,
    meters_to_degrees_longitude,
    wrap_latitude,
    wrap_longitude,
)
from coarse_location.services.offset_drift import (
    DEFAULT_CHANGE_FRACTION,
    DEFAULT_UPDATE_INTERVAL_MS,
    OffsetDriftGenerator,
    OffsetState,
)
from coarse_location.services.result_cache import ResultCache
from coarse_location.utils.s2_geometry import S2Geometry

logger = structlog.get_logger(__name__)


def monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class CoarseningStrategy(str, Enum):
    GRID = "GRID"
    DENSITY = "DENSITY"


def validate_reading(fine: FineReading) -> None:
    """Rejects readings that would otherwise turn into NaN offsets or cells."""
    lat, lon, accuracy = fine.latitude, fine.longitude, fine.accuracy_meters
    if not (math.isfinite(lat) and -90.0 <= lat <= 90.0):
        raise InvalidInputError(f"latitude out of range: {lat!r}")
    if not (math.isfinite(lon) and -180.0 <= lon <= 180.0):
        raise InvalidInputError(f"longitude out of range: {lon!r}")
    if math.isnan(accuracy) or accuracy < 0:
        raise InvalidInputError(f"accuracy must be a non-negative number, got {accuracy!r}")


class LocationCoarsener:
    """
    Turns fine readings into coarse ones fit for consumers with coarse trust.

    Each reading is shifted by a slowly drifting random offset and then snapped
    either to a fixed grid of `accuracy_meters` cells or, when density based
    coarsening is enabled and the density cache is ready, to the center of an S2
    cell sized by population density. Bearing, speed, altitude and extras are
    dropped and the reported accuracy never goes below the floor.

    Safe to call from several threads; one lock covers each call.
    """

    def __init__(
        self,
        accuracy_meters: float = MIN_ACCURACY_METERS,
        update_interval_ms: int = DEFAULT_UPDATE_INTERVAL_MS,
        change_fraction: float = DEFAULT_CHANGE_FRACTION,
        density_coarsening_enabled: bool = False,
        density_cache: Optional[DensityCache] = None,
        geometry: Optional[CellGeometry] = None,
        rng: Optional[Random] = None,
        clock: Callable[[], int] = monotonic_ms,
    ):
        if math.isnan(accuracy_meters):
            raise InvalidInputError("accuracy floor must be a number")
        self.accuracy_meters = max(float(accuracy_meters), MIN_ACCURACY_METERS)
        self.density_coarsening_enabled = density_coarsening_enabled
        self._clock = clock
        self._drift = OffsetDriftGenerator(
            self.accuracy_meters,
            update_interval_ms=update_interval_ms,
            change_fraction=change_fraction,
            rng=rng,
        )
        self._density = DensityCoarsener(geometry if geometry is not None else S2Geometry())

        self._lock = threading.Lock()
        self._offsets = self._drift.init_state(self._clock())
        self._density_cache = density_cache
        self._reading_cache: ResultCache[FineReading, CoarseReading] = ResultCache()
        self._result_cache: ResultCache[LocationResult, CoarseLocationResult] = ResultCache()

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None, **kwargs) -> "LocationCoarsener":
        """Builds a coarsener from `Settings`; keyword arguments override."""
        config = config or default_settings
        options = dict(
            accuracy_meters=config.MIN_ACCURACY_METERS,
            update_interval_ms=config.OFFSET_UPDATE_INTERVAL_MS,
            change_fraction=config.OFFSET_CHANGE_FRACTION,
            density_coarsening_enabled=config.DENSITY_COARSENING_ENABLED,
        )
        options.update(kwargs)
        return cls(**options)

    @property
    def offsets(self) -> OffsetState:
        with self._lock:
            return self._offsets

    def reset_offsets(self) -> None:
        """Draws fresh offsets and forgets cached results."""
        with self._lock:
            self._offsets = self._drift.init_state(self._clock())
            self._reading_cache.clear()
            self._result_cache.clear()
        logger.info("coarsening_offsets_reset")

    def set_density_cache(self, density_cache: Optional[DensityCache]) -> None:
        with self._lock:
            self._density_cache = density_cache
            self._reading_cache.clear()
            self._result_cache.clear()

    def coarsen(self, fine: FineReading) -> CoarseReading:
        """
        Coarsens a single reading.

        Passing the same object twice in a row returns the same CoarseReading
        object without recomputing it.

        Raises:
            InvalidInputError: If latitude, longitude or accuracy is NaN or out of range.
        """
        validate_reading(fine)
        with self._lock:
            return self._coarsen_locked(fine)

    def coarsen_result(self, result: LocationResult) -> CoarseLocationResult:
        """Coarsens every reading of a batch, preserving order."""
        for fine in result.readings:
            validate_reading(fine)
        with self._lock:
            cached = self._result_cache.lookup(result)
            if cached is not None:
                return cached
            coarse = CoarseLocationResult(
                readings=[self._coarsen_locked(fine) for fine in result.readings]
            )
            self._result_cache.store(result, coarse)
            return coarse

    # --- Internals (lock held) ---

    def _coarsen_locked(self, fine: FineReading) -> CoarseReading:
        # 1. Identity cache
        cached = self._reading_cache.lookup(fine)
        if cached is not None:
            return cached

        # 2. Drift offsets if due
        self._offsets = self._drift.update(self._offsets, self._clock())

        # 3. Canonical ranges, then offsets. The longitude offset is converted
        # at the un-offset latitude.
        lat = wrap_latitude(fine.latitude)
        lon = wrap_longitude(fine.longitude)
        lon = wrap_longitude(lon + meters_to_degrees_longitude(self._offsets.longitude_offset_m, lat))
        lat = wrap_latitude(lat + meters_to_degrees_latitude(self._offsets.latitude_offset_m))

        # 4. Snap
        strategy = self._select_strategy()
        if strategy is CoarseningStrategy.DENSITY:
            point, strategy_accuracy = self._density.coarsen(lat, lon, self._density_cache)
            # Cell centers may sit on a pole or the antimeridian.
            point = Coordinate(latitude=wrap_latitude(point.latitude), longitude=wrap_longitude(point.longitude))
        else:
            point = GridSnapper.snap(lat, lon, self.accuracy_meters)
            strategy_accuracy = self.accuracy_meters

        # 5. Copy without sensitive fields
        coarse = CoarseReading(
            **fine.model_dump(exclude=SENSITIVE_FIELDS | {"latitude", "longitude", "accuracy_meters"}),
            latitude=point.latitude,
            longitude=point.longitude,
            accuracy_meters=max(strategy_accuracy, self.accuracy_meters, fine.accuracy_meters),
        )

        # 6. Remember
        self._reading_cache.store(fine, coarse)
        return coarse

    def _select_strategy(self) -> CoarseningStrategy:
        if not self.density_coarsening_enabled or self._density_cache is None:
            return CoarseningStrategy.GRID
        if DensityCoarsener.is_available(self._density_cache):
            return CoarseningStrategy.DENSITY
        # Not ready yet: ask for a default level in the background, use the grid now.
        self._density_cache.request_default_level_async()
        logger.debug("density_cache_not_ready")
        return CoarseningStrategy.GRID
