import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Set, Tuple

import structlog

from coarse_location.core.config import settings
from coarse_location.core.exceptions import DensityProviderError
from coarse_location.services.density_coarsener import MAX_DENSITY_LEVEL, CellGeometry, clamp_level
from coarse_location.services.density_provider import DensityProvider

logger = structlog.get_logger(__name__)


class DensityLevelCache:
    """
    In-memory density levels backed by a slow provider.

    Every entry is an S2 cell together with the density level reported for it;
    a point hits the entry when it falls inside that cell. Misses return the
    default level immediately and queue a background fetch, so callers never
    wait on the provider. Until a default level is known the cache is not
    ready and callers should use another strategy.
    """

    def __init__(
        self,
        provider: DensityProvider,
        geometry: CellGeometry,
        max_size: Optional[int] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.provider = provider
        self.geometry = geometry
        self.max_size = max_size or settings.DENSITY_CACHE_SIZE
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="density-cache")
        self._lock = threading.Lock()
        self._default_level: Optional[int] = None
        self._default_in_flight = False
        self._closed = False
        # (cell level, cell id) -> density level, oldest first
        self._entries: "OrderedDict[Tuple[int, int], int]" = OrderedDict()
        self._pending: Set[Tuple[int, int]] = set()

    def has_default_level(self) -> bool:
        with self._lock:
            return self._default_level is not None

    def request_default_level_async(self) -> Optional[Future]:
        """Schedules one default-level fetch unless one is known or in flight."""
        with self._lock:
            if self._closed or self._default_level is not None or self._default_in_flight:
                return None
            self._default_in_flight = True
        try:
            return self._executor.submit(self._fetch_default_level)
        except RuntimeError:
            # Executor shut down between the check and the submit.
            with self._lock:
                self._default_in_flight = False
            logger.warning("density_cache_closed")
            return None

    def level_for(self, lat: float, lon: float) -> int:
        """
        Returns the cached level for the cell containing (lat, lon), or the
        default level on a miss. Never blocks on the provider.

        Raises:
            LookupError: On a miss before any default level is known.
        """
        with self._lock:
            for key in reversed(self._entries):
                cell_level, cell_id = key
                if self.geometry.cell_for_point(lat, lon, cell_level) == cell_id:
                    self._entries.move_to_end(key)
                    return self._entries[key]
            default = self._default_level

        self._schedule_fetch(lat, lon)
        if default is None:
            raise LookupError("density cache has no default level")
        return default

    def add(self, lat: float, lon: float, level: int) -> None:
        """Records the density level of the cell containing (lat, lon)."""
        level = clamp_level(level)
        key = (level, self.geometry.cell_for_point(lat, lon, level))
        with self._lock:
            self._entries[key] = level
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def set_default_level(self, level: int) -> None:
        with self._lock:
            self._default_level = clamp_level(level)

    def shutdown(self, wait: bool = True) -> None:
        """Stops background fetches; lookups keep answering from memory."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # --- Background work ---

    def _schedule_fetch(self, lat: float, lon: float) -> None:
        # Coalesce misses by the cell of the deepest level, which covers any
        # cell the provider can answer with.
        pending_key = (MAX_DENSITY_LEVEL, self.geometry.cell_for_point(lat, lon, MAX_DENSITY_LEVEL))
        with self._lock:
            if self._closed or pending_key in self._pending:
                return
            self._pending.add(pending_key)
        try:
            self._executor.submit(self._fetch_level, lat, lon, pending_key)
        except RuntimeError:
            with self._lock:
                self._pending.discard(pending_key)
            logger.warning("density_cache_closed")

    def _fetch_default_level(self) -> None:
        try:
            level = self.provider.fetch_default_level()
        except DensityProviderError as e:
            logger.warning("density_default_level_unavailable", error=str(e))
            return
        else:
            self.set_default_level(level)
        finally:
            with self._lock:
                self._default_in_flight = False
        logger.info("density_default_level_ready", level=clamp_level(level))

    def _fetch_level(self, lat: float, lon: float, pending_key: Tuple[int, int]) -> None:
        try:
            level = self.provider.fetch_level(lat, lon)
        except DensityProviderError as e:
            logger.warning("density_level_unavailable", error=str(e))
            return
        else:
            self.add(lat, lon, level)
        finally:
            with self._lock:
                self._pending.discard(pending_key)
        logger.debug("density_level_cached", level=clamp_level(level), size=len(self))
