import math
import secrets
from random import Random
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict

logger = structlog.get_logger(__name__)

DEFAULT_UPDATE_INTERVAL_MS = 60 * 60 * 1000
DEFAULT_CHANGE_FRACTION = 0.03


class OffsetState(BaseModel):
    """Current meter offsets and the time they are next allowed to drift."""
    model_config = ConfigDict(frozen=True)

    latitude_offset_m: float
    longitude_offset_m: float
    next_update_ms: int


class OffsetDriftGenerator:
    """
    Produces a pair of meter offsets that random-walk slowly over time.

    Each offset starts as an independent gaussian sample with standard deviation
    accuracy/4. Every update interval it is replaced by a weighted sum of the old
    value and a fresh sample:

        new = OLD_WEIGHT * old + NEW_WEIGHT * sample

    with OLD_WEIGHT = sqrt(1 - NEW_WEIGHT**2). Since the variance of a sum of
    independent gaussians is the sum of the variances, the drifted offset keeps
    exactly the spread of the original one. Averaging many coarse readings
    therefore converges on the true position plus an offset that changes too
    slowly to average out, and grid boundary crossings no longer line up with
    the true position.
    """

    def __init__(
        self,
        accuracy_meters: float,
        update_interval_ms: int = DEFAULT_UPDATE_INTERVAL_MS,
        change_fraction: float = DEFAULT_CHANGE_FRACTION,
        rng: Optional[Random] = None,
    ):
        self.accuracy_meters = accuracy_meters
        self.update_interval_ms = update_interval_ms
        self.new_weight = change_fraction
        self.old_weight = math.sqrt(1 - change_fraction * change_fraction)
        # Secure by default; tests inject a seeded Random.
        self.rng = rng if rng is not None else secrets.SystemRandom()

    def _sample(self) -> float:
        return self.rng.gauss(0.0, 1.0) * self.accuracy_meters / 4

    def init_state(self, now_ms: int) -> OffsetState:
        """Draws two fresh, independent offsets."""
        return OffsetState(
            latitude_offset_m=self._sample(),
            longitude_offset_m=self._sample(),
            next_update_ms=now_ms + self.update_interval_ms,
        )

    def update(self, state: OffsetState, now_ms: int) -> OffsetState:
        """
        Drifts the offsets if the update interval has elapsed.

        Args:
            state: The current offsets.
            now_ms: Monotonic clock reading in milliseconds.

        Returns:
            The same state object if it is not yet due, otherwise a new state.
        """
        if now_ms < state.next_update_ms:
            return state

        logger.debug("offset_drift_update", interval_ms=self.update_interval_ms)
        return OffsetState(
            latitude_offset_m=self.old_weight * state.latitude_offset_m + self.new_weight * self._sample(),
            longitude_offset_m=self.old_weight * state.longitude_offset_m + self.new_weight * self._sample(),
            next_update_ms=now_ms + self.update_interval_ms,
        )
