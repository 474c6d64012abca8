import math
import statistics
from random import Random

import pytest

from coarse_location.services.offset_drift import OffsetDriftGenerator, OffsetState

HOUR_MS = 60 * 60 * 1000


def test_weights_preserve_variance():
    drift = OffsetDriftGenerator(200.0)
    assert drift.new_weight == 0.03
    assert drift.old_weight ** 2 + drift.new_weight ** 2 == pytest.approx(1.0)


def test_init_state_schedules_next_update():
    drift = OffsetDriftGenerator(200.0, rng=Random(1))
    state = drift.init_state(now_ms=5_000)
    assert state.next_update_ms == 5_000 + HOUR_MS


def test_init_state_is_reproducible_with_seeded_rng():
    a = OffsetDriftGenerator(200.0, rng=Random(7)).init_state(0)
    b = OffsetDriftGenerator(200.0, rng=Random(7)).init_state(0)
    assert a == b

    expected = Random(7)
    assert a.latitude_offset_m == pytest.approx(expected.gauss(0.0, 1.0) * 50.0)
    assert a.longitude_offset_m == pytest.approx(expected.gauss(0.0, 1.0) * 50.0)


def test_update_before_interval_is_a_noop():
    drift = OffsetDriftGenerator(200.0, rng=Random(3))
    state = drift.init_state(0)
    assert drift.update(state, HOUR_MS - 1) is state


def test_update_after_interval_drifts_slightly():
    drift = OffsetDriftGenerator(200.0, rng=Random(3))
    state = drift.init_state(0)
    updated = drift.update(state, HOUR_MS)

    assert updated is not state
    assert updated.next_update_ms == 2 * HOUR_MS
    # A 3% step on a 50m-sigma offset moves it by a few meters at most.
    assert abs(updated.latitude_offset_m - state.latitude_offset_m) < 10.0
    assert abs(updated.longitude_offset_m - state.longitude_offset_m) < 10.0


def test_update_uses_weighted_sum():
    class FixedRandom(Random):
        def gauss(self, mu=0.0, sigma=1.0):
            return 2.0

    drift = OffsetDriftGenerator(400.0, change_fraction=0.5, rng=FixedRandom())
    state = OffsetState(latitude_offset_m=10.0, longitude_offset_m=-10.0, next_update_ms=0)
    updated = drift.update(state, 0)

    old_weight = math.sqrt(1 - 0.25)
    assert updated.latitude_offset_m == pytest.approx(old_weight * 10.0 + 0.5 * 200.0)
    assert updated.longitude_offset_m == pytest.approx(old_weight * -10.0 + 0.5 * 200.0)


def test_spread_is_preserved_across_many_intervals():
    rng = Random(2024)
    accuracy = 200.0
    samples = []
    for _ in range(1000):
        drift = OffsetDriftGenerator(accuracy, rng=rng)
        state = drift.init_state(0)
        for step in range(1, 201):
            state = drift.update(state, step * HOUR_MS)
        samples.extend([state.latitude_offset_m, state.longitude_offset_m])

    assert statistics.pstdev(samples) == pytest.approx(accuracy / 4, rel=0.1)
    assert statistics.fmean(samples) == pytest.approx(0.0, abs=5.0)


def test_single_series_converges_to_original_spread():
    # A larger step decorrelates the walk quickly enough to sample one series.
    drift = OffsetDriftGenerator(200.0, change_fraction=0.5, rng=Random(99))
    state = drift.init_state(0)
    series = []
    for step in range(1, 20_001):
        state = drift.update(state, step * HOUR_MS)
        series.append(state.latitude_offset_m)

    assert statistics.pstdev(series) == pytest.approx(50.0, rel=0.1)


def test_default_rng_is_secure():
    import secrets

    drift = OffsetDriftGenerator(200.0)
    assert isinstance(drift.rng, secrets.SystemRandom)
