"""Tests for ecosim.rng: seeded sources, sampling helpers, checkpointing."""

import pytest

from ecosim.rng import (
    NumpyRandomSource,
    RandomSource,
    make_random_source,
    partial_shuffle,
    random_index,
    restore_rng_state,
    rng_state_snapshot,
)

from conftest import ScriptedRandomSource


class TestNumpyRandomSource:
    def test_same_seed_same_stream(self):
        a, b = NumpyRandomSource(42), NumpyRandomSource(42)
        assert [a.uniform() for _ in range(20)] == [b.uniform() for _ in range(20)]
        assert a.gaussian(3.0, 2.0) == b.gaussian(3.0, 2.0)

    def test_uniform_range(self):
        rng = make_random_source(1)
        values = [rng.uniform() for _ in range(1000)]
        assert min(values) >= 0.0
        assert max(values) < 1.0

    def test_zero_sd_returns_mean(self):
        rng = NumpyRandomSource(0)
        assert rng.gaussian(7.5, 0.0) == 7.5

    def test_satisfies_protocol(self):
        assert isinstance(NumpyRandomSource(0), RandomSource)
        assert isinstance(ScriptedRandomSource(), RandomSource)


class TestRandomIndex:
    def test_bounds(self):
        assert random_index(ScriptedRandomSource((0.0,)), 5) == 0
        assert random_index(ScriptedRandomSource((0.999999,)), 3) == 2
        assert random_index(ScriptedRandomSource((0.5,)), 4) == 2

    def test_rejects_empty(self):
        with pytest.raises(ValueError):
            random_index(ScriptedRandomSource(), 0)


class TestSampling:
    def test_partial_shuffle_identity_on_zero_draws(self):
        items = [10, 20, 30, 40]
        picked = partial_shuffle(ScriptedRandomSource((0.0,)), items, 2)
        assert picked == [10, 20]
        assert items == [10, 20, 30, 40]

    def test_partial_shuffle_moves_sample_to_front(self):
        items = list(range(10))
        picked = partial_shuffle(NumpyRandomSource(3), items, 4)
        assert items[:4] == picked
        assert sorted(items) == list(range(10))

    def test_k_larger_than_items(self):
        picked = partial_shuffle(NumpyRandomSource(3), [1, 2], 5)
        assert sorted(picked) == [1, 2]


class TestCheckpointing:
    def test_restore_replays_stream(self):
        sources = {'main': NumpyRandomSource(5)}
        sources['main'].uniform()
        states = rng_state_snapshot(sources)
        first = [sources['main'].uniform() for _ in range(5)]
        restore_rng_state(sources, states)
        assert [sources['main'].uniform() for _ in range(5)] == first

    def test_unknown_stream_raises(self):
        states = rng_state_snapshot({'main': NumpyRandomSource(5)})
        with pytest.raises(KeyError, match="unknown stream"):
            restore_rng_state({}, states)
