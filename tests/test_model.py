"""Integration tests for ecosim.model: driver lifecycle and full runs."""

import logging

import numpy as np
import pytest

from ecosim.config import default_config
from ecosim.model import (
    SimulationDriver,
    SimulationResult,
    SimulationStateError,
    run_simulation,
)
from ecosim.rng import NumpyRandomSource
from ecosim.types import SimState

from conftest import ScriptedRandomSource, make_small_config


# ═══════════════════════════════════════════════════════════════════════
# LIFECYCLE
# ═══════════════════════════════════════════════════════════════════════

class TestLifecycle:
    def test_calls_before_initialize(self, small_config):
        driver = SimulationDriver(small_config)
        assert driver.state is SimState.UNINITIALIZED
        for call in (driver.advance, driver.get_snapshot, driver.pause,
                     driver.resume, driver.summary):
            with pytest.raises(SimulationStateError):
                call()

    def test_initialize(self, small_config):
        driver = SimulationDriver(small_config)
        snap = driver.initialize()
        assert driver.state is SimState.RUNNING
        assert snap.year == 0
        assert snap.deer.alive == 10
        assert snap.wolves.alive == 3
        assert 0 < snap.trees.alive <= 400
        assert driver.history == []

    def test_initial_counters_are_clean(self, small_config):
        snap = SimulationDriver(small_config).initialize()
        assert sum(snap.trees.total_deaths.values()) == 0
        assert snap.trees.births == 0
        assert snap.deer.births == 0

    def test_advance(self, small_config):
        driver = SimulationDriver(small_config)
        driver.initialize()
        snap = driver.advance()
        assert snap.year == 1
        assert driver.year == 1
        assert driver.history == [snap]
        assert driver.last_foraging is not None
        assert driver.last_hunting is not None
        # per-tick counters reset after the snapshot
        assert driver.deer.births == 0
        assert sum(driver.trees.deaths.values()) == 0

    def test_pause_resume(self, small_config):
        driver = SimulationDriver(small_config)
        driver.initialize()
        driver.pause()
        assert driver.is_paused
        driver.resume()
        assert not driver.is_paused

    def test_reset_replays(self, small_config):
        driver = SimulationDriver(small_config)
        driver.initialize()
        first = [s.as_dict() for s in driver.run(4)]
        snap = driver.reset()
        assert snap.year == 0
        assert driver.history == []
        second = [s.as_dict() for s in driver.run(4)]
        assert first == second

    def test_initialize_with_new_config(self, small_config):
        driver = SimulationDriver(small_config)
        driver.initialize()
        other = make_small_config()
        other.deer.initial = 4
        snap = driver.initialize(other)
        assert driver.config is other
        assert snap.deer.alive == 4

    def test_config_clamped_on_initialize(self, caplog):
        cfg = make_small_config()
        cfg.simulation.grid_size = 100
        with caplog.at_level(logging.WARNING, logger="ecosim.config"):
            driver = SimulationDriver(cfg)
            driver.initialize()
        assert driver.trees.capacity == 100
        assert any("array_size" in r.getMessage() for r in caplog.records)


# ═══════════════════════════════════════════════════════════════════════
# RUNS
# ═══════════════════════════════════════════════════════════════════════

class TestRuns:
    def test_run_defaults_to_config_years(self, small_config):
        driver = SimulationDriver(small_config)
        snaps = driver.run()
        assert len(snaps) == 5
        assert [s.year for s in snaps] == [1, 2, 3, 4, 5]

    def test_determinism(self):
        a = SimulationDriver(make_small_config(seed=99))
        b = SimulationDriver(make_small_config(seed=99))
        hist_a = [s.as_dict() for s in a.run(6)]
        hist_b = [s.as_dict() for s in b.run(6)]
        assert hist_a == hist_b

    def test_injected_rng(self, small_config):
        driver = SimulationDriver(small_config, rng=NumpyRandomSource(1))
        driver.run(2)
        assert driver.year == 2

    def test_capacity_and_slot_invariants(self, small_config):
        driver = SimulationDriver(small_config)
        driver.initialize()
        for _ in range(8):
            snap = driver.advance()
            for pop, s in ((driver.trees, snap.trees), (driver.deer, snap.deer),
                           (driver.wolves, snap.wolves)):
                assert 0 <= s.alive <= pop.capacity
                assert pop.slot_invariant_holds()

    def test_foraging_conservation_each_year(self, small_config):
        driver = SimulationDriver(small_config)
        driver.initialize()
        for _ in range(5):
            driver.advance()
            report = driver.last_foraging
            assert report.plants_removed <= report.initial_edible
            assert len(set(report.removed_indices)) == report.plants_removed

    def test_empty_ecosystem(self):
        cfg = make_small_config()
        cfg.trees.initial = 0
        cfg.deer.initial = 0
        cfg.wolves.initial = 0
        driver = SimulationDriver(cfg)
        driver.initialize()
        snap = driver.advance()
        assert snap.trees.alive == 0
        # migrants may arrive but find nothing to eat
        assert snap.deer.alive == 0

    def test_tick_error_logged_and_raised(self, small_config, caplog):
        driver = SimulationDriver(small_config)
        driver.initialize()

        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        driver.deer.process_foraging = broken
        with caplog.at_level(logging.ERROR, logger="ecosim.model"):
            with pytest.raises(RuntimeError, match="boom"):
                driver.advance()
        assert driver.year == 0
        assert driver.history == []
        assert any(r.levelno == logging.ERROR for r in caplog.records)


class TestCheckpoint:
    def test_restore_replays_the_same_years(self, small_config):
        driver = SimulationDriver(small_config)
        driver.initialize()
        driver.run(2)
        saved = driver.checkpoint()

        first = [s.as_dict() for s in driver.run(3)]
        driver.restore_checkpoint(saved)
        assert driver.year == 2
        assert len(driver.history) == 2
        second = [s.as_dict() for s in driver.run(3)]

        assert first == second
        assert [s['year'] for s in second] == [3, 4, 5]
        for pop in (driver.trees, driver.deer, driver.wolves):
            assert pop.slot_invariant_holds()

    def test_checkpoint_needs_initialized_driver(self, small_config):
        with pytest.raises(SimulationStateError):
            SimulationDriver(small_config).checkpoint()

    def test_checkpoint_needs_exportable_rng(self, small_config):
        driver = SimulationDriver(small_config, rng=ScriptedRandomSource([0.5]))
        driver.initialize()
        with pytest.raises(SimulationStateError, match="state"):
            driver.checkpoint()


# ═══════════════════════════════════════════════════════════════════════
# OBSERVERS & SUMMARY
# ═══════════════════════════════════════════════════════════════════════

class TestObservers:
    def test_observer_receives_snapshots(self, small_config):
        seen = []
        driver = SimulationDriver(small_config)
        driver.add_observer(seen.append)
        driver.run(3)
        assert [s.year for s in seen] == [1, 2, 3]

    def test_remove_observer(self, small_config):
        seen = []
        driver = SimulationDriver(small_config)
        driver.add_observer(seen.append)
        driver.run(1)
        driver.remove_observer(seen.append)
        driver.run(2)
        assert len(seen) == 1

    def test_observer_can_pause_run(self, small_config):
        driver = SimulationDriver(small_config)

        def stop_at_two(snap):
            if snap.year == 2:
                driver.pause()

        driver.add_observer(stop_at_two)
        snaps = driver.run(10)
        assert len(snaps) == 2
        assert driver.is_paused
        # run() resumes a paused driver
        more = driver.run(1)
        assert [s.year for s in more] == [3]

    def test_summary(self, small_config):
        driver = SimulationDriver(small_config)
        driver.run(4)
        summary = driver.summary()
        assert set(summary) == {'trees', 'deer', 'wolves'}
        for stats in summary.values():
            assert stats['peak'] >= stats['final']
            assert stats['peak'] >= stats['average'] >= 0
            assert 1 <= stats['peak_year'] <= 4


class TestRunSimulation:
    def test_result_series(self, small_config):
        result = run_simulation(small_config)
        assert isinstance(result, SimulationResult)
        assert result.n_years == 5
        np.testing.assert_array_equal(result.years, [1, 2, 3, 4, 5])
        for arr in (result.yearly_trees, result.yearly_deer, result.yearly_wolves,
                    result.yearly_deer_mean_age, result.yearly_tree_births):
            assert arr.shape == (5,)
        assert result.initial_deer == 10
        assert result.final_deer == result.yearly_deer[-1]
        assert set(result.yearly_deaths['deer']) == {
            'age', 'starvation', 'predation', 'unknown'}
        assert result.yearly_deaths['trees']['competition'].shape == (5,)

    def test_extinction_year(self):
        cfg = make_small_config()
        cfg.deer.initial = 0
        cfg.deer.migration_factor = 0
        cfg.wolves.initial = 0
        cfg.wolves.migration_factor = 0
        result = run_simulation(cfg, n_years=3)
        assert result.deer_extinction_year == 1
        assert result.wolf_extinction_year == 1

    def test_matches_driver(self, small_config):
        result = run_simulation(make_small_config(), n_years=4)
        driver = SimulationDriver(make_small_config())
        snaps = driver.run(4)
        np.testing.assert_array_equal(result.yearly_deer, [s.deer.alive for s in snaps])

    def test_defaults(self):
        cfg = default_config()
        cfg.simulation.stabilization_years = 1
        result = run_simulation(cfg, n_years=1)
        assert result.n_years == 1
        assert result.final_trees > 0
