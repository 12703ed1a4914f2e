"""Simulation driver: yearly ticks over trees, deer and wolves.

Tick order (one year):
  1. Trees:  competition → growth → age deaths → stress deaths → seedlings
  2. Deer:   migration → reproduction → growth → age deaths → foraging
  3. Wolves: migration → reproduction → growth → age deaths → hunting
  4. Snapshot, reset per-tick counters, record history, notify observers

Before the first tick, ``initialize`` plants the forest and runs a
producer-only stabilization period so the tree age structure settles
before deer and wolves are introduced.

All randomness flows through one RandomSource owned by the driver, so
two drivers built from the same seeded config produce identical runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np

from ecosim.config import SimulationConfig, default_config, validate_config
from ecosim.herbivores import ForagingReport, HerbivorePopulation
from ecosim.predators import HuntingReport, PredatorPopulation
from ecosim.producers import ProducerPopulation
from ecosim.rng import (
    RandomSource,
    make_random_source,
    restore_rng_state,
    rng_state_snapshot,
)
from ecosim.spatial import SpatialGrid
from ecosim.types import SimState, TickSnapshot

logger = logging.getLogger(__name__)

Observer = Callable[[TickSnapshot], None]


class SimulationStateError(RuntimeError):
    """Driver used in a state that does not allow the call."""


# ═══════════════════════════════════════════════════════════════════════
# DRIVER
# ═══════════════════════════════════════════════════════════════════════

class SimulationDriver:
    """Owns the three populations and advances them one year at a time.

    Args:
        config: Simulation configuration (defaults when None). Clamped in
            place on initialization.
        rng: Injected random source. When None, a NumpyRandomSource is
            seeded from ``config.simulation.seed`` on every initialize, so
            ``reset`` replays the same trajectory.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        rng: Optional[RandomSource] = None,
    ):
        self.config = config if config is not None else default_config()
        self._injected_rng = rng
        self.rng: Optional[RandomSource] = rng
        self.state = SimState.UNINITIALIZED
        self.year = 0
        self.grid: Optional[SpatialGrid] = None
        self.trees: Optional[ProducerPopulation] = None
        self.deer: Optional[HerbivorePopulation] = None
        self.wolves: Optional[PredatorPopulation] = None
        self.history: List[TickSnapshot] = []
        self.initial_snapshot: Optional[TickSnapshot] = None
        self.last_foraging: Optional[ForagingReport] = None
        self.last_hunting: Optional[HuntingReport] = None
        self._observers: List[Observer] = []

    # ── lifecycle ────────────────────────────────────────────────────

    def initialize(self, config: Optional[SimulationConfig] = None) -> TickSnapshot:
        """Build fresh populations and run the stabilization period.

        Returns:
            Snapshot of year 0 (after stabilization, before any tick).
        """
        if config is not None:
            self.config = config
        validate_config(self.config)
        cfg = self.config
        sim, t, d, w = cfg.simulation, cfg.trees, cfg.deer, cfg.wolves

        if self._injected_rng is not None:
            self.rng = self._injected_rng
        else:
            self.rng = make_random_source(sim.seed)

        self.grid = SpatialGrid(sim.grid_size)
        self.trees = ProducerPopulation(t.array_size, self.rng, self.grid)
        self.deer = HerbivorePopulation(d.array_size, self.rng,
                                        d.stamina_factor, d.hunger_factor)
        self.wolves = PredatorPopulation(w.array_size, self.rng,
                                         w.stamina_factor, w.hunger_factor)
        self.year = 0
        self.history = []
        self.last_foraging = None
        self.last_hunting = None

        planted = self.trees.plant(t.initial, t.age_avg, t.age_sigma)
        logger.info("Planted %d/%d trees on a %d-cell grid",
                    planted, t.initial, sim.grid_size)

        self.state = SimState.STABILIZING
        for _ in range(sim.stabilization_years):
            self._producer_phase()
        logger.info("Stabilization complete after %d years: %d trees",
                    sim.stabilization_years, self.trees.count)

        self.deer.initialize(d.initial)
        self.wolves.initialize(w.initial)

        for pop in self._populations():
            pop.reset_counters()
            pop.total_deaths.clear()

        self.state = SimState.RUNNING
        self.initial_snapshot = self.get_snapshot()
        return self.initial_snapshot

    def advance(self) -> TickSnapshot:
        """Run one simulated year.

        Returns:
            Snapshot taken at the end of the year.

        Raises:
            SimulationStateError: If the driver was never initialized.
        """
        self._require_initialized("advance")
        next_year = self.year + 1
        try:
            self._producer_phase()
            self._herbivore_phase()
            self._predator_phase()
        except Exception:
            logger.error("Tick for year %d aborted", next_year, exc_info=True)
            raise

        self.year = next_year
        snapshot = self.get_snapshot()
        for pop in self._populations():
            pop.reset_counters()
        self.history.append(snapshot)
        logger.debug("Year %d: %d trees, %d deer, %d wolves", self.year,
                     snapshot.trees.alive, snapshot.deer.alive,
                     snapshot.wolves.alive)
        for callback in list(self._observers):
            callback(snapshot)
        return snapshot

    def run(self, n_years: Optional[int] = None) -> List[TickSnapshot]:
        """Advance up to ``n_years`` (default ``simulation.years``).

        Initializes first if needed and resumes a paused driver. Stops
        early when the driver is paused, e.g. by an observer.

        Returns:
            Snapshots produced by this call.
        """
        if self.state is SimState.UNINITIALIZED:
            self.initialize()
        n = self.config.simulation.years if n_years is None else max(0, int(n_years))
        self.state = SimState.RUNNING
        produced: List[TickSnapshot] = []
        for _ in range(n):
            produced.append(self.advance())
            if self.state is SimState.PAUSED:
                logger.info("Run paused at year %d", self.year)
                break
        return produced

    def pause(self) -> None:
        self._require_initialized("pause")
        self.state = SimState.PAUSED

    def resume(self) -> None:
        self._require_initialized("resume")
        self.state = SimState.RUNNING

    @property
    def is_paused(self) -> bool:
        return self.state is SimState.PAUSED

    def reset(self) -> TickSnapshot:
        """Pause, then re-initialize with the current configuration."""
        if self.state is not SimState.UNINITIALIZED:
            self.state = SimState.PAUSED
        logger.info("Resetting simulation")
        return self.initialize()

    # ── checkpointing ────────────────────────────────────────────────

    def checkpoint(self) -> dict:
        """Capture everything needed to replay the run from this year.

        Raises:
            SimulationStateError: If the driver was never initialized, or
                its random source cannot export its state.
        """
        self._require_initialized("checkpoint")
        if not hasattr(self.rng, 'state'):
            raise SimulationStateError(
                f"Cannot checkpoint: {type(self.rng).__name__} has no state()")
        return {
            'year': self.year,
            'rng': rng_state_snapshot({'main': self.rng}),
            'populations': {pop.species: pop.export_state()
                            for pop in self._populations()},
            'history': list(self.history),
        }

    def restore_checkpoint(self, checkpoint: dict) -> None:
        """Return to a state captured by :meth:`checkpoint`.

        The driver must have been initialized with the same array sizes.
        Per-tick counters and the last feeding reports are cleared.
        """
        self._require_initialized("restore a checkpoint")
        restore_rng_state({'main': self.rng}, checkpoint['rng'])
        for pop in self._populations():
            pop.import_state(checkpoint['populations'][pop.species])
        self.year = checkpoint['year']
        self.history = list(checkpoint['history'])
        self.last_foraging = None
        self.last_hunting = None
        logger.info("Restored checkpoint at year %d", self.year)

    # ── observers ────────────────────────────────────────────────────

    def add_observer(self, callback: Observer) -> None:
        if callback not in self._observers:
            self._observers.append(callback)

    def remove_observer(self, callback: Observer) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    # ── statistics ───────────────────────────────────────────────────

    def get_snapshot(self) -> TickSnapshot:
        self._require_initialized("get_snapshot")
        return TickSnapshot(
            year=self.year,
            trees=self.trees.statistics(),
            deer=self.deer.statistics(),
            wolves=self.wolves.statistics(),
        )

    def summary(self) -> Dict[str, Dict[str, float]]:
        """Peak, average and final population per species over the history."""
        self._require_initialized("summary")
        snapshots = self.history or [self.get_snapshot()]
        out: Dict[str, Dict[str, float]] = {}
        for species in ('trees', 'deer', 'wolves'):
            counts = np.array([getattr(s, species).alive for s in snapshots])
            peak = int(np.argmax(counts))
            out[species] = {
                'peak': int(counts[peak]),
                'peak_year': int(snapshots[peak].year),
                'average': float(np.mean(counts)),
                'final': int(counts[-1]),
            }
        return out

    # ── phases ───────────────────────────────────────────────────────

    def _producer_phase(self) -> None:
        t = self.config.trees
        self.trees.process_competition(t.density)
        self.trees.grow()
        self.trees.process_age_deaths()
        self.trees.process_stress_deaths(t.stress_level)
        self.trees.reproduce(t.maturity, t.reproduction_factor)

    def _herbivore_phase(self) -> None:
        d = self.config.deer
        self.deer.process_migration(d.migration_factor)
        self.deer.reproduce(d.maturity, d.reproduction_factor)
        self.deer.grow(d.stamina_factor, d.hunger_factor)
        self.deer.process_age_deaths()
        self.last_foraging = self.deer.process_foraging(
            self.trees, self.config.trees.edible_age)

    def _predator_phase(self) -> None:
        w = self.config.wolves
        self.wolves.process_migration(w.migration_factor)
        self.wolves.reproduce(w.maturity, w.reproduction_factor)
        self.wolves.grow(w.stamina_factor, w.hunger_factor)
        self.wolves.process_age_deaths()
        self.last_hunting = self.wolves.process_hunting(self.deer)

    def _populations(self):
        return (self.trees, self.deer, self.wolves)

    def _require_initialized(self, action: str) -> None:
        if self.state is SimState.UNINITIALIZED:
            raise SimulationStateError(
                f"Cannot {action}: simulation has not been initialized")


# ═══════════════════════════════════════════════════════════════════════
# ONE-SHOT RUNS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationResult:
    """Yearly time series from a complete run (index 0 = year 1)."""
    n_years: int = 0
    years: Optional[np.ndarray] = None

    # Population counts at the end of each year
    yearly_trees: Optional[np.ndarray] = None
    yearly_deer: Optional[np.ndarray] = None
    yearly_wolves: Optional[np.ndarray] = None

    # Age structure
    yearly_tree_mean_age: Optional[np.ndarray] = None
    yearly_deer_mean_age: Optional[np.ndarray] = None
    yearly_wolf_mean_age: Optional[np.ndarray] = None
    yearly_mean_tree_height: Optional[np.ndarray] = None

    # Births and migrants
    yearly_tree_births: Optional[np.ndarray] = None
    yearly_deer_births: Optional[np.ndarray] = None
    yearly_wolf_births: Optional[np.ndarray] = None
    yearly_deer_migrants: Optional[np.ndarray] = None
    yearly_wolf_migrants: Optional[np.ndarray] = None

    # Death accounting by cause: {species: {cause: (n_years,)}}
    yearly_deaths: Dict[str, Dict[str, np.ndarray]] = field(default_factory=dict)

    # Summary
    initial_trees: int = 0
    initial_deer: int = 0
    initial_wolves: int = 0
    final_trees: int = 0
    final_deer: int = 0
    final_wolves: int = 0
    deer_extinction_year: Optional[int] = None
    wolf_extinction_year: Optional[int] = None
    summary: Dict[str, Dict[str, float]] = field(default_factory=dict)


def _first_zero(years: np.ndarray, counts: np.ndarray) -> Optional[int]:
    zero = np.flatnonzero(counts == 0)
    return int(years[zero[0]]) if len(zero) else None


def _build_result(driver: SimulationDriver) -> SimulationResult:
    history = driver.history
    init = driver.initial_snapshot
    n = len(history)

    def series(species: str, attr: str, dtype=np.float64) -> np.ndarray:
        return np.array([getattr(getattr(s, species), attr) for s in history],
                        dtype=dtype)

    result = SimulationResult(
        n_years=n,
        years=np.array([s.year for s in history], dtype=np.int64),
        yearly_trees=series('trees', 'alive', np.int64),
        yearly_deer=series('deer', 'alive', np.int64),
        yearly_wolves=series('wolves', 'alive', np.int64),
        yearly_tree_mean_age=series('trees', 'mean_age'),
        yearly_deer_mean_age=series('deer', 'mean_age'),
        yearly_wolf_mean_age=series('wolves', 'mean_age'),
        yearly_mean_tree_height=series('trees', 'mean_height'),
        yearly_tree_births=series('trees', 'births', np.int64),
        yearly_deer_births=series('deer', 'births', np.int64),
        yearly_wolf_births=series('wolves', 'births', np.int64),
        yearly_deer_migrants=series('deer', 'migrants', np.int64),
        yearly_wolf_migrants=series('wolves', 'migrants', np.int64),
        initial_trees=init.trees.alive,
        initial_deer=init.deer.alive,
        initial_wolves=init.wolves.alive,
        summary=driver.summary(),
    )

    for species, pop in (('trees', driver.trees), ('deer', driver.deer),
                         ('wolves', driver.wolves)):
        result.yearly_deaths[species] = {
            cause.label: np.array(
                [getattr(s, species).deaths.get(cause.label, 0) for s in history],
                dtype=np.int64)
            for cause in pop.death_causes
        }

    last = history[-1] if history else init
    result.final_trees = last.trees.alive
    result.final_deer = last.deer.alive
    result.final_wolves = last.wolves.alive
    if n:
        result.deer_extinction_year = _first_zero(result.years, result.yearly_deer)
        result.wolf_extinction_year = _first_zero(result.years, result.yearly_wolves)
    return result


def run_simulation(
    config: Optional[SimulationConfig] = None,
    rng: Optional[RandomSource] = None,
    n_years: Optional[int] = None,
) -> SimulationResult:
    """Initialize a driver, run it, and collect yearly time series.

    Args:
        config: Simulation configuration (defaults when None).
        rng: Optional injected random source.
        n_years: Years to simulate (default ``config.simulation.years``).

    Returns:
        SimulationResult with one entry per simulated year.
    """
    driver = SimulationDriver(config, rng)
    driver.initialize()
    driver.run(n_years)
    result = _build_result(driver)
    logger.info("Run finished after %d years: %d trees, %d deer, %d wolves",
                result.n_years, result.final_trees, result.final_deer,
                result.final_wolves)
    return result
