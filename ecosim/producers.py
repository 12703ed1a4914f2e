"""Producer (tree) population: planting, growth, crowding, mortality.

Tree lifecycle per tick (driver order):
  competition → growth → age deaths → stress deaths → reproduction

Allometry (age in years):
    diameter = 0.01 × age                       (m)
    height   = 1.3 + (d / (1.95 + 0.13 d))²     (m)
    mass     = 0.0613 × (100 d)^2.7133          (edible biomass units)

Tree slot ``i`` occupies grid cell ``i``; crowding is resolved over
overlapping 9×9 cell windows, keeping the widest trees.

Trees are also the food source for deer: this class implements the
ConsumableResource interface used by herbivore foraging.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple, Union

import numpy as np

from ecosim.population import SlotPopulation, scaled_factor
from ecosim.rng import RandomSource
from ecosim.spatial import SpatialGrid
from ecosim.types import (
    PLANT_DTYPE,
    TREE_AGE_BRACKETS,
    DeathCause,
    SpeciesSnapshot,
    allocate_plants,
)

logger = logging.getLogger(__name__)

ArrayLike = Union[float, np.ndarray]


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

DIAMETER_PER_YEAR = 0.01
COMPETITION_RADIUS = 4              # cells; window is (2r+1)²

# Stress mortality: p = stress_level × scale × (1 − resistance(age))
STRESS_SCALE = 0.001
STRESS_RESISTANCE_PER_YEAR = 0.005
STRESS_RESISTANCE_MAX = 0.5

DEATH_AGE_MEAN = 100.0
DEATH_AGE_SD = 10.0

# Seedlings per mature tree at zero occupancy and baseline factor
SEEDLING_RATE = 0.5
REPRODUCTION_EXPONENT = 1.5
SEEDLING_AGE = 1

YOUNG_TREE_AGE = 2                  # "young" in statistics


# ═══════════════════════════════════════════════════════════════════════
# ALLOMETRY
# ═══════════════════════════════════════════════════════════════════════

def tree_allometry(age: ArrayLike) -> Tuple[ArrayLike, ArrayLike, ArrayLike]:
    """(diameter, height, mass) from age. Works on scalars and arrays."""
    d = DIAMETER_PER_YEAR * np.asarray(age, dtype=np.float64)
    h = 1.3 + (d / (1.95 + 0.13 * d)) ** 2.0
    m = 0.0613 * (100.0 * d) ** 2.7133
    if np.ndim(d) == 0:
        return float(d), float(h), float(m)
    return d, h, m


def stress_death_probability(stress_level: float, age: float) -> float:
    """Annual stress-death probability; older trees resist better."""
    resistance = min(STRESS_RESISTANCE_MAX, STRESS_RESISTANCE_PER_YEAR * age)
    return max(0.0, stress_level * STRESS_SCALE * (1.0 - resistance))


# ═══════════════════════════════════════════════════════════════════════
# PRODUCER POPULATION
# ═══════════════════════════════════════════════════════════════════════

class ProducerPopulation(SlotPopulation):
    """Fixed-capacity forest stored in a PLANT_DTYPE structured array."""

    dtype = PLANT_DTYPE
    species = "trees"
    age_brackets = TREE_AGE_BRACKETS
    death_causes = (
        DeathCause.AGE, DeathCause.STRESS,
        DeathCause.COMPETITION, DeathCause.CONSUMED,
    )

    def __init__(
        self,
        capacity: int,
        rng: RandomSource,
        grid: Optional[SpatialGrid] = None,
    ):
        super().__init__(capacity, rng)
        self.grid = grid if grid is not None else SpatialGrid(self.capacity)
        if self.grid.n_cells < self.capacity:
            raise ValueError(
                f"grid of {self.grid.n_cells} cells cannot hold "
                f"{self.capacity} tree slots"
            )

    @staticmethod
    def _allocate(capacity: int) -> np.ndarray:
        return allocate_plants(capacity)

    # ── planting ─────────────────────────────────────────────────────

    def _plant_one(self, age: int) -> int:
        d, h, m = tree_allometry(age)
        return self.occupy(age=age, diameter=d, height=h, mass=m)

    def plant(
        self,
        count: int,
        age_mean: float = 0.0,
        age_sd: float = 0.0,
        age: Optional[int] = None,
    ) -> int:
        """Plant up to ``count`` trees in random empty slots.

        Ages are ``max(1, floor(N(age_mean, age_sd)))`` unless a fixed
        ``age`` is given. Stops early when the array is full.

        Returns:
            Number of trees actually planted.
        """
        planted = 0
        for _ in range(max(0, int(count))):
            if age is None:
                a = max(1, int(math.floor(self.rng.gaussian(age_mean, age_sd))))
            else:
                a = max(1, int(age))
            if self._plant_one(a) < 0:
                break
            planted += 1
        if planted < count:
            logger.debug("trees: planted %d/%d (no space)", planted, count)
        return planted

    # ── lifecycle ────────────────────────────────────────────────────

    def grow(self) -> None:
        """Age every tree by one year and recompute allometry."""
        idx = self.alive_indices()
        if len(idx) == 0:
            return
        ages = self.agents['age'][idx] + 1
        d, h, m = tree_allometry(ages)
        self.agents['age'][idx] = ages
        self.agents['diameter'][idx] = d
        self.agents['height'][idx] = h
        self.agents['mass'][idx] = m

    def process_competition(self, density_limit: int) -> int:
        """Thin crowded neighbourhoods down to ``density_limit`` trees.

        Scans every grid cell whose full window fits inside the grid, row
        by row. Where a window holds more than ``density_limit`` trees,
        the narrowest are removed (ties broken by scan order). Later
        windows see earlier removals.

        Returns:
            Number of trees removed.
        """
        limit = max(0, int(density_limit))
        r = COMPETITION_RADIUS
        occupied = np.zeros(self.grid.n_cells, dtype=bool)
        occupied[:self.capacity] = self.agents['slot_id'] != 0
        diameter = self.agents['diameter']

        removed = 0
        for x, y in self.grid.interior_centres(r):
            cells = self.grid.window_indices(x, y, r)
            local = cells[occupied[cells]]
            if len(local) <= limit:
                continue
            order = np.argsort(-diameter[local], kind='stable')
            for idx in local[order[limit:]]:
                if self.kill(int(idx), DeathCause.COMPETITION):
                    removed += 1
                occupied[idx] = False
        logger.debug("trees: %d removed by competition (limit %d)", removed, limit)
        return removed

    def process_stress_deaths(self, stress_level: float) -> int:
        """Random environmental-stress deaths. Returns deaths."""
        removed = 0
        ages = self.agents['age']
        for idx in self.alive_indices():
            p = stress_death_probability(stress_level, float(ages[idx]))
            if self.rng.uniform() < p:
                self.kill(int(idx), DeathCause.STRESS)
                removed += 1
        logger.debug("trees: %d died of stress", removed)
        return removed

    def process_age_deaths(self) -> int:
        """Kill trees older than a death age drawn from N(100, 10)."""
        removed = 0
        ages = self.agents['age']
        for idx in self.alive_indices():
            death_age = self.rng.gaussian(DEATH_AGE_MEAN, DEATH_AGE_SD)
            if ages[idx] > death_age:
                self.kill(int(idx), DeathCause.AGE)
                removed += 1
        logger.debug("trees: %d died of age", removed)
        return removed

    def seedling_quota(self, maturity_age: int, reproduction_factor: float) -> int:
        """Seedlings requested this tick before space limits apply."""
        idx = self.alive_indices()
        n_mature = int(np.count_nonzero(self.agents['age'][idx] >= maturity_age))
        occupancy = len(idx) / self.capacity
        density_discount = max(0.0, 1.0 - occupancy ** 2)
        quota = (n_mature * SEEDLING_RATE * density_discount
                 * scaled_factor(reproduction_factor, REPRODUCTION_EXPONENT))
        return int(math.floor(quota))

    def reproduce(self, maturity_age: int, reproduction_factor: float = 5.0) -> int:
        """Plant seedlings (age 1) in proportion to the mature trees.

        Returns:
            Number of seedlings planted.
        """
        quota = self.seedling_quota(maturity_age, reproduction_factor)
        planted = self.plant(quota, age=SEEDLING_AGE)
        self.births += planted
        logger.debug("trees: quota %d seedlings, planted %d", quota, planted)
        return planted

    # ── ConsumableResource ───────────────────────────────────────────

    def list_available(self, max_age: Optional[float] = None) -> np.ndarray:
        idx = self.alive_indices()
        if max_age is None:
            return idx
        return idx[self.agents['age'][idx] <= max_age]

    def mass_of(self, index: int) -> float:
        return float(self.agents['mass'][index])

    def age_of(self, index: int) -> float:
        return float(self.agents['age'][index])

    def mark_consumed(self, index: int) -> bool:
        """Remove a tree eaten by a herbivore."""
        return self.kill(index, DeathCause.CONSUMED)

    # ── statistics ───────────────────────────────────────────────────

    def statistics(self) -> SpeciesSnapshot:
        idx = self.alive_indices()
        young = int(np.count_nonzero(self.agents['age'][idx] <= YOUNG_TREE_AGE))
        return SpeciesSnapshot(
            species=self.species,
            alive=self.count,
            capacity=self.capacity,
            mean_age=self.mean_of('age'),
            age_histogram=self.age_histogram(),
            deaths=self._death_dict(self.deaths, self.death_causes),
            total_deaths=self._death_dict(self.total_deaths, self.death_causes),
            births=self.births,
            mean_height=self.mean_of('height'),
            young=young,
        )
