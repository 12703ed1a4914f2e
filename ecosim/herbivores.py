"""Herbivore (deer) population and browsing on trees.

Deer share the generic consumer lifecycle (population.py) and add:
  - a youth stamina penalty (deer under 2 years are half as fit)
  - maturity-peaked reproduction with a small-herd rescue boost
  - stamina-ordered foraging against a depleting pool of edible trees

Foraging (one pass per tick):
  1. Edible pool = living trees with age <= edible_age_limit
  2. Deer feed strongest-first (stamina descending)
  3. Each deer samples up to ``capacity`` trees from what is left and
     eats until its need is met; a tree is removed if eaten whole, if
     ≥30% of it is harvested, or if it is younger than 3 years
  4. A deer survives if it met ``survival_threshold`` of its need; the
     threshold is relaxed when edible trees per deer are scarce
  5. Eaten and partly bitten trees both leave the pool, so no tree is
     browsed twice per tick

Deer are in turn the prey of wolves: this class implements the
ConsumableResource interface used by predator hunting.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from ecosim.population import (
    ConsumableResource,
    ConsumerPopulation,
    SpeciesProfile,
    clamp_trait,
)
from ecosim.rng import partial_shuffle
from ecosim.types import DeathCause

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

DEER_PROFILE = SpeciesProfile(
    name="deer",
    youth_age=2.0,
    youth_penalty=0.5,
    initial_age_mean=8.0,
    initial_age_sd=3.0,
    death_age_mean=10.0,
    death_age_sd=2.0,
    reproduction_base=0.5,
    reproduction_exponent=2.5,
    density_weight=0.7,
    density_exponent=1.5,
    maturity_sigmoid=True,
    high_factor_threshold=8.0,
    high_factor_bonus=1.5,
    rescue_size=10,
    rescue_boost=1.5,
    migration_rescue_size=10,
    migration_chance=0.2,
    migration_damping=0.5,
    migrant_age_mean=4.0,
    migrant_age_sd=1.0,
)

# Food requirement: hunger × 0.2 × sqrt(hunger / 5)
FOOD_SCALE = 0.2

# Foraging success terms
FORAGING_SUCCESS_CAP = 0.9
FORAGING_PRIME_AGE = 4.0
FORAGING_AGE_SPAN = 10.0

# A partly eaten tree dies at this harvested fraction or below this age
HARVEST_KILL_FRACTION = 0.3
YOUNG_TREE_AGE_LIMIT = 3

# Survival thresholds by hunger band, relaxed under scarcity
SURVIVAL_LOW_HUNGER = 0.6       # hunger <= 3
SURVIVAL_MID_HUNGER = 0.7       # hunger <= 7
SURVIVAL_HIGH_HUNGER = 0.8
SCARCITY_RATIO = 2.0            # edible trees per deer below which threshold drops


# ═══════════════════════════════════════════════════════════════════════
# FORMULAS
# ═══════════════════════════════════════════════════════════════════════

def foraging_success(stamina: float, age: float,
                     n_available: int, n_initial: int) -> float:
    """Probability-like score of finding food, capped at 0.9."""
    if n_available <= 0:
        return 0.0
    stamina = clamp_trait(stamina)
    availability = math.sqrt(n_available / max(1, n_initial))
    stamina_term = (stamina / 10.0) ** 0.8
    age_term = max(0.0, 1.0 - abs(age - FORAGING_PRIME_AGE) / FORAGING_AGE_SPAN)
    p = ((0.5 + 0.3 * availability)
         * (0.5 + 0.5 * stamina_term)
         * (0.7 + 0.3 * age_term))
    return max(0.0, min(FORAGING_SUCCESS_CAP, p))


def foraging_capacity(stamina: float, success: float) -> int:
    """How many trees a deer can inspect in one tick."""
    return max(1, int(math.floor(2 + (clamp_trait(stamina) / 2.0) * success * 3)))


def survival_threshold(hunger: float, edible_per_deer: float) -> float:
    """Fraction of the food need a deer must meet to survive."""
    hunger = clamp_trait(hunger)
    if hunger <= 3:
        threshold = SURVIVAL_LOW_HUNGER
    elif hunger <= 7:
        threshold = SURVIVAL_MID_HUNGER
    else:
        threshold = SURVIVAL_HIGH_HUNGER
    if edible_per_deer < SCARCITY_RATIO:
        threshold *= 0.5 + 0.5 * edible_per_deer / SCARCITY_RATIO
    return threshold


@dataclass
class ForagingReport:
    """Outcome of one foraging phase."""
    n_foragers: int = 0
    survived: int = 0
    starved: int = 0
    initial_edible: int = 0
    plants_removed: int = 0
    partial_bites: int = 0
    mass_consumed: float = 0.0
    removed_indices: List[int] = field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════
# HERBIVORE POPULATION
# ═══════════════════════════════════════════════════════════════════════

class HerbivorePopulation(ConsumerPopulation):
    """Deer herd stored in an ANIMAL_DTYPE structured array."""

    profile = DEER_PROFILE
    death_causes = (
        DeathCause.AGE, DeathCause.STARVATION,
        DeathCause.PREDATION, DeathCause.UNKNOWN,
    )

    def food_requirement(self, index: int) -> float:
        hunger = clamp_trait(float(self.agents['hunger'][index]))
        return hunger * FOOD_SCALE * math.sqrt(hunger / 5.0)

    def process_foraging(
        self,
        producers: ConsumableResource,
        edible_age_limit: float,
    ) -> ForagingReport:
        """Feed every deer on the shared edible-tree pool, strongest first.

        Args:
            producers: Tree population (or any ConsumableResource).
            edible_age_limit: Oldest tree age deer can eat.

        Returns:
            ForagingReport with survival and consumption tallies.
        """
        pool: List[int] = [int(i) for i in producers.list_available(edible_age_limit)]
        order = self.feeding_order()
        report = ForagingReport(n_foragers=len(order), initial_edible=len(pool))
        edible_per_deer = len(pool) / len(order) if order else math.inf

        for idx in order:
            if not pool:
                self.kill(idx, DeathCause.STARVATION)
                report.starved += 1
                continue

            need = self.food_requirement(idx)
            stamina = clamp_trait(float(self.agents['stamina'][idx]))
            age = float(self.agents['age'][idx])
            success = foraging_success(stamina, age, len(pool), report.initial_edible)
            capacity = foraging_capacity(stamina, success)

            candidates = partial_shuffle(self.rng, pool, capacity)
            eaten = set()
            bitten = set()
            consumed = 0.0
            for plant in candidates:
                if consumed >= need:
                    break
                still_needed = need - consumed
                mass = producers.mass_of(plant)
                if mass >= still_needed:
                    consumed += still_needed
                    fraction = still_needed / mass if mass > 0 else 1.0
                    if (fraction >= HARVEST_KILL_FRACTION
                            or producers.age_of(plant) < YOUNG_TREE_AGE_LIMIT):
                        producers.mark_consumed(plant)
                        eaten.add(plant)
                    else:
                        bitten.add(plant)
                        report.partial_bites += 1
                    break
                consumed += mass
                producers.mark_consumed(plant)
                eaten.add(plant)

            if eaten or bitten:
                k = len(candidates)
                pool[:k] = [p for p in pool[:k] if p not in eaten and p not in bitten]
            if eaten:
                report.plants_removed += len(eaten)
                report.removed_indices.extend(sorted(eaten))
            report.mass_consumed += consumed

            hunger = float(self.agents['hunger'][idx])
            if consumed >= need * survival_threshold(hunger, edible_per_deer):
                report.survived += 1
            else:
                self.kill(idx, DeathCause.STARVATION)
                report.starved += 1

        logger.debug(
            "deer: foraging %d deer on %d edible trees: %d survived, "
            "%d starved, %d trees removed",
            report.n_foragers, report.initial_edible, report.survived,
            report.starved, report.plants_removed,
        )
        return report

    # ── ConsumableResource (prey for wolves) ─────────────────────────

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
        """Remove a deer killed by a predator."""
        return self.kill(index, DeathCause.PREDATION)
