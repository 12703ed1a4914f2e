"""Predator (wolf) population and hunting of deer.

Hunting mirrors deer foraging (strongest hunt first over a depleting
prey pool) with three differences:
  - success gains a pack term: more living wolves hunt better (capped)
  - at most 2 deer are captured per wolf per tick
  - survival needs a fixed 60% of the food requirement

With no deer at all, a fixed 30% (at least one) of the pack survives on
food the model does not represent; the youngest wolves are kept.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List

import numpy as np

from ecosim.population import (
    ConsumableResource,
    ConsumerPopulation,
    SpeciesProfile,
    clamp_trait,
)
from ecosim.rng import random_index
from ecosim.types import DeathCause

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

WOLF_PROFILE = SpeciesProfile(
    name="wolves",
    initial_age_mean=8.0,
    initial_age_sd=3.0,
    death_age_mean=10.0,
    death_age_sd=5.0,
    reproduction_base=0.3,
    reproduction_exponent=1.8,
    density_weight=0.5,
    density_exponent=1.0,
    rescue_size=4,
    rescue_boost=2.0,
    migration_rescue_size=3,
    migration_chance=0.1,
    migration_damping=0.3,
    migration_boost_size=3,
    migration_boost=2.0,
    migrant_age_mean=3.0,
    migrant_age_sd=1.0,
)

MASS_REFERENCE = 30.0            # need = hunger × mass / 30
HUNTING_SUCCESS_CAP = 0.9
HUNTING_PRIME_AGE = 4.0
HUNTING_AGE_SPAN = 8.0
PACK_BASE = 0.7
PACK_PER_WOLF = 0.1
PACK_CAP = 1.5
MIN_SUCCESS_RATE = 0.4
MAX_CAPTURES = 2
SURVIVAL_THRESHOLD = 0.6
NO_PREY_SURVIVAL = 0.3
MIGRATION_CHANCE = 0.3           # one migrant with this probability


# ═══════════════════════════════════════════════════════════════════════
# FORMULAS
# ═══════════════════════════════════════════════════════════════════════

def pack_factor(n_wolves: int) -> float:
    return min(PACK_CAP, PACK_BASE + PACK_PER_WOLF * n_wolves)


def hunting_success(stamina: float, age: float, n_available: int,
                    n_initial: int, n_wolves: int) -> float:
    """Chance-like score of catching prey, capped at 0.9."""
    if n_available <= 0:
        return 0.0
    availability = min(1.0, math.sqrt(n_available / max(1, n_initial)))
    stamina_term = min(1.0, clamp_trait(stamina) / 10.0)
    age_term = max(0.0, 1.0 - abs(age - HUNTING_PRIME_AGE) / HUNTING_AGE_SPAN)
    p = ((0.4 + 0.4 * availability)
         * (0.6 + 0.4 * stamina_term)
         * (0.7 + 0.3 * age_term)
         * pack_factor(n_wolves))
    return max(0.0, min(HUNTING_SUCCESS_CAP, p))


def no_prey_survivors(n_alive: int) -> int:
    """Wolves kept alive when there is no prey at all."""
    if n_alive <= 0:
        return 0
    return min(n_alive, max(1, math.ceil(n_alive * NO_PREY_SURVIVAL)))


@dataclass
class HuntingReport:
    """Outcome of one hunting phase."""
    n_hunters: int = 0
    survived: int = 0
    starved: int = 0
    initial_prey: int = 0
    prey_killed: int = 0
    mass_consumed: float = 0.0
    no_prey: bool = False


# ═══════════════════════════════════════════════════════════════════════
# PREDATOR POPULATION
# ═══════════════════════════════════════════════════════════════════════

class PredatorPopulation(ConsumerPopulation):
    """Wolf pack stored in an ANIMAL_DTYPE structured array."""

    profile = WOLF_PROFILE

    def food_requirement(self, index: int) -> float:
        hunger = clamp_trait(float(self.agents['hunger'][index]))
        return hunger * float(self.agents['mass'][index]) / MASS_REFERENCE

    def _base_migrants(self) -> int:
        return 1 if self.rng.uniform() < MIGRATION_CHANCE else 0

    def _survive_without_prey(self, report: HuntingReport) -> HuntingReport:
        alive = self.alive_indices()
        keep = no_prey_survivors(len(alive))
        by_age = alive[np.argsort(self.agents['age'][alive], kind='stable')]
        for idx in by_age[keep:]:
            self.kill(int(idx), DeathCause.STARVATION)
        report.survived = keep
        report.starved = len(alive) - keep
        logger.debug("wolves: no prey, %d/%d survive on fallback food",
                     keep, len(alive))
        return report

    def process_hunting(self, prey: ConsumableResource) -> HuntingReport:
        """Every wolf hunts the shared prey pool, strongest first.

        Args:
            prey: Deer population (or any ConsumableResource).

        Returns:
            HuntingReport with survival and kill tallies.
        """
        pool: List[int] = [int(i) for i in prey.list_available()]
        order = self.feeding_order()
        report = HuntingReport(n_hunters=len(order), initial_prey=len(pool))
        if report.initial_prey == 0:
            report.no_prey = True
            return self._survive_without_prey(report)

        for idx in order:
            if not pool:
                self.kill(idx, DeathCause.STARVATION)
                report.starved += 1
                continue

            need = self.food_requirement(idx)
            hunger = clamp_trait(float(self.agents['hunger'][idx]))
            stamina = clamp_trait(float(self.agents['stamina'][idx]))
            age = float(self.agents['age'][idx])
            success = hunting_success(stamina, age, len(pool),
                                      report.initial_prey, self.count)
            floor_rate = min(MIN_SUCCESS_RATE, success)
            rate = floor_rate + self.rng.uniform() * (success - floor_rate)
            found = max(1, math.ceil(hunger * rate))
            n_capture = min(found, MAX_CAPTURES, len(pool))

            consumed = 0.0
            for _ in range(n_capture):
                j = random_index(self.rng, len(pool))
                target = pool[j]
                pool[j] = pool[-1]
                pool.pop()
                gained = min(prey.mass_of(target), need - consumed)
                prey.mark_consumed(target)
                report.prey_killed += 1
                consumed += gained
                if consumed >= need:
                    break
            report.mass_consumed += consumed

            if consumed >= need * SURVIVAL_THRESHOLD:
                report.survived += 1
            else:
                self.kill(idx, DeathCause.STARVATION)
                report.starved += 1

        logger.debug(
            "wolves: %d hunted %d deer: %d survived, %d starved, %d deer killed",
            report.n_hunters, report.initial_prey, report.survived,
            report.starved, report.prey_killed,
        )
        return report
