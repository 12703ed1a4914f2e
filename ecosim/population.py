"""Population arenas and the generic consumer lifecycle.

Handles: slot allocation (free-list arena over a structured array),
death/birth/migration bookkeeping, age histograms, and the lifecycle
shared by deer and wolves (initial seeding, growth, age mortality,
reproduction, migration).

Species-specific formulas live in a :class:`SpeciesProfile` plus a few
overridable hooks on :class:`ConsumerPopulation`; the feeding algorithms
(foraging, hunting) are in herbivores.py and predators.py.

Cross-population access goes through :class:`ConsumableResource` only:
a consumer never touches another population's array directly.
"""

from __future__ import annotations

import abc
import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from ecosim.rng import RandomSource, random_index
from ecosim.types import (
    ANIMAL_AGE_BRACKETS,
    ANIMAL_DTYPE,
    DeathCause,
    SpeciesSnapshot,
    allocate_animals,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CAPABILITY INTERFACE
# ═══════════════════════════════════════════════════════════════════════

class ConsumableResource(Protocol):
    """What a feeding population may see and do to its food source."""

    def list_available(self, max_age: Optional[float] = None) -> np.ndarray:
        """Indices of living entities (optionally with age <= max_age)."""
        ...

    def mass_of(self, index: int) -> float:
        ...

    def age_of(self, index: int) -> float:
        ...

    def mark_consumed(self, index: int) -> bool:
        """Remove the entity; False if the slot was already empty."""
        ...


# ═══════════════════════════════════════════════════════════════════════
# SLOT ARENA
# ═══════════════════════════════════════════════════════════════════════

class SlotPopulation:
    """Fixed-capacity population array with O(1) random empty-slot lookup.

    ``agents[i]['slot_id'] == i + 1`` marks an occupied slot; empty slots
    hold the all-zero record. The free list holds every empty index;
    picking a random empty slot is one uniform draw into it.
    """

    dtype: np.dtype = ANIMAL_DTYPE
    species: str = "population"
    age_brackets: Tuple[int, ...] = ANIMAL_AGE_BRACKETS

    def __init__(self, capacity: int, rng: RandomSource):
        self.capacity = max(1, int(capacity))
        self.rng = rng
        self.agents = self._allocate(self.capacity)
        self._empty = np.zeros((), dtype=self.dtype)
        self._free: List[int] = list(range(self.capacity))
        self._free_pos: Dict[int, int] = {i: i for i in self._free}
        self.deaths: Counter = Counter()
        self.total_deaths: Counter = Counter()
        self.births = 0
        self.migrants = 0

    @staticmethod
    def _allocate(capacity: int) -> np.ndarray:
        return allocate_animals(capacity)

    @property
    def count(self) -> int:
        """Number of occupied slots."""
        return self.capacity - len(self._free)

    @property
    def is_full(self) -> bool:
        return not self._free

    def is_alive(self, index: int) -> bool:
        return 0 <= index < self.capacity and self.agents['slot_id'][index] != 0

    def alive_indices(self) -> np.ndarray:
        return np.flatnonzero(self.agents['slot_id'])

    # ── slot management ──────────────────────────────────────────────

    def _take_free(self, pos: int) -> int:
        idx = self._free[pos]
        last = self._free.pop()
        if last != idx:
            self._free[pos] = last
            self._free_pos[last] = pos
        del self._free_pos[idx]
        return idx

    def _claim_slot(self) -> int:
        """Remove and return a random empty index, or -1 if full."""
        if not self._free:
            return -1
        return self._take_free(random_index(self.rng, len(self._free)))

    def _release_slot(self, index: int) -> None:
        self._free_pos[index] = len(self._free)
        self._free.append(index)

    def occupy(self, **fields) -> int:
        """Place a new record in a random empty slot.

        Returns:
            Slot index, or -1 if the population is full.
        """
        idx = self._claim_slot()
        if idx < 0:
            return -1
        for name, value in fields.items():
            self.agents[name][idx] = value
        self.agents['slot_id'][idx] = idx + 1
        return idx

    def kill(self, index: int, cause: DeathCause = DeathCause.UNKNOWN) -> bool:
        """Empty a slot and count the death. No-op on empty slots."""
        if not self.is_alive(index):
            return False
        self.agents[index] = self._empty
        self._release_slot(index)
        self.deaths[cause] += 1
        self.total_deaths[cause] += 1
        return True

    def clear(self) -> None:
        """Empty every slot and zero all counters."""
        self.agents[:] = self._empty
        self._free = list(range(self.capacity))
        self._free_pos = {i: i for i in self._free}
        self.deaths.clear()
        self.total_deaths.clear()
        self.reset_counters()

    def reset_counters(self) -> None:
        """Clear per-tick counters. Cumulative death totals are kept."""
        self.deaths.clear()
        self.births = 0
        self.migrants = 0

    def export_state(self) -> dict:
        """Copy of the slot array, free list and cumulative deaths."""
        return {
            'agents': self.agents.copy(),
            'free': list(self._free),
            'total_deaths': Counter(self.total_deaths),
        }

    def import_state(self, state: dict) -> None:
        """Restore a state produced by :meth:`export_state`.

        Per-tick counters are cleared.

        Raises:
            ValueError: If the saved array does not match this population.
        """
        agents = state['agents']
        if agents.shape != self.agents.shape or agents.dtype != self.dtype:
            raise ValueError(
                f"{self.species}: saved state has {agents.shape[0]} slots of "
                f"{agents.dtype}, expected {self.capacity} of {self.dtype}"
            )
        self.agents[:] = agents
        self._free = list(state['free'])
        self._free_pos = {idx: pos for pos, idx in enumerate(self._free)}
        self.total_deaths = Counter(state['total_deaths'])
        self.reset_counters()

    def slot_invariant_holds(self) -> bool:
        """True iff id==0 ⇔ empty record, ids match indices, free list agrees."""
        ids = self.agents['slot_id']
        occupied = ids != 0
        idx = np.arange(self.capacity)
        if not np.array_equal(ids[occupied], idx[occupied] + 1):
            return False
        for name in self.dtype.names:
            if np.any(self.agents[name][~occupied] != 0):
                return False
        free = np.zeros(self.capacity, dtype=bool)
        free[self._free] = True
        return len(set(self._free)) == len(self._free) and np.array_equal(free, ~occupied)

    # ── statistics ───────────────────────────────────────────────────

    def age_histogram(self, edges: Optional[Sequence[int]] = None) -> Dict[str, int]:
        """Alive counts per age bracket; the last bracket is open-ended."""
        edges = tuple(edges if edges is not None else self.age_brackets)
        ages = self.agents['age'][self.alive_indices()]
        bins = np.searchsorted(np.asarray(edges, dtype=np.float64), ages, side='right') - 1
        hist: Dict[str, int] = {}
        for i, lo in enumerate(edges):
            if i + 1 < len(edges):
                label = f"{lo}-{edges[i + 1] - 1}"
            else:
                label = f"{lo}+"
            hist[label] = int(np.sum(bins == i))
        return hist

    def _death_dict(self, counter: Counter, causes: Iterable[DeathCause]) -> Dict[str, int]:
        return {c.label: int(counter.get(c, 0)) for c in causes}

    def mean_of(self, field_name: str) -> float:
        idx = self.alive_indices()
        if len(idx) == 0:
            return 0.0
        return float(np.mean(self.agents[field_name][idx]))


# ═══════════════════════════════════════════════════════════════════════
# CONSUMER LIFECYCLE
# ═══════════════════════════════════════════════════════════════════════

# Stamina / hunger are on a 0–10 scale wherever they enter probabilities.
TRAIT_MIN = 0.0
TRAIT_MAX = 10.0
BASELINE_FACTOR = 5.0


def scaled_factor(factor: float, exponent: float) -> float:
    """Non-linear 1–10 factor scaling: 5 → 1.0, 10 → 2**exponent."""
    return (max(0.0, factor) / BASELINE_FACTOR) ** exponent


def clamp_trait(value: float) -> float:
    return min(TRAIT_MAX, max(TRAIT_MIN, value))


@dataclass(frozen=True)
class SpeciesProfile:
    """Per-species constants for the shared consumer lifecycle."""
    name: str
    # Body
    adult_age: float = 4.0
    mass_per_year: float = 7.0
    # Stamina curve: peak at prime_age, width set by stamina_spread
    prime_age: float = 4.5
    stamina_spread: float = 2.5
    stamina_exponent: float = 1.5
    youth_age: float = 0.0             # below this age stamina is penalised
    youth_penalty: float = 1.0
    # Seeding and lifespan
    initial_age_mean: float = 8.0
    initial_age_sd: float = 3.0
    death_age_mean: float = 10.0
    death_age_sd: float = 2.0
    # Reproduction
    reproduction_base: float = 0.5
    reproduction_exponent: float = 2.5
    density_weight: float = 0.7
    density_exponent: float = 1.5
    maturity_sigmoid: bool = False
    high_factor_threshold: float = math.inf
    high_factor_bonus: float = 1.0
    rescue_size: int = 0               # reproduction boost below this many alive
    rescue_boost: float = 1.0
    # Migration
    migration_exponent: float = 1.5
    migration_rescue_size: int = 10    # full-strength migration below this size
    migration_chance: float = 0.2      # otherwise migrate with this probability...
    migration_damping: float = 0.5     # ...at this fraction of the factor
    migration_boost_size: int = 0      # migrant count doubled below this size
    migration_boost: float = 1.0
    migrant_age_mean: float = 4.0
    migrant_age_sd: float = 1.0


class ConsumerPopulation(SlotPopulation, metaclass=abc.ABCMeta):
    """Generic deer/wolf population: body, stamina, and lifecycle phases.

    Abstract: subclasses supply ``profile`` and must implement
    :meth:`food_requirement`; :meth:`_base_migrants` is overridden where
    the species differ.
    """

    profile: SpeciesProfile = SpeciesProfile(name="consumer")
    death_causes: Tuple[DeathCause, ...] = (
        DeathCause.AGE, DeathCause.STARVATION, DeathCause.UNKNOWN,
    )

    def __init__(
        self,
        capacity: int,
        rng: RandomSource,
        stamina_factor: float = BASELINE_FACTOR,
        hunger_factor: float = BASELINE_FACTOR,
    ):
        super().__init__(capacity, rng)
        self.stamina_factor = stamina_factor
        self.hunger_factor = hunger_factor
        self.species = self.profile.name

    # ── derived traits ───────────────────────────────────────────────

    def body_mass(self, age: float) -> float:
        p = self.profile
        return p.adult_age * p.mass_per_year if age > p.adult_age else age * p.mass_per_year

    def hunger_for(self, age: float, hunger_factor: Optional[float] = None) -> float:
        h = self.hunger_factor if hunger_factor is None else hunger_factor
        p = self.profile
        return h if age > p.adult_age else age * h / p.adult_age

    def stamina_for(self, age: float, stamina_factor: Optional[float] = None) -> float:
        """Bell-shaped stamina peaking at the prime age, capped at 10."""
        p = self.profile
        f = self.stamina_factor if stamina_factor is None else stamina_factor
        f = min(10.0, max(1.0, f))
        curve = max(0.0, 10.0 - (age - p.prime_age) ** 2 / p.stamina_spread)
        penalty = p.youth_penalty if age < p.youth_age else 1.0
        return min(TRAIT_MAX, curve * scaled_factor(f, p.stamina_exponent) * penalty)

    def _traits(self, age: float) -> dict:
        return {
            'age': age,
            'mass': self.body_mass(age),
            'hunger': self.hunger_for(age),
            'stamina': self.stamina_for(age),
        }

    @abc.abstractmethod
    def food_requirement(self, index: int) -> float:
        """Food mass this individual needs in one tick."""

    # ── placement ────────────────────────────────────────────────────

    def add_individual(self, age: float) -> int:
        """Place one individual of the given age; -1 if full."""
        return self.occupy(**self._traits(max(0.0, age)))

    def initialize(
        self,
        count: int,
        stamina_factor: Optional[float] = None,
        hunger_factor: Optional[float] = None,
    ) -> int:
        """Clear the array and seed ``count`` individuals, ages ~ N(mean, sd).

        Returns:
            Number actually placed (less than ``count`` if capacity ran out).
        """
        self.clear()
        if stamina_factor is not None:
            self.stamina_factor = stamina_factor
        if hunger_factor is not None:
            self.hunger_factor = hunger_factor
        p = self.profile
        placed = 0
        for _ in range(max(0, int(count))):
            age = self.rng.gaussian(p.initial_age_mean, p.initial_age_sd)
            if self.add_individual(age) < 0:
                logger.info("%s: no space after %d of %d individuals",
                            self.species, placed, count)
                break
            placed += 1
        logger.info("%s: initialized %d/%d individuals", self.species, placed, count)
        return placed

    # ── lifecycle phases ─────────────────────────────────────────────

    def grow(
        self,
        stamina_factor: Optional[float] = None,
        hunger_factor: Optional[float] = None,
    ) -> None:
        """Age every individual by one year and recompute derived traits."""
        if stamina_factor is not None:
            self.stamina_factor = stamina_factor
        if hunger_factor is not None:
            self.hunger_factor = hunger_factor
        a = self.agents
        for idx in self.alive_indices():
            age = float(a['age'][idx]) + 1.0
            a['age'][idx] = age
            a['mass'][idx] = self.body_mass(age)
            a['hunger'][idx] = self.hunger_for(age)
            a['stamina'][idx] = self.stamina_for(age)

    def process_age_deaths(self) -> int:
        """Kill individuals older than a sampled death age. Returns deaths."""
        p = self.profile
        n_killed = 0
        for idx in self.alive_indices():
            death_age = self.rng.gaussian(p.death_age_mean, p.death_age_sd)
            if self.agents['age'][idx] > death_age:
                self.kill(int(idx), DeathCause.AGE)
                n_killed += 1
        logger.debug("%s: %d died of age", self.species, n_killed)
        return n_killed

    def reproduction_probability(
        self,
        index: int,
        maturity_age: float,
        reproduction_factor: float,
        n_alive: int,
    ) -> float:
        """Per-individual birth probability for one mature parent."""
        p = self.profile
        density = n_alive / self.capacity
        density_factor = max(0.0, 1.0 - p.density_weight * density ** p.density_exponent)
        stamina = clamp_trait(float(self.agents['stamina'][index]))
        prob = (p.reproduction_base * density_factor * (stamina / 10.0)
                * scaled_factor(reproduction_factor, p.reproduction_exponent))
        if p.maturity_sigmoid:
            age = float(self.agents['age'][index])
            prob *= 1.0 / (1.0 + math.exp(-(age - maturity_age)))
        if reproduction_factor >= p.high_factor_threshold:
            prob *= p.high_factor_bonus
        if n_alive < p.rescue_size:
            prob *= p.rescue_boost
        return prob

    def reproduce(self, maturity_age: float, reproduction_factor: float = BASELINE_FACTOR) -> int:
        """Mature individuals give birth with per-individual probability.

        Newborns (age 0) are placed best effort. Individuals younger than
        ``maturity_age`` never reproduce.

        Returns:
            Number of newborns actually placed.
        """
        alive = self.alive_indices()
        n_alive = len(alive)
        mature = alive[self.agents['age'][alive] >= maturity_age]
        potential = 0
        for idx in mature:
            prob = self.reproduction_probability(int(idx), maturity_age,
                                                 reproduction_factor, n_alive)
            if self.rng.uniform() < prob:
                potential += 1

        born = 0
        for _ in range(potential):
            if self.add_individual(0.0) < 0:
                break
            born += 1
        if born < potential:
            logger.debug("%s: placed %d/%d births (array full)",
                         self.species, born, potential)
        self.births += born
        logger.debug("%s: %d mature of %d, %d born", self.species,
                     len(mature), n_alive, born)
        return born

    def _base_migrants(self) -> int:
        """Un-scaled number of arriving migrants for this tick."""
        return 1 + int(self.rng.uniform() * 2)

    def migrant_count(self, migration_factor: float) -> int:
        p = self.profile
        if migration_factor <= 0:
            return 0
        scale = scaled_factor(migration_factor, p.migration_exponent)
        if self.count < p.migration_boost_size:
            scale *= p.migration_boost
        return max(0, int(round(self._base_migrants() * scale)))

    def process_migration(self, migration_factor: float) -> int:
        """Add immigrants; small populations receive them at full strength.

        Above ``migration_rescue_size`` migration only happens with
        probability ``migration_chance`` and a damped factor.

        Returns:
            Number of migrants placed.
        """
        p = self.profile
        if migration_factor <= 0:
            return 0
        if self.count >= p.migration_rescue_size:
            if self.rng.uniform() >= p.migration_chance:
                return 0
            migration_factor *= p.migration_damping

        n = self.migrant_count(migration_factor)
        placed = 0
        for _ in range(n):
            age = self.rng.gaussian(p.migrant_age_mean, p.migrant_age_sd)
            if self.add_individual(age) < 0:
                logger.debug("%s: no space for migrants", self.species)
                break
            placed += 1
        self.migrants += placed
        if placed:
            logger.debug("%s: %d migrants arrived", self.species, placed)
        return placed

    # ── feeding helpers ──────────────────────────────────────────────

    def feeding_order(self) -> List[int]:
        """Living indices ordered by stamina, strongest first (stable)."""
        alive = self.alive_indices()
        order = np.argsort(-self.agents['stamina'][alive], kind='stable')
        return [int(i) for i in alive[order]]

    def statistics(self) -> SpeciesSnapshot:
        """Summary of the living population and this tick's events."""
        return SpeciesSnapshot(
            species=self.species,
            alive=self.count,
            capacity=self.capacity,
            mean_age=self.mean_of('age'),
            age_histogram=self.age_histogram(),
            deaths=self._death_dict(self.deaths, self.death_causes),
            total_deaths=self._death_dict(self.total_deaths, self.death_causes),
            births=self.births,
            migrants=self.migrants,
            mean_stamina=self.mean_of('stamina'),
        )
