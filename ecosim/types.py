"""Core data types for ecosim.

This module is the SINGLE SOURCE OF TRUTH for:
  - PLANT_DTYPE / ANIMAL_DTYPE: NumPy structured array dtypes for slots
  - DeathCause and SimState enumerations
  - Snapshot data transfer objects (SpeciesSnapshot, TickSnapshot)

Every population is a fixed-capacity structured array. A slot at index
``i`` is occupied iff ``slot_id == i + 1``; an empty slot is the all-zero
record. No other module defines entity fields.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class DeathCause(IntEnum):
    """Cause of death tracking for demographic analysis.

    Trees die of AGE, STRESS, COMPETITION or CONSUMED (eaten by deer).
    Deer and wolves die of AGE, STARVATION or PREDATION (deer only).
    """
    AGE         = 1
    STRESS      = 2
    COMPETITION = 3
    CONSUMED    = 4
    STARVATION  = 5
    PREDATION   = 6
    UNKNOWN     = 7

    @property
    def label(self) -> str:
        return self.name.lower()


class SimState(Enum):
    """Lifecycle states of the simulation driver."""
    UNINITIALIZED = "uninitialized"
    STABILIZING   = "stabilizing"
    RUNNING       = "running"
    PAUSED        = "paused"


# ═══════════════════════════════════════════════════════════════════════
# SLOT DTYPES
# ═══════════════════════════════════════════════════════════════════════

PLANT_DTYPE = np.dtype([
    ('slot_id',   np.int32),     # 0 = empty, else index + 1
    ('age',       np.int32),     # whole years
    ('diameter',  np.float64),   # m, 0.01 per year of age
    ('height',    np.float64),   # m, allometric from diameter
    ('mass',      np.float64),   # edible biomass units, allometric from diameter
])

ANIMAL_DTYPE = np.dtype([
    ('slot_id',   np.int32),     # 0 = empty, else index + 1
    ('age',       np.float64),   # years (fractional for seeded individuals)
    ('mass',      np.float64),   # 7 per year of age, capped
    ('hunger',    np.float64),   # food requirement scale
    ('stamina',   np.float64),   # 0–10 fitness score
])


def allocate_plants(capacity: int) -> np.ndarray:
    """Allocate a zeroed (all slots empty) plant array."""
    return np.zeros(capacity, dtype=PLANT_DTYPE)


def allocate_animals(capacity: int) -> np.ndarray:
    """Allocate a zeroed (all slots empty) animal array."""
    return np.zeros(capacity, dtype=ANIMAL_DTYPE)


# ═══════════════════════════════════════════════════════════════════════
# AGE BRACKETS
# ═══════════════════════════════════════════════════════════════════════

# Lower bracket edges; the last bracket is open-ended.
TREE_AGE_BRACKETS = (0, 3, 11, 31, 61, 101)
ANIMAL_AGE_BRACKETS = (0, 1, 2, 4, 7, 10, 13)


# ═══════════════════════════════════════════════════════════════════════
# SNAPSHOT OBJECTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SpeciesSnapshot:
    """Read-only summary of one population at the end of a tick.

    ``deaths``, ``births`` and ``migrants`` count events since the last
    counter reset (one tick); ``total_deaths`` is cumulative since
    initialization.
    """
    species: str
    alive: int = 0
    capacity: int = 0
    mean_age: float = 0.0
    age_histogram: Dict[str, int] = field(default_factory=dict)
    deaths: Dict[str, int] = field(default_factory=dict)
    total_deaths: Dict[str, int] = field(default_factory=dict)
    births: int = 0
    migrants: int = 0
    mean_height: float = 0.0    # trees only
    young: int = 0              # trees only: age <= 2
    mean_stamina: float = 0.0   # deer / wolves only

    def as_dict(self) -> dict:
        return {
            'species': self.species,
            'alive': self.alive,
            'capacity': self.capacity,
            'mean_age': self.mean_age,
            'age_histogram': dict(self.age_histogram),
            'deaths': dict(self.deaths),
            'total_deaths': dict(self.total_deaths),
            'births': self.births,
            'migrants': self.migrants,
            'mean_height': self.mean_height,
            'young': self.young,
            'mean_stamina': self.mean_stamina,
        }


@dataclass
class TickSnapshot:
    """Per-tick statistics for all three populations."""
    year: int
    trees: SpeciesSnapshot
    deer: SpeciesSnapshot
    wolves: SpeciesSnapshot

    def as_dict(self) -> dict:
        return {
            'year': self.year,
            'trees': self.trees.as_dict(),
            'deer': self.deer.as_dict(),
            'wolves': self.wolves.as_dict(),
        }
