"""Shared fixtures: scripted random sources and small configurations."""

from typing import Optional, Sequence

import pytest

from ecosim.config import SimulationConfig, default_config
from ecosim.rng import NumpyRandomSource


class ScriptedRandomSource:
    """RandomSource that replays fixed values.

    ``uniform()`` cycles through ``uniforms``. ``gaussian()`` returns the
    mean unless ``gaussians`` is given, in which case it cycles through
    those values.
    """

    def __init__(self, uniforms: Sequence[float] = (0.5,),
                 gaussians: Optional[Sequence[float]] = None):
        self.uniforms = list(uniforms)
        self.gaussians = list(gaussians) if gaussians is not None else None
        self.n_uniform = 0
        self.n_gaussian = 0

    def uniform(self) -> float:
        value = self.uniforms[self.n_uniform % len(self.uniforms)]
        self.n_uniform += 1
        return value

    def gaussian(self, mean: float, stddev: float) -> float:
        if self.gaussians is None:
            return float(mean)
        value = self.gaussians[self.n_gaussian % len(self.gaussians)]
        self.n_gaussian += 1
        return value


@pytest.fixture
def constant_rng() -> ScriptedRandomSource:
    """uniform() == 0.5, gaussian() == mean."""
    return ScriptedRandomSource()


@pytest.fixture
def zero_rng() -> ScriptedRandomSource:
    """uniform() == 0.0: every probability check succeeds."""
    return ScriptedRandomSource(uniforms=(0.0,))


@pytest.fixture
def seeded_rng() -> NumpyRandomSource:
    return NumpyRandomSource(12345)


def make_small_config(seed: int = 123) -> SimulationConfig:
    cfg = default_config()
    cfg.simulation.grid_size = 400
    cfg.simulation.years = 5
    cfg.simulation.stabilization_years = 2
    cfg.simulation.seed = seed
    cfg.trees.initial = 200
    cfg.trees.array_size = 400
    cfg.deer.initial = 10
    cfg.deer.array_size = 50
    cfg.wolves.initial = 3
    cfg.wolves.array_size = 20
    return cfg


@pytest.fixture
def small_config() -> SimulationConfig:
    return make_small_config()
