"""Configuration system for ecosim.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → programmatic overrides

Sections map 1:1 to YAML top-level keys (``simulation``, ``trees``,
``deer``, ``wolves``). Behavioural factors use a 1–10 scale where 5 is
the baseline.

Invalid values never abort a run: ``validate_config`` clamps them to the
nearest safe value and logs a warning for each adjustment.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Run-level timing and habitat size."""
    grid_size: int = 10000          # habitat cells; also caps tree capacity
    years: int = 100                # ticks for run() / run_simulation()
    stabilization_years: int = 10   # producer-only pre-run ticks
    seed: Optional[int] = 42        # None = fresh entropy


@dataclass
class TreeSection:
    """Producer (tree) parameters."""
    initial: int = 5000
    array_size: int = 10000
    density: int = 15               # max trees per 9×9 cell window
    age_avg: float = 30.0
    age_sigma: float = 20.0
    maturity: int = 10
    stress_level: float = 20.0      # 0–100
    reproduction_factor: float = 5.0
    edible_age: int = 4             # deer eat trees with age <= edible_age


@dataclass
class ConsumerSection:
    """Shared parameters for deer and wolves."""
    initial: int = 20
    array_size: int = 200
    maturity: float = 2.0
    stamina_factor: float = 5.0
    hunger_factor: float = 2.0
    reproduction_factor: float = 5.0
    migration_factor: float = 5.0


def _default_deer() -> ConsumerSection:
    return ConsumerSection(initial=20, array_size=200, hunger_factor=2.0)


def _default_wolves() -> ConsumerSection:
    return ConsumerSection(initial=5, array_size=100, hunger_factor=1.0)


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    trees: TreeSection = field(default_factory=TreeSection)
    deer: ConsumerSection = field(default_factory=_default_deer)
    wolves: ConsumerSection = field(default_factory=_default_wolves)

    def as_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict, defaults: Any = None) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys.

    Fields missing from ``data`` fall back to ``defaults`` when given,
    otherwise to the dataclass defaults.
    """
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    unknown = set(data) - valid_fields
    if unknown:
        logger.warning("Ignoring unknown %s keys: %s",
                       section_cls.__name__, sorted(unknown))
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    if defaults is not None:
        return dataclasses.replace(defaults, **filtered)
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    base = SimulationConfig()
    sections = {}
    section_map = {
        'simulation': SimulationSection,
        'trees': TreeSection,
        'deer': ConsumerSection,
        'wolves': ConsumerSection,
    }
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key], getattr(base, key))
        else:
            sections[key] = getattr(base, key)
    return SimulationConfig(**sections)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION (clamping)
# ═══════════════════════════════════════════════════════════════════════

def _clamp(section: Any, name: str, path: str, lo=None, hi=None,
           adjustments: Optional[List[str]] = None) -> None:
    value = getattr(section, name)
    new = value
    if lo is not None and new < lo:
        new = lo
    if hi is not None and new > hi:
        new = hi
    if new != value:
        setattr(section, name, new)
        msg = f"{path}.{name}: {value!r} clamped to {new!r}"
        logger.warning("Config %s", msg)
        if adjustments is not None:
            adjustments.append(msg)


def validate_config(config: SimulationConfig) -> List[str]:
    """Clamp configuration values to safe ranges. Modifies config in place.

    Checks:
      - Positive grid size, non-negative year counts
      - Non-negative populations; capacities hold at least the initial
        population and at least one slot
      - Tree capacity never exceeds the grid
      - Factors within their 0/1–10 scales

    Returns:
        Human-readable description of every adjustment made (empty when
        the config was already valid).
    """
    adj: List[str] = []
    sim = config.simulation
    _clamp(sim, 'grid_size', 'simulation', lo=1, adjustments=adj)
    _clamp(sim, 'years', 'simulation', lo=1, adjustments=adj)
    _clamp(sim, 'stabilization_years', 'simulation', lo=0, adjustments=adj)
    if sim.seed is not None:
        _clamp(sim, 'seed', 'simulation', lo=0, adjustments=adj)

    t = config.trees
    _clamp(t, 'initial', 'trees', lo=0, adjustments=adj)
    _clamp(t, 'array_size', 'trees', lo=1, hi=sim.grid_size, adjustments=adj)
    _clamp(t, 'density', 'trees', lo=1, adjustments=adj)
    _clamp(t, 'age_avg', 'trees', lo=1.0, adjustments=adj)
    _clamp(t, 'age_sigma', 'trees', lo=0.0, adjustments=adj)
    _clamp(t, 'maturity', 'trees', lo=0, adjustments=adj)
    _clamp(t, 'stress_level', 'trees', lo=0.0, hi=100.0, adjustments=adj)
    _clamp(t, 'reproduction_factor', 'trees', lo=0.0, hi=10.0, adjustments=adj)
    _clamp(t, 'edible_age', 'trees', lo=0, adjustments=adj)

    for name in ('deer', 'wolves'):
        c = getattr(config, name)
        _clamp(c, 'initial', name, lo=0, adjustments=adj)
        _clamp(c, 'array_size', name, lo=max(1, c.initial), adjustments=adj)
        _clamp(c, 'maturity', name, lo=0.0, adjustments=adj)
        _clamp(c, 'stamina_factor', name, lo=1.0, hi=10.0, adjustments=adj)
        _clamp(c, 'hunger_factor', name, lo=0.0, hi=10.0, adjustments=adj)
        _clamp(c, 'reproduction_factor', name, lo=0.0, hi=10.0, adjustments=adj)
        _clamp(c, 'migration_factor', name, lo=0.0, hi=10.0, adjustments=adj)

    return adj


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML (skipped if missing).
        overrides: Optional dict of parameter overrides.

    Returns:
        Validated (clamped) SimulationConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)
        else:
            logger.warning("Scenario file %s not found; using base only",
                           scenario_path)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
