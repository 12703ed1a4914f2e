#!/usr/bin/env python3
"""Run the tree/deer/wolf simulation from YAML configuration.

Loads a base config (plus optional scenario override), runs the driver
for the requested number of years, prints a yearly table and a summary,
and optionally saves the yearly time series as JSON.

Usage:
    python scripts/run_ecosystem.py
    python scripts/run_ecosystem.py --scenario configs/harsh_winter.yaml --years 50
    python scripts/run_ecosystem.py --seed 7 --output results/run_seed7.json -v
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from ecosim.config import load_config
from ecosim.model import SimulationResult, run_simulation

DEFAULT_CONFIG = PROJECT_ROOT / "configs" / "default.yaml"


def result_to_json(result: SimulationResult) -> dict:
    """Plain-data view of a SimulationResult for json.dump."""
    return {
        'n_years': result.n_years,
        'years': result.years.tolist(),
        'trees': result.yearly_trees.tolist(),
        'deer': result.yearly_deer.tolist(),
        'wolves': result.yearly_wolves.tolist(),
        'tree_mean_age': result.yearly_tree_mean_age.tolist(),
        'deer_mean_age': result.yearly_deer_mean_age.tolist(),
        'wolf_mean_age': result.yearly_wolf_mean_age.tolist(),
        'mean_tree_height': result.yearly_mean_tree_height.tolist(),
        'deaths': {
            species: {cause: arr.tolist() for cause, arr in causes.items()}
            for species, causes in result.yearly_deaths.items()
        },
        'deer_extinction_year': result.deer_extinction_year,
        'wolf_extinction_year': result.wolf_extinction_year,
        'summary': result.summary,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Run the tree/deer/wolf ecosystem simulation.",
    )
    parser.add_argument(
        "--config", type=str, default=str(DEFAULT_CONFIG),
        help="Base config YAML (default: configs/default.yaml)",
    )
    parser.add_argument(
        "--scenario", type=str, default=None,
        help="Scenario override YAML",
    )
    parser.add_argument(
        "--years", type=int, default=None,
        help="Years to simulate (default: from config)",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Override the random seed",
    )
    parser.add_argument(
        "--output", type=str, default=None,
        help="Write the yearly time series to this JSON file",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Log per-phase details",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {}
    if args.seed is not None:
        overrides['simulation'] = {'seed': args.seed}
    cfg = load_config(args.config, args.scenario, overrides or None)

    result = run_simulation(cfg, n_years=args.years)

    print("=" * 44)
    print(f"{'year':>6} {'trees':>10} {'deer':>10} {'wolves':>10}")
    print("-" * 44)
    for i in range(result.n_years):
        print(f"{result.years[i]:>6} {result.yearly_trees[i]:>10} "
              f"{result.yearly_deer[i]:>10} {result.yearly_wolves[i]:>10}")
    print("=" * 44)
    for species, stats in result.summary.items():
        print(f"{species:>7}: peak {stats['peak']} (year {stats['peak_year']}), "
              f"average {stats['average']:.1f}, final {stats['final']}")

    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        with open(out, 'w') as f:
            json.dump(result_to_json(result), f, indent=2)
        print(f"Saved: {out}")


if __name__ == "__main__":
    main()
