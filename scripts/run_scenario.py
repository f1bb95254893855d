#!/usr/bin/env python3
"""Run SIRV-ABM scenarios headless from YAML configuration files.

Loads configs/default.yaml, merges each scenario file over it, runs the
model for a fixed number of ticks (optionally several replicate seeds) and
saves the per-tick counts and significant points as JSON.

Usage:
    python scripts/run_scenario.py configs/scenarios/quarantine.yaml
    python scripts/run_scenario.py configs/scenarios/*.yaml --ticks 300 --replicates 5
    python scripts/run_scenario.py configs/scenarios/departments.yaml --dry-run
"""

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from sirv_abm.config import config_to_dict, load_config
from sirv_abm.model import run_simulation

logger = logging.getLogger("run_scenario")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_BASE = PROJECT_ROOT / "configs" / "default.yaml"


# ═══════════════════════════════════════════════════════════════════════
# SCENARIO RUNNER
# ═══════════════════════════════════════════════════════════════════════

def _summarize(values: List[Optional[int]]) -> Dict[str, Any]:
    reached = [v for v in values if v is not None]
    if not reached:
        return {'reached': 0, 'mean_tick': None}
    return {'reached': len(reached), 'mean_tick': float(np.mean(reached))}


def run_scenario_file(
    scenario_path: Path,
    base_path: Path,
    n_ticks: int,
    replicates: int,
    output_dir: Path,
    seed: Optional[int] = None,
    dry_run: bool = False,
) -> Optional[Dict[str, Any]]:
    """Run one scenario file and write <output_dir>/<stem>.json.

    Replicate r uses seed + r, where seed defaults to the scenario's
    simulation.seed.

    Returns:
        Summary dict, or None for a dry run.
    """
    config = load_config(base_path, scenario_path)
    base_seed = config.simulation.seed if seed is None else seed
    name = scenario_path.stem

    logger.info("Scenario %s: %d agents, %d ticks, %d replicate(s), seed %d",
                name, config.simulation.population_size, n_ticks, replicates, base_seed)
    if dry_run:
        print(json.dumps(config_to_dict(config), indent=2))
        return None

    runs = []
    t0 = time.perf_counter()
    for r in range(replicates):
        result = run_simulation(config, n_ticks=n_ticks, seed=base_seed + r)
        runs.append(result.as_dict())
        logger.info("  replicate %d: peak I=%d at tick %d, final population %d",
                    r, result.peak_infectious, result.peak_infectious_tick,
                    result.final_population)
    wall = time.perf_counter() - t0

    summary = {
        'scenario': name,
        'n_ticks': n_ticks,
        'replicates': replicates,
        'wall_s': round(wall, 3),
        'peak_infectious_mean': float(np.mean([run['peak_infectious'] for run in runs])),
        'breaking': _summarize([run['breaking_tick'] for run in runs]),
        'recovery': _summarize([run['recovery_tick'] for run in runs]),
        'survival': _summarize([run['survival_tick'] for run in runs]),
    }

    output_dir.mkdir(parents=True, exist_ok=True)
    out_file = output_dir / f"{name}.json"
    with open(out_file, 'w') as f:
        json.dump({'config': config_to_dict(config), 'summary': summary, 'runs': runs},
                  f, indent=2)
    logger.info("Saved %s (%.2fs)", out_file, wall)
    return summary


# ═══════════════════════════════════════════════════════════════════════
# CLI
# ═══════════════════════════════════════════════════════════════════════

def main():
    parser = argparse.ArgumentParser(
        description="Run SIRV-ABM scenarios from YAML config files.",
        epilog="Example: python scripts/run_scenario.py configs/scenarios/quarantine.yaml",
    )
    parser.add_argument(
        "scenarios", nargs="+",
        help="YAML scenario file(s) merged over the base config",
    )
    parser.add_argument(
        "--base-config", type=str, default=str(DEFAULT_BASE),
        help="Base config YAML (default: configs/default.yaml)",
    )
    parser.add_argument(
        "--ticks", type=int, default=200,
        help="Ticks (days) per run (default: 200)",
    )
    parser.add_argument(
        "--replicates", type=int, default=1,
        help="Replicate runs per scenario, seeds seed..seed+n-1 (default: 1)",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Override the scenario seed",
    )
    parser.add_argument(
        "--output-dir", type=str, default="results",
        help="Directory for JSON output (default: results)",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Print the merged config without running",
    )
    parser.add_argument(
        "--quiet", action="store_true",
        help="Only log warnings and errors",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    summaries = []
    for scenario in args.scenarios:
        path = Path(scenario)
        if not path.exists():
            logger.warning("File not found: %s", path)
            continue
        summary = run_scenario_file(
            scenario_path=path,
            base_path=Path(args.base_config),
            n_ticks=args.ticks,
            replicates=args.replicates,
            output_dir=Path(args.output_dir),
            seed=args.seed,
            dry_run=args.dry_run,
        )
        if summary is not None:
            summaries.append(summary)

    if len(summaries) > 1:
        logger.info("Ran %d scenarios", len(summaries))


if __name__ == "__main__":
    main()
