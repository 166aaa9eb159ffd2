#!/usr/bin/env python3
"""
Harmonic Cage - Orchestrator

Compute coordinate fields for one or more cages and save them with metadata.

Usage:
    python src/run_all.py --unit-cube --resolution 9 9 9
    python src/run_all.py --cage cages/a.json cages/b.json --tau 1e-7 --solver basic
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple
from datetime import datetime

# Add src to path
sys.path.insert(0, str(Path(__file__).parent))

from common.cage import Cage, box_cage
from common.config import Config, Solver
from common.io import load_cage, save_field
from harmonic_coords.build import build_harmonic_coordinates

logger = logging.getLogger(__name__)


def collect_cages(cage_paths: List[Path], unit_cube: bool) -> List[Tuple[str, Optional[Path]]]:
    """
    List (cage_id, path) jobs; path is None for the built-in unit cube.
    """
    jobs = [(p.stem, p) for p in cage_paths]
    if unit_cube:
        jobs.append(("unit_cube", None))
    logger.info(f"Found {len(jobs)} cages")
    return jobs


def run_cage(cage_id: str, cage: Cage, config: Config) -> dict:
    """Build and save the field for one cage."""
    field = build_harmonic_coordinates(cage, config, cage_id=cage_id)
    output_path = config.get_output_path(cage_id)
    save_field(field.grid, output_path, field.metadata)
    return {
        "status": "success",
        "output": str(output_path),
        **field.summary()
    }


def run_all(jobs: List[Tuple[str, Optional[Path]]], config: Config) -> dict:
    """
    Run the pipeline on every cage.

    Args:
        jobs: (cage_id, path) pairs from collect_cages
        config: Configuration

    Returns:
        Summary dictionary
    """
    summary = {
        "timestamp": datetime.now().isoformat(),
        "config": config.to_dict(),
        "cages": [],
        "errors": []
    }

    for cage_id, path in jobs:
        logger.info(f"\n{'='*60}")
        logger.info(f"Processing: {cage_id}")
        logger.info(f"{'='*60}")

        try:
            cage = box_cage() if path is None else load_cage(path)
            result = run_cage(cage_id, cage, config)
            if not result["converged"]:
                logger.warning(f"{cage_id}: field did not converge")
        except Exception as e:
            logger.error(f"Cage {cage_id} failed: {e}")
            result = {"status": "error", "error": str(e)}
            summary["errors"].append({"cage": cage_id, "error": str(e)})

        summary["cages"].append({"cage_id": cage_id, **result})

    return summary


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Harmonic Cage - compute voxel harmonic coordinates for quad cages"
    )
    parser.add_argument(
        "--cage", "-c",
        type=Path,
        nargs="+",
        default=[],
        help="Cage JSON files to process"
    )
    parser.add_argument(
        "--unit-cube",
        action="store_true",
        help="Also process the built-in unit cube cage"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config JSON file (flags below override it)"
    )
    parser.add_argument(
        "--resolution", "-r",
        type=int,
        nargs=3,
        default=None,
        metavar=("X", "Y", "Z"),
        help="Grid cells per axis"
    )
    parser.add_argument(
        "--tau", "-t",
        type=float,
        default=None,
        help="Convergence threshold (mean absolute change per scalar)"
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Relaxation iteration cap"
    )
    parser.add_argument(
        "--solver", "-s",
        choices=[s.value for s in Solver],
        default=None,
        help="Relaxation update method"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        help="Output directory"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging"
    )

    args = parser.parse_args(argv)

    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    # Build config
    config = Config.from_json(args.config) if args.config else Config()
    config = config.replace(
        resolution=tuple(args.resolution) if args.resolution else None,
        tau=args.tau,
        max_iterations=args.max_iterations,
        solver=args.solver,
        output_dir=args.output
    )

    jobs = collect_cages(args.cage, args.unit_cube)
    if not jobs:
        logger.error("No cages given! Use --cage or --unit-cube")
        return 1

    logger.info(f"Processing {len(jobs)} cages at resolution {config.resolution}")
    logger.info(f"Output: {config.output_dir}")

    summary = run_all(jobs, config)

    # Save summary
    summary_path = config.output_dir / "run_summary.json"
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    with open(summary_path, 'w') as f:
        json.dump(summary, f, indent=2)

    logger.info(f"\nSummary saved to: {summary_path}")

    n_success = sum(1 for c in summary["cages"] if c.get("status") == "success")
    n_errors = len(summary["errors"])

    logger.info(f"\n{'='*60}")
    logger.info(f"COMPLETE: {n_success} successful, {n_errors} errors")
    logger.info(f"{'='*60}")

    return 1 if n_errors > 0 else 0


if __name__ == "__main__":
    sys.exit(main())
