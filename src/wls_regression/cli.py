#!/usr/bin/env python3
"""
Command-line WLS estimation from a JSON measurement set.

The measurements are split into shards, each shard is accumulated into its
own estimator, the estimators are merged and the merged system is solved.

Usage:
    wls-estimate measurements.json
    wls-estimate measurements.json --shards 4 --decomposition sqsvd
"""

import argparse
import logging
import sys
from typing import List, Optional

import numpy as np

from .batch import combine_estimators
from .data_loader import MeasurementSet, load_measurements
from .decomposition import SQSVD, Cholesky, DecompositionFactory
from .exceptions import DimensionMismatch, NumericalError
from .wls import WLS

logger = logging.getLogger(__name__)

DECOMPOSITIONS = {
    "cholesky": Cholesky,
    "sqsvd": SQSVD,
}

PRECISIONS = {
    "float64": np.float64,
    "float32": np.float32,
}


def format_params(params: np.ndarray, name: str) -> str:
    """Format parameters for display."""
    lines = [f"{name}:"]
    for i, val in enumerate(params):
        lines.append(f"  θ{i + 1:2d}: {val:12.6f}")
    return "\n".join(lines)


def run_sharded(
    measurement_set: MeasurementSet,
    n_shards: int = 1,
    dtype=np.float64,
    decomposition: DecompositionFactory = Cholesky,
) -> WLS:
    """
    Accumulate each shard separately and merge the partial estimators.

    Args:
        measurement_set: Prior and measurements to accumulate
        n_shards: Number of independent partial estimators
        dtype: Precision of the estimators
        decomposition: Decomposition of the merged estimator

    Returns:
        Merged estimator (not yet computed)
    """
    partials: List[WLS] = []
    for i, shard in enumerate(measurement_set.shard(n_shards)):
        wls = WLS(measurement_set.size, dtype=dtype, decomposition=decomposition)
        shard.accumulate(wls)
        logger.debug("Shard %d: %d measurement entries", i, len(shard.measurements))
        partials.append(wls)

    return combine_estimators(partials)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Weighted least squares estimate from a JSON measurement set"
    )
    parser.add_argument("path", help="JSON measurement set")
    parser.add_argument(
        "--shards",
        type=int,
        default=1,
        help="Number of partial estimators to accumulate and merge (default: 1)",
    )
    parser.add_argument(
        "--decomposition",
        choices=sorted(DECOMPOSITIONS),
        default="cholesky",
        help="Decomposition used for the solve (default: cholesky)",
    )
    parser.add_argument(
        "--precision",
        choices=sorted(PRECISIONS),
        default="float64",
        help="Floating point precision (default: float64)",
    )
    parser.add_argument(
        "--prior",
        type=float,
        default=0.0,
        help="Extra constant prior added to every parameter (default: 0.0)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.shards < 1:
        parser.error("--shards must be at least 1")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s",
    )

    try:
        measurement_set = load_measurements(args.path)
    except (OSError, ValueError) as exc:
        print(f"ERROR: Could not load {args.path}: {exc}", file=sys.stderr)
        return 1

    logger.info(
        "Loaded %d measurement entries (size=%d) from %s",
        len(measurement_set.measurements),
        measurement_set.size,
        args.path,
    )

    print("=" * 60)
    print("Weighted Least Squares Estimation")
    print("=" * 60)
    print(f"Shards: {args.shards}")
    print(f"Decomposition: {args.decomposition}")
    print(f"Precision: {args.precision}")

    try:
        wls = run_sharded(
            measurement_set,
            n_shards=args.shards,
            dtype=PRECISIONS[args.precision],
            decomposition=DECOMPOSITIONS[args.decomposition],
        )
        if args.prior:
            wls.add_prior(args.prior)
        wls.compute()
    except DimensionMismatch as exc:
        print(f"ERROR: Inconsistent measurement set: {exc}", file=sys.stderr)
        return 1
    except NumericalError as exc:
        print(f"ERROR: Could not solve the normal equations: {exc}", file=sys.stderr)
        print("Hint: add a prior with --prior", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"ERROR: Invalid measurement set: {exc}", file=sys.stderr)
        return 1

    estimate = wls.get_mu()
    print("\n" + format_params(estimate, "WLS estimate"))

    if measurement_set.ground_truth is not None:
        print("\n" + format_params(measurement_set.ground_truth, "Ground Truth"))
        error = np.linalg.norm(estimate - measurement_set.ground_truth)
        print(f"\n  ||error|| = {error:.6e}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
