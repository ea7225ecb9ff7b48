# wls_regression package
"""
Incremental Weighted Least Squares Package

This package provides:
- WLS estimator accumulating information matrix / vector from measurements
- Pluggable SPD decompositions (Cholesky, SQSVD) for the solve step
- Batch helpers for one-shot solves and merging sharded estimators
- JSON measurement-set loading
"""

from .exceptions import DimensionMismatch, NumericalError
from .decomposition import SPDSolver, Cholesky, SQSVD
from .wls import WLS
from .batch import solve_wls_batch, combine_estimators
from .data_loader import (
    Measurement,
    MeasurementBatch,
    MeasurementSet,
    load_measurements,
)

__all__ = [
    # Errors
    "DimensionMismatch",
    "NumericalError",
    # Decompositions
    "SPDSolver",
    "Cholesky",
    "SQSVD",
    # Estimator
    "WLS",
    # Batch
    "solve_wls_batch",
    "combine_estimators",
    # Data
    "Measurement",
    "MeasurementBatch",
    "MeasurementSet",
    "load_measurements",
]
