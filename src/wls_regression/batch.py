"""
Batch Helpers for Weighted Least Squares

One-shot entry points built on the incremental WLS estimator:
    solve_wls_batch: estimate from a full regressor matrix
    combine_estimators: merge partial estimators built on separate shards
"""

from typing import Iterable, Optional, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .decomposition import Cholesky, DecompositionFactory
from .wls import WLS


def solve_wls_batch(
    A: NDArray[np.floating],
    y: NDArray[np.floating],
    weights: Optional[NDArray[np.floating]] = None,
    prior: Union[float, ArrayLike] = 0.0,
    decomposition: DecompositionFactory = Cholesky,
) -> NDArray[np.floating]:
    """
    Solve a weighted least squares problem in batch mode.

    Solves: min_x sum_i w_i * (y_i - A_i @ x)^2 + x.T @ P @ x
    where P is the prior (scalar, diagonal or full inverse covariance).

    Args:
        A: Regressor matrix (n_samples, n_params)
        y: Measurement vector (n_samples,)
        weights: Inverse variance of each measurement (n_samples,), default 1
        prior: Prior strength passed to WLS.add_prior
        decomposition: Decomposition used for the solve

    Returns:
        Parameter estimate x
    """
    A = np.asarray(A, dtype=float)
    y = np.asarray(y, dtype=float).flatten()

    if A.ndim == 1:
        A = A.reshape(1, -1)

    if len(y) != A.shape[0]:
        raise ValueError("Number of measurements must match number of rows in A")

    if weights is None:
        weights = np.ones(len(y))
    else:
        weights = np.asarray(weights, dtype=float).flatten()
        if len(weights) != len(y):
            raise ValueError("Number of weights must match number of measurements")

    wls = WLS(A.shape[1], decomposition=decomposition)
    wls.add_prior(prior)

    for i in range(len(y)):
        wls.add_measurement(y[i], A[i], weights[i])

    wls.compute()

    return wls.get_mu().copy()


def combine_estimators(
    estimators: Iterable[WLS],
    decomposition: Optional[DecompositionFactory] = None,
) -> WLS:
    """
    Merge partial estimators into a new one, leaving the inputs untouched.

    The result does not depend on the order or grouping of the inputs.

    Args:
        estimators: Estimators of identical dimension
        decomposition: Decomposition for the merged estimator
                       (default: the factory the first input was built with)

    Returns:
        New estimator holding the summed statistics
    """
    estimators = list(estimators)
    if not estimators:
        raise ValueError("At least one estimator is required")

    first = estimators[0]
    if decomposition is None:
        decomposition = first.decomposition_factory

    merged = WLS(first.size, dtype=first.dtype, decomposition=decomposition)
    for estimator in estimators:
        merged += estimator

    return merged
