"""Tests for the batch WLS helpers."""

import functools

import numpy as np
import pytest

from wls_regression import (
    WLS,
    SQSVD,
    Cholesky,
    DimensionMismatch,
    combine_estimators,
    solve_wls_batch,
)


def _generate_example(n_samples=120, seed=42):
    rng = np.random.default_rng(seed)
    x_true = np.array([2.5, -1.3, 0.8])
    t = np.linspace(0, 4 * np.pi, n_samples)
    A = np.column_stack([np.sin(t), np.cos(2 * t), np.ones(n_samples)])
    weights = rng.uniform(0.2, 5.0, size=n_samples)
    y = A @ x_true + rng.normal(size=n_samples) / np.sqrt(weights)
    return A, y, weights, x_true


def test_unweighted_batch_matches_lstsq():
    """Checks unit weights reproduce ordinary least squares."""
    A, y, _, _ = _generate_example()
    expected, *_ = np.linalg.lstsq(A, y, rcond=None)

    assert np.allclose(solve_wls_batch(A, y), expected)


def test_weighted_batch_matches_scaled_lstsq():
    """Checks weights act as inverse variances."""
    A, y, weights, x_true = _generate_example()
    sw = np.sqrt(weights)
    expected, *_ = np.linalg.lstsq(A * sw[:, None], y * sw, rcond=None)

    x = solve_wls_batch(A, y, weights)
    assert np.allclose(x, expected)
    assert np.allclose(x, x_true, atol=0.5)


def test_batch_prior_is_ridge_regression():
    """Checks a scalar prior gives the ridge closed form."""
    A, y, _, _ = _generate_example(n_samples=20)
    lam = 3.0
    expected = np.linalg.solve(A.T @ A + lam * np.eye(3), A.T @ y)

    assert np.allclose(solve_wls_batch(A, y, prior=lam), expected)


def test_batch_with_sqsvd():
    """Checks the batch solve accepts another decomposition."""
    A, y, weights, _ = _generate_example()
    x_chol = solve_wls_batch(A, y, weights, decomposition=Cholesky)
    x_svd = solve_wls_batch(A, y, weights, decomposition=SQSVD)

    assert np.allclose(x_chol, x_svd)


def test_batch_input_validation():
    """Checks mismatched measurement and weight counts are rejected."""
    A, y, weights, _ = _generate_example(n_samples=10)
    with pytest.raises(ValueError):
        solve_wls_batch(A, y[:-1])
    with pytest.raises(ValueError):
        solve_wls_batch(A, y, weights[:-1])


def test_combine_estimators_is_order_independent():
    """Checks merging shards in any order equals one estimator over all data."""
    A, y, weights, _ = _generate_example()

    full = WLS(3)
    for i in range(len(y)):
        full.add_mJ(y[i], A[i], weights[i])

    shards = [WLS(3) for _ in range(4)]
    for i in range(len(y)):
        shards[i % 4].add_mJ(y[i], A[i], weights[i])

    forward = combine_estimators(shards)
    backward = combine_estimators(reversed(shards))

    for merged in (forward, backward):
        assert np.allclose(merged.get_C_inv(), full.get_C_inv())
        assert np.allclose(merged.get_vector(), full.get_vector())

    full.compute()
    forward.compute()
    assert np.allclose(forward.get_mu(), full.get_mu())


def test_combine_estimators_leaves_inputs_untouched():
    """Checks the inputs are not modified and the result is a new estimator."""
    a = WLS(2, decomposition=SQSVD)
    b = WLS(2)
    a.add_prior(1.0)
    b.add_mJ(1.0, np.array([1.0, 2.0]))
    a_C_inv = a.get_C_inv().copy()

    merged = combine_estimators([a, b])

    assert merged is not a
    assert isinstance(merged.get_decomposition(), SQSVD)
    assert np.array_equal(a.get_C_inv(), a_C_inv)
    assert np.allclose(merged.get_C_inv(), a.get_C_inv() + b.get_C_inv())


def test_combine_estimators_keeps_decomposition_settings():
    """Checks the merged estimator reuses the inputs' decomposition factory."""
    factory = functools.partial(SQSVD, condition=1e6)
    shards = [WLS(2, decomposition=factory) for _ in range(2)]
    shards[0].add_mJ(1.0, np.array([1.0, 0.0]))
    shards[1].add_mJ(2.0, np.array([0.0, 1.0]))

    merged = combine_estimators(shards)

    assert merged.decomposition_factory is factory
    assert isinstance(merged.get_decomposition(), SQSVD)
    assert merged.get_decomposition().condition == 1e6

    overridden = combine_estimators(shards, decomposition=Cholesky)
    assert isinstance(overridden.get_decomposition(), Cholesky)



def test_combine_estimators_validation():
    """Checks empty input and mixed dimensions are rejected."""
    with pytest.raises(ValueError):
        combine_estimators([])
    with pytest.raises(DimensionMismatch):
        combine_estimators([WLS(2), WLS(3)])
