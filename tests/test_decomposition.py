"""Tests for the Cholesky and SQSVD decompositions."""

import numpy as np
import pytest

from wls_regression import (
    WLS,
    SQSVD,
    Cholesky,
    DimensionMismatch,
    NumericalError,
    SPDSolver,
)


def _spd_matrix(n, seed=0):
    rng = np.random.default_rng(seed)
    B = rng.normal(size=(n, n))
    return B @ B.T + n * np.eye(n)


@pytest.mark.parametrize("decomposition", [Cholesky, SQSVD])
def test_solves_spd_system(decomposition):
    """Checks backsub solves A @ x = b for a well-conditioned SPD matrix."""
    A = _spd_matrix(5)
    b = np.arange(5, dtype=float)

    solver = decomposition(5)
    solver.compute(A)

    assert isinstance(solver, SPDSolver)
    assert np.allclose(solver.backsub(b), np.linalg.solve(A, b))
    assert np.allclose(solver.get_inverse(), np.linalg.inv(A))
    assert np.isclose(solver.get_determinant(), np.linalg.det(A))


def test_cholesky_factor_and_log_determinant():
    """Checks L @ L.T reproduces A and log-determinant matches slogdet."""
    A = _spd_matrix(4, seed=1)
    chol = Cholesky(4)
    chol.compute(A)

    L = chol.get_L()
    assert np.allclose(L, np.tril(L))
    assert np.allclose(L @ L.T, A)

    sign, logdet = np.linalg.slogdet(A)
    assert sign > 0
    assert np.isclose(chol.get_log_determinant(), logdet)


def test_cholesky_mahalanobis():
    """Checks mahalanobis returns v.T @ inv(A) @ v."""
    A = _spd_matrix(3, seed=2)
    v = np.array([1.0, -2.0, 0.5])
    chol = Cholesky(3)
    chol.compute(A)

    assert np.isclose(chol.mahalanobis(v), v @ np.linalg.solve(A, v))


def test_cholesky_rejects_indefinite_matrix():
    """Checks an indefinite matrix raises NumericalError."""
    chol = Cholesky(2)
    with pytest.raises(NumericalError):
        chol.compute(np.array([[1.0, 2.0], [2.0, 1.0]]))


def test_cholesky_failure_discards_previous_factor():
    """Checks a failed compute() invalidates the earlier factorization."""
    chol = Cholesky(2)
    chol.compute(np.eye(2))
    assert np.allclose(chol.backsub(np.ones(2)), np.ones(2))

    with pytest.raises(NumericalError):
        chol.compute(np.zeros((2, 2)))
    with pytest.raises(NumericalError):
        chol.backsub(np.ones(2))


@pytest.mark.parametrize("decomposition", [Cholesky, SQSVD])
def test_backsub_before_compute(decomposition):
    """Checks solving without a factorization raises NumericalError."""
    with pytest.raises(NumericalError):
        decomposition(2).backsub(np.ones(2))


@pytest.mark.parametrize("decomposition", [Cholesky, SQSVD])
def test_shape_checks(decomposition):
    """Checks matrices and vectors of the wrong size are rejected."""
    solver = decomposition(3)
    with pytest.raises(DimensionMismatch):
        solver.compute(np.eye(2))

    solver.compute(np.eye(3))
    with pytest.raises(DimensionMismatch):
        solver.backsub(np.ones(2))


@pytest.mark.parametrize("decomposition", [Cholesky, SQSVD])
def test_non_finite_matrix(decomposition):
    """Checks NaN entries raise NumericalError."""
    A = np.eye(2)
    A[0, 1] = A[1, 0] = np.nan
    with pytest.raises(NumericalError):
        decomposition(2).compute(A)


def test_sqsvd_pseudo_inverse_of_singular_matrix():
    """Checks SQSVD returns the minimum-norm solution of a rank-1 system."""
    svd = SQSVD(2)
    svd.compute(np.array([[1.0, 1.0], [1.0, 1.0]]))

    assert svd.get_rank() == 1
    assert np.allclose(svd.backsub(np.array([2.0, 2.0])), [1.0, 1.0])
    assert np.allclose(svd.get_inverse(), np.full((2, 2), 0.25))


def test_sqsvd_rejects_zero_matrix():
    """Checks SQSVD refuses a matrix without information."""
    with pytest.raises(NumericalError):
        SQSVD(3).compute(np.zeros((3, 3)))


def test_sqsvd_condition_must_exceed_one():
    """Checks the condition threshold is validated."""
    with pytest.raises(ValueError):
        SQSVD(2, condition=1.0)


def test_size_must_be_positive():
    """Checks decompositions need at least one dimension."""
    with pytest.raises(ValueError):
        Cholesky(0)


def test_underdetermined_wls_with_each_decomposition():
    """Checks Cholesky fails where SQSVD still returns a minimum-norm estimate."""
    chol_wls = WLS(2)
    svd_wls = WLS(2, decomposition=SQSVD)
    for wls in (chol_wls, svd_wls):
        wls.add_mJ(2.0, np.array([1.0, 1.0]))

    with pytest.raises(NumericalError):
        chol_wls.compute()

    svd_wls.compute()
    assert np.allclose(svd_wls.get_mu(), [1.0, 1.0])


def test_single_precision_factorization():
    """Checks float32 decompositions return float32 solutions."""
    A = _spd_matrix(3).astype(np.float32)
    b = np.ones(3, dtype=np.float32)
    for decomposition in (Cholesky, SQSVD):
        solver = decomposition(3, np.float32)
        solver.compute(A)
        x = solver.backsub(b)
        assert x.dtype == np.float32
        assert np.allclose(x, np.linalg.solve(A.astype(float), b), atol=1e-4)
