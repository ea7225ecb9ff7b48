"""
Symmetric Positive-Definite Decompositions

This module provides the factorization strategies used by the WLS estimator
to turn the accumulated information matrix into a parameter estimate.

Each strategy is constructed with the problem dimension and numeric precision
and exposes two operations:
    compute(A): factorize the symmetric matrix A
    backsub(b): solve A @ x = b using the stored factorization

Strategies:
    Cholesky: A = L @ L.T, fails unless A is positive definite
    SQSVD: A = U @ diag(s) @ Vh, pseudo-inverse with a condition threshold
"""

import logging
from typing import Callable, Optional, Protocol, Tuple, runtime_checkable

import numpy as np
from numpy.typing import DTypeLike, NDArray
from scipy.linalg import cho_factor, cho_solve

from .exceptions import DimensionMismatch, NumericalError

logger = logging.getLogger(__name__)


@runtime_checkable
class SPDSolver(Protocol):
    """Interface shared by all decomposition strategies."""

    size: int
    dtype: np.dtype

    def compute(self, matrix: NDArray[np.floating]) -> None: ...

    def backsub(self, vector: NDArray[np.floating]) -> NDArray[np.floating]: ...


# Anything called as factory(size, dtype) that returns an SPDSolver
DecompositionFactory = Callable[[int, DTypeLike], SPDSolver]


def _check_size(size: int) -> int:
    if size < 1:
        raise ValueError("Decomposition size must be at least 1")
    return int(size)


class Cholesky:
    """
    Cholesky decomposition of a symmetric positive-definite matrix.

    The factorization is done by LAPACK through scipy.linalg.cho_factor and
    only the lower triangle of the input is referenced.

    Attributes:
        size: Dimension of the square matrices this decomposition accepts
        dtype: Floating point precision of the factor and of the solutions
    """

    def __init__(self, size: int, dtype: DTypeLike = np.float64):
        self.size = _check_size(size)
        self.dtype = np.dtype(dtype)
        self._factor: Optional[Tuple[NDArray[np.floating], bool]] = None

    def compute(self, matrix: NDArray[np.floating]) -> None:
        """
        Factorize a matrix, replacing any previous factorization.

        Args:
            matrix: Symmetric positive-definite matrix (size, size)

        Raises:
            DimensionMismatch: If the matrix is not (size, size)
            NumericalError: If the matrix is not positive definite
        """
        mat = np.asarray(matrix, dtype=self.dtype)
        if mat.shape != (self.size, self.size):
            raise DimensionMismatch("matrix", (self.size, self.size), mat.shape)

        self._factor = None
        if not np.all(np.isfinite(mat)):
            raise NumericalError("Matrix contains non-finite values")

        try:
            self._factor = cho_factor(mat, lower=True, check_finite=False)
        except np.linalg.LinAlgError as exc:
            raise NumericalError(f"Matrix is not positive definite: {exc}") from exc

    def backsub(self, vector: NDArray[np.floating]) -> NDArray[np.floating]:
        """
        Solve A @ x = vector with the last computed factorization.

        Args:
            vector: Right-hand side of length size

        Returns:
            Solution x of length size
        """
        vec = np.asarray(vector, dtype=self.dtype)
        if vec.shape != (self.size,):
            raise DimensionMismatch("vector", self.size, vec.shape)
        return self._solve(vec)

    def get_L(self) -> NDArray[np.floating]:
        """Return the lower-triangular factor L with A = L @ L.T."""
        c, _ = self._require_factor()
        return np.tril(c)

    def get_inverse(self) -> NDArray[np.floating]:
        """Return the inverse of the factorized matrix."""
        return self._solve(np.eye(self.size, dtype=self.dtype))

    def get_determinant(self) -> float:
        """Return the determinant of the factorized matrix."""
        c, _ = self._require_factor()
        return float(np.prod(np.diag(c)) ** 2)

    def get_log_determinant(self) -> float:
        """Return log(det(A)), which stays finite where det(A) underflows."""
        c, _ = self._require_factor()
        return float(2.0 * np.sum(np.log(np.diag(c))))

    def mahalanobis(self, vector: NDArray[np.floating]) -> float:
        """Return vector.T @ inv(A) @ vector."""
        vec = np.asarray(vector, dtype=self.dtype)
        return float(vec @ self.backsub(vec))

    def _solve(self, rhs: NDArray[np.floating]) -> NDArray[np.floating]:
        factor = self._require_factor()
        solution = cho_solve(factor, rhs, check_finite=False)
        return solution.astype(self.dtype, copy=False)

    def _require_factor(self) -> Tuple[NDArray[np.floating], bool]:
        if self._factor is None:
            raise NumericalError("No valid factorization; call compute() first")
        return self._factor


class SQSVD:
    """
    Singular value decomposition of a square symmetric matrix.

    Singular values smaller than max(s) / condition are treated as zero, so
    backsub returns the minimum-norm (pseudo-inverse) solution when the
    matrix is singular but not identically zero.

    Attributes:
        size: Dimension of the square matrices this decomposition accepts
        dtype: Floating point precision of the solutions
        condition: Largest condition number kept before truncation
    """

    def __init__(
        self, size: int, dtype: DTypeLike = np.float64, condition: float = 1e9
    ):
        if condition <= 1.0:
            raise ValueError("Condition threshold must be greater than 1")

        self.size = _check_size(size)
        self.dtype = np.dtype(dtype)
        self.condition = condition

        self._U: Optional[NDArray[np.floating]] = None
        self._inv_s: Optional[NDArray[np.floating]] = None
        self._s: Optional[NDArray[np.floating]] = None
        self._Vh: Optional[NDArray[np.floating]] = None

    def compute(self, matrix: NDArray[np.floating]) -> None:
        """
        Factorize a matrix, replacing any previous factorization.

        Args:
            matrix: Symmetric matrix (size, size)

        Raises:
            DimensionMismatch: If the matrix is not (size, size)
            NumericalError: If the matrix is non-finite or identically zero
        """
        mat = np.asarray(matrix, dtype=self.dtype)
        if mat.shape != (self.size, self.size):
            raise DimensionMismatch("matrix", (self.size, self.size), mat.shape)

        self._U = self._s = self._inv_s = self._Vh = None
        if not np.all(np.isfinite(mat)):
            raise NumericalError("Matrix contains non-finite values")

        try:
            U, s, Vh = np.linalg.svd(mat)
        except np.linalg.LinAlgError as exc:
            raise NumericalError(f"SVD did not converge: {exc}") from exc

        # s is sorted in descending order
        if s[0] <= 0.0:
            raise NumericalError("Matrix has no non-zero singular values")

        keep = s > s[0] / self.condition
        inv_s = np.zeros_like(s)
        inv_s[keep] = 1.0 / s[keep]
        if not np.all(keep):
            logger.debug(
                "SQSVD truncated %d of %d singular values",
                int(np.sum(~keep)),
                self.size,
            )

        self._U, self._s, self._inv_s, self._Vh = U, s, inv_s, Vh

    def backsub(self, vector: NDArray[np.floating]) -> NDArray[np.floating]:
        """
        Solve A @ x = vector in the least-squares, minimum-norm sense.

        Args:
            vector: Right-hand side of length size

        Returns:
            Solution x of length size
        """
        vec = np.asarray(vector, dtype=self.dtype)
        if vec.shape != (self.size,):
            raise DimensionMismatch("vector", self.size, vec.shape)
        U, inv_s, Vh = self._require_factor()
        return (Vh.T @ (inv_s * (U.T @ vec))).astype(self.dtype, copy=False)

    def get_inverse(self) -> NDArray[np.floating]:
        """Return the (pseudo-)inverse of the factorized matrix."""
        U, inv_s, Vh = self._require_factor()
        return ((Vh.T * inv_s) @ U.T).astype(self.dtype, copy=False)

    def get_determinant(self) -> float:
        """Return the determinant of the factorized (positive semi-definite) matrix."""
        self._require_factor()
        return float(np.prod(self._s))

    def get_rank(self) -> int:
        """Return the number of singular values kept by the condition threshold."""
        _, inv_s, _ = self._require_factor()
        return int(np.count_nonzero(inv_s))

    def _require_factor(self):
        if self._U is None:
            raise NumericalError("No valid factorization; call compute() first")
        return self._U, self._inv_s, self._Vh
