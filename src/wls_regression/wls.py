"""
Incremental Weighted Least Squares (WLS) Estimator

This module accumulates the normal equations of a linear (or linearized)
least-squares problem one measurement at a time and solves them on demand.

Model: m_i = J_i @ x + noise_i,   noise_i ~ N(0, 1 / w_i)
where:
    m_i: scalar measurement
    J_i: Jacobian row (d,)
    w_i: measurement weight (inverse variance)
    x: parameter vector to be estimated

Only the sufficient statistics are kept:
    C_inv = sum_i w_i * J_i @ J_i.T + priors    (information matrix, d x d)
    vector = sum_i w_i * m_i * J_i              (information vector, d)

so memory and update cost are independent of the number of measurements.
The estimate solves C_inv @ mu = vector. Estimators built on separate shards
of the data can be merged by adding their statistics.
"""

import logging
from functools import lru_cache
from typing import Optional, Type, Union

import numpy as np
from numpy.typing import ArrayLike, DTypeLike, NDArray

from .decomposition import Cholesky, DecompositionFactory, SPDSolver
from .exceptions import DimensionMismatch, NumericalError

logger = logging.getLogger(__name__)


class WLS:
    """
    Weighted least squares estimator with pluggable SPD decomposition.

    Example usage:
        wls = WLS(3)
        wls.add_prior(1e-6)

        for m, J, w in measurements:
            wls.add_mJ(m, J, w)

        wls.compute()
        x = wls.get_mu()

    Instances cannot be copied with copy.copy / copy.deepcopy, since the
    statistics are mutable O(d^2) state. Pass references instead.

    Attributes:
        SIZE: Dimension fixed by the class (see WLS.fixed), None if dynamic
        C_inv: Information (inverse covariance) matrix (d, d)
        vector: Information vector (d,)
        mu: Parameter estimate from the last successful compute() (d,)
        decomposition: Decomposition used by compute()
    """

    SIZE: Optional[int] = None

    def __init__(
        self,
        size: Optional[int] = None,
        dtype: DTypeLike = np.float64,
        decomposition: DecompositionFactory = Cholesky,
    ):
        """
        Initialize the estimator with all statistics set to zero.

        Args:
            size: Number of parameters. Required unless the class has a fixed
                  SIZE, in which case it may be omitted or must match.
            dtype: Floating point precision of all internal arrays
            decomposition: Class or factory called as decomposition(size, dtype)
                           returning the solver used by compute()
        """
        if self.SIZE is not None:
            if size is not None and size != self.SIZE:
                raise DimensionMismatch("size", self.SIZE, size)
            size = self.SIZE
        elif size is None:
            raise ValueError("Size is required for a dynamically sized estimator")

        if size < 1:
            raise ValueError("Size must be at least 1")

        dtype = np.dtype(dtype)
        if not np.issubdtype(dtype, np.floating):
            raise ValueError(f"Precision must be a floating point type, got {dtype}")

        self._size = int(size)
        self._dtype = dtype

        self.C_inv: NDArray[np.floating] = np.zeros(
            (self._size, self._size), dtype=dtype
        )
        self.vector: NDArray[np.floating] = np.zeros(self._size, dtype=dtype)
        self._decomposition_factory = decomposition
        self.decomposition: SPDSolver = decomposition(self._size, dtype)
        self.mu: NDArray[np.floating] = np.zeros(self._size, dtype=dtype)

    @classmethod
    def fixed(cls, size: int) -> Type["WLS"]:
        """
        Return a subclass whose dimension is fixed to size.

        The subclass is cached, so WLS.fixed(3) is WLS.fixed(3).

        Args:
            size: Number of parameters

        Returns:
            Estimator class constructible without a size argument
        """
        return _fixed_class(cls, int(size))

    @property
    def size(self) -> int:
        """Number of parameters."""
        return self._size

    @property
    def dtype(self) -> np.dtype:
        """Precision of the internal arrays."""
        return self._dtype

    @property
    def decomposition_factory(self) -> DecompositionFactory:
        """Factory the decomposition was built with."""
        return self._decomposition_factory

    def clear(self) -> None:
        """Discard all priors and measurements."""
        self.C_inv[...] = 0.0
        self.vector[...] = 0.0

    def add_prior(self, val: Union[float, ArrayLike]) -> None:
        """
        Add a zero-mean Gaussian prior on the parameters.

        Args:
            val: Prior strength. Either
                 - a scalar v: every parameter has variance 1/v
                 - a vector v (d,): parameter i has variance 1/v[i]
                 - a matrix M (d, d): inverse covariance added as a whole,
                   assumed symmetric positive semi-definite
        """
        prior = np.asarray(val, dtype=self._dtype)

        if prior.ndim == 0:
            self.C_inv[np.diag_indices(self._size)] += prior
        elif prior.ndim == 1:
            if prior.shape != (self._size,):
                raise DimensionMismatch("prior vector", self._size, prior.shape[0])
            self.C_inv[np.diag_indices(self._size)] += prior
        elif prior.ndim == 2:
            if prior.shape != self.C_inv.shape:
                raise DimensionMismatch("prior matrix", self.C_inv.shape, prior.shape)
            self.C_inv += prior
        else:
            raise DimensionMismatch("prior", self.C_inv.shape, prior.shape)

    def add_measurement(
        self, value: float, jacobian: ArrayLike, weight: float = 1.0
    ) -> None:
        """
        Add a single scalar measurement.

        Args:
            value: The measured value m
            jacobian: Jacobian row dm/dx (d,)
            weight: Inverse variance of the measurement (default = 1)
        """
        if np.ndim(value) != 0:
            raise DimensionMismatch("value", (), np.shape(value))
        if np.ndim(weight) != 0:
            raise DimensionMismatch("weight", (), np.shape(weight))

        J = np.ravel(np.asarray(jacobian, dtype=self._dtype))
        if J.shape != (self._size,):
            raise DimensionMismatch("jacobian", self._size, J.shape[0])

        Jw = J * weight
        self.C_inv += np.outer(Jw, J)
        self.vector += value * Jw

    def add_measurements(
        self,
        values: ArrayLike,
        jacobian: ArrayLike,
        invcov: ArrayLike,
    ) -> None:
        """
        Add N jointly distributed measurements at once.

        Equivalent to N single measurements when invcov is diagonal, but
        also handles correlated measurement noise.

        Args:
            values: Measurements (N,)
            jacobian: Jacobian matrix dm_j/dx_i (d, N), one column per measurement
            invcov: Inverse covariance of the measurements (N, N)
        """
        m = np.asarray(values, dtype=self._dtype)
        J = np.asarray(jacobian, dtype=self._dtype)
        W = np.asarray(invcov, dtype=self._dtype)

        if J.ndim != 2 or J.shape[0] != self._size:
            raise DimensionMismatch("jacobian", (self._size, "N"), J.shape)
        n = J.shape[1]
        if W.shape != (n, n):
            raise DimensionMismatch("invcov", (n, n), W.shape)
        if m.shape != (n,):
            raise DimensionMismatch("values", n, m.shape)

        temp = J @ W
        self.C_inv += temp @ J.T
        self.vector += temp @ m

    def add_mJ(
        self,
        m: Union[float, ArrayLike],
        J: ArrayLike,
        weight: Union[float, ArrayLike] = 1.0,
    ) -> None:
        """
        Add measurements, dispatching on the shape of m.

        A scalar m is a single measurement with Jacobian row J and weight.
        A vector m is a batch of measurements with Jacobian matrix J (d, N)
        and the third argument is their inverse covariance (N, N).
        """
        if np.ndim(m) == 0:
            self.add_measurement(float(m), J, weight)
        else:
            self.add_measurements(m, J, weight)

    def combine(self, other: "WLS") -> None:
        """
        Merge the measurements of another estimator into this one.

        Args:
            other: Estimator of the same dimension; it is not modified
        """
        if not isinstance(other, WLS):
            raise TypeError(f"Cannot combine WLS with {type(other).__name__}")
        if other.size != self._size:
            raise DimensionMismatch("estimator", self._size, other.size)

        self.vector += other.vector
        self.C_inv += other.C_inv
        logger.debug("Combined %d-dimensional WLS statistics", self._size)

    def __iadd__(self, other: "WLS") -> "WLS":
        self.combine(other)
        return self

    def compute(self) -> None:
        """
        Solve the accumulated normal equations C_inv @ mu = vector.

        The result is stored internally and can be accessed with get_mu().
        On failure the previous estimate is left in place, but it no longer
        reflects the accumulated measurements.

        Raises:
            NumericalError: If the information matrix cannot be factorized
        """
        logger.debug(
            "Solving %d-dimensional WLS system with %s",
            self._size,
            type(self.decomposition).__name__,
        )
        try:
            self.decomposition.compute(self.C_inv)
        except np.linalg.LinAlgError as exc:
            logger.warning("Information matrix could not be factorized: %s", exc)
            if isinstance(exc, NumericalError):
                raise
            raise NumericalError(str(exc)) from exc

        self.mu[...] = self.decomposition.backsub(self.vector)

    def get_C_inv(self) -> NDArray[np.floating]:
        """Return the information matrix (live array)."""
        return self.C_inv

    def get_vector(self) -> NDArray[np.floating]:
        """Return the information vector (live array)."""
        return self.vector

    def get_mu(self) -> NDArray[np.floating]:
        """Return the estimate from the last compute() (live array)."""
        return self.mu

    def get_decomposition(self) -> SPDSolver:
        """Return the decomposition used by compute()."""
        return self.decomposition

    def get_covariance(self) -> NDArray[np.floating]:
        """Return inv(C_inv) from the last compute(), the covariance of mu."""
        return self.decomposition.get_inverse()

    def __copy__(self):
        raise TypeError(f"{type(self).__name__} instances cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError(f"{type(self).__name__} instances cannot be copied")

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(size={self._size}, dtype={self._dtype.name}, "
            f"decomposition={type(self.decomposition).__name__})"
        )


@lru_cache(maxsize=None)
def _fixed_class(base: Type[WLS], size: int) -> Type[WLS]:
    if size < 1:
        raise ValueError("Size must be at least 1")
    return type(
        f"{base.__name__}{size}",
        (base,),
        {"SIZE": size, "__doc__": f"{base.__name__} with dimension fixed to {size}."},
    )
