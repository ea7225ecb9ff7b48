"""
Error Types for Weighted Least Squares Estimation

Two failure categories are distinguished:
    DimensionMismatch: an input disagrees with the estimator dimension.
                       Always raised before any state is modified.
    NumericalError: the information matrix could not be factorized
                    (not positive definite).
"""

from typing import Any

import numpy as np


class DimensionMismatch(ValueError):
    """
    Raised when a vector, matrix or estimator has the wrong size.

    Attributes:
        expected: Size or shape the estimator requires
        actual: Size or shape that was supplied
    """

    def __init__(self, name: str, expected: Any, actual: Any):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(f"{name} must have size {expected}, got {actual}")


class NumericalError(np.linalg.LinAlgError):
    """Raised when the information matrix cannot be decomposed."""
