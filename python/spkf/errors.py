"""
SPKF-Lite - Error Types
=======================
License: AGPL-3.0-or-later

Every failure raised by the filter core derives from ``SPKFError`` and also
from the closest builtin/numpy exception, so callers that already catch
``LinAlgError`` or ``ValueError`` keep working.
"""

import numpy as np


class SPKFError(Exception):
    """Base class for sigma-point filter errors"""


class NonPositiveDefiniteCovariance(SPKFError, np.linalg.LinAlgError):
    """Covariance could not be factored (negative pivot or asymmetric input)"""

    def __init__(self, message: str, name: str = "covariance", pivot: int = -1):
        super().__init__(message)
        self.name = name
        self.pivot = pivot


class NumericalDivergence(SPKFError, ArithmeticError):
    """Non-finite value found in sigma points, gain or covariance"""

    def __init__(self, message: str, stage: str = ""):
        super().__init__(message)
        self.stage = stage


class DimensionMismatch(SPKFError, ValueError):
    """Vector or matrix dimension inconsistent with the configured nx/nu/nz"""

    def __init__(self, message: str, expected=None, actual=None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


def check_finite(array: np.ndarray, stage: str) -> np.ndarray:
    """Raise NumericalDivergence if ``array`` holds NaN or Inf."""
    if not np.all(np.isfinite(array)):
        bad = int(np.size(array) - np.count_nonzero(np.isfinite(array)))
        raise NumericalDivergence(
            f"{bad} non-finite value(s) detected during {stage}", stage=stage
        )
    return array


def check_shape(array: np.ndarray, shape: tuple, name: str) -> np.ndarray:
    """Raise DimensionMismatch unless ``array.shape == shape``."""
    if array.shape != shape:
        raise DimensionMismatch(
            f"{name} has shape {array.shape}, expected {shape}",
            expected=shape,
            actual=array.shape,
        )
    return array
