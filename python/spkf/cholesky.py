"""
SPKF-Lite - Cholesky Square Roots
=================================
License: AGPL-3.0-or-later

Lower-triangular square roots of symmetric positive semi-definite
covariances, plus rank-1 update/downdate of an existing factor.

Only the lower triangle of the input is read. Strictly positive definite
matrices go straight to LAPACK through ``scipy.linalg.cholesky``; matrices
with exact zero pivots (a zero noise covariance, a perfectly observed state)
fall back to a column Cholesky that emits zero columns for zero pivots and
rejects negative ones.
"""

import logging
from typing import Optional

import numpy as np
import scipy.linalg

from .errors import (
    DimensionMismatch,
    NonPositiveDefiniteCovariance,
    check_finite,
)

logger = logging.getLogger(__name__)


def _symmetric_from_lower(A: np.ndarray) -> np.ndarray:
    lower = np.tril(A)
    return lower + np.tril(lower, -1).T


def _semidefinite_cholesky(A: np.ndarray, tolerance: float, name: str) -> np.ndarray:
    """Column Cholesky tolerating zero pivots."""
    n = A.shape[0]
    L = np.zeros_like(A)
    scale = float(np.max(np.abs(np.diag(A)))) if n else 0.0
    tol = tolerance * scale if scale > 0 else tolerance
    off_tol = np.sqrt(tol) * max(np.sqrt(scale), 1.0)

    for j in range(n):
        row = L[j, :j]
        pivot = A[j, j] - row @ row
        if pivot < -tol:
            raise NonPositiveDefiniteCovariance(
                f"{name}: negative pivot {pivot:.3e} at index {j}",
                name=name,
                pivot=j,
            )

        below = A[j + 1:, j] - L[j + 1:, :j] @ row
        if pivot <= tol:
            # A zero pivot of a PSD matrix forces a zero column
            if below.size and np.max(np.abs(below)) > off_tol:
                raise NonPositiveDefiniteCovariance(
                    f"{name}: zero pivot with non-zero coupling at index {j}",
                    name=name,
                    pivot=j,
                )
            continue

        L[j, j] = np.sqrt(pivot)
        L[j + 1:, j] = below / L[j, j]

    return L


def cholesky_factor(
    covariance: np.ndarray,
    tolerance: float = 1e-12,
    name: str = "covariance",
    finite_check: bool = True,
) -> np.ndarray:
    """
    Lower Cholesky factor L with L @ L.T == covariance.

    Args:
        covariance: Symmetric PSD matrix [n, n] (upper triangle ignored)
        tolerance: Relative threshold below which a pivot counts as zero
        name: Label used in error messages
        finite_check: Reject NaN/Inf input

    Returns:
        Lower-triangular factor [n, n]

    Raises:
        DimensionMismatch: input is not a square matrix
        NumericalDivergence: input holds non-finite values
        NonPositiveDefiniteCovariance: a pivot is negative
    """
    A = np.asarray(covariance)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise DimensionMismatch(
            f"{name} must be square, got shape {A.shape}", actual=A.shape
        )
    if not np.issubdtype(A.dtype, np.floating):
        A = A.astype(np.float64)
    if finite_check:
        check_finite(A, f"factorization of {name}")
    if A.shape[0] == 0:
        return np.zeros_like(A)

    A = _symmetric_from_lower(A)
    try:
        return scipy.linalg.cholesky(A, lower=True, check_finite=False)
    except np.linalg.LinAlgError:
        pass

    L = _semidefinite_cholesky(A, tolerance, name)
    logger.debug("%s is singular; used semi-definite factorization", name)
    return L


def cholesky_update(
    factor: np.ndarray,
    vector: np.ndarray,
    sign: int = 1,
    tolerance: float = 1e-12,
) -> np.ndarray:
    """
    Rank-1 Cholesky update/downdate, in place.

    Updates L such that L @ L.T + sign * x @ x.T == L_new @ L_new.T.

    Raises:
        NonPositiveDefiniteCovariance: the downdate would leave an
            indefinite matrix
    """
    L = factor
    x = np.array(vector, dtype=L.dtype, copy=True)
    n = x.shape[0]
    if L.shape != (n, n):
        raise DimensionMismatch(
            f"factor {L.shape} does not match vector of length {n}",
            expected=(n, n),
            actual=L.shape,
        )

    for k in range(n):
        lkk = L[k, k]
        xk = x[k]
        scale = max(lkk * lkk, xk * xk)
        if scale == 0.0:
            continue

        r2 = lkk * lkk + xk * xk if sign > 0 else lkk * lkk - xk * xk
        if r2 < -tolerance * scale:
            raise NonPositiveDefiniteCovariance(
                f"downdate loses positive definiteness at index {k}",
                name="downdate",
                pivot=k,
            )

        col = L[k + 1:, k].copy()
        if r2 <= tolerance * scale:
            # Downdate removes this direction entirely
            residual = lkk * col - xk * x[k + 1:]
            bound = np.sqrt(tolerance * scale) * max(
                1.0, float(np.max(np.abs(col), initial=0.0))
            )
            if residual.size and np.max(np.abs(residual)) > bound:
                raise NonPositiveDefiniteCovariance(
                    f"downdate loses positive definiteness at index {k}",
                    name="downdate",
                    pivot=k,
                )
            L[k:, k] = 0.0
            x[k + 1:] = 0.0
            continue

        r = np.sqrt(r2)
        if sign > 0:
            L[k + 1:, k] = (lkk * col + xk * x[k + 1:]) / r
        else:
            L[k + 1:, k] = (lkk * col - xk * x[k + 1:]) / r
        x[k + 1:] = (lkk * x[k + 1:] - xk * col) / r
        L[k, k] = r

    return L


class CholeskyFactorCache:
    """
    Factors one covariance block and remembers the result.

    Process and observation noise covariances are normally constant, so a
    repeated call with an identical matrix returns the previous factor
    without refactoring. When ``out`` is given (typically a diagonal block
    view of the augmented square root) the factor is written into it.

    Example:
        >>> cache = CholeskyFactorCache("Q")
        >>> S = cache.factor(np.diag([4.0, 9.0]))
        >>> np.diag(S)
        array([2., 3.])
    """

    def __init__(
        self,
        name: str = "covariance",
        tolerance: float = 1e-12,
        out: Optional[np.ndarray] = None,
        finite_check: bool = True,
    ):
        self.name = name
        self.tolerance = tolerance
        self.finite_check = finite_check
        self._out = out
        self._key: Optional[np.ndarray] = None
        self._factor: Optional[np.ndarray] = None
        self.hits = 0
        self.misses = 0

    @property
    def last(self) -> Optional[np.ndarray]:
        """Most recent factor (None before the first call)."""
        return self._factor

    def invalidate(self):
        """Forget the cached input so the next call refactors."""
        self._key = None

    def factor(self, covariance: np.ndarray) -> np.ndarray:
        """Lower Cholesky factor of ``covariance``, reusing the cache if possible."""
        A = np.asarray(covariance)
        if (
            self._key is not None
            and self._key.shape == A.shape
            and np.array_equal(self._key, A)
        ):
            self.hits += 1
            return self._factor

        L = cholesky_factor(A, self.tolerance, self.name, self.finite_check)
        self.misses += 1

        if self._out is not None:
            if self._out.shape != L.shape:
                raise DimensionMismatch(
                    f"{self.name} is {L.shape}, block expects {self._out.shape}",
                    expected=self._out.shape,
                    actual=L.shape,
                )
            self._out[...] = L
            self._factor = self._out
        else:
            self._factor = L

        self._key = A.copy()
        return self._factor
