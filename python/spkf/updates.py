"""
SPKF-Lite - Covariance Update Policies
======================================
License: AGPL-3.0-or-later

Posterior covariance after correction. Both forms compute
    P+ = P- - K @ S @ K.T
and differ only in numerical treatment:

- ClassicCovarianceUpdate: direct subtraction (fast, may lose PSD under
  round-off when the observation is very informative)
- SquareRootCovarianceUpdate: factor P-, then downdate by the columns of
  K @ chol(S) (Van der Merwe SR-UKF); a downdate that would leave an
  indefinite matrix is reported instead of silently clipped
"""

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from .cholesky import CholeskyFactorCache, cholesky_factor, cholesky_update


class CovarianceUpdatePolicy(ABC):
    """Abstract base class for posterior covariance formulas."""

    @abstractmethod
    def update(
        self,
        covar: np.ndarray,
        gain: np.ndarray,
        innovation_covar: np.ndarray,
        factor_cache: Optional[CholeskyFactorCache] = None,
    ) -> np.ndarray:
        """Return the posterior covariance [nx, nx]."""


class ClassicCovarianceUpdate(CovarianceUpdatePolicy):
    """P+ = P- - K @ S @ K.T"""

    def update(self, covar, gain, innovation_covar, factor_cache=None):
        return covar - gain @ innovation_covar @ gain.T


class SquareRootCovarianceUpdate(CovarianceUpdatePolicy):
    """Sequential rank-1 Cholesky downdates of the prior factor."""

    def __init__(self, tolerance: float = 1e-12):
        self.tolerance = tolerance

    def update(self, covar, gain, innovation_covar, factor_cache=None):
        if factor_cache is not None:
            S_x = np.array(factor_cache.factor(covar), copy=True)
        else:
            S_x = cholesky_factor(covar, self.tolerance, "state covariance")

        S_z = cholesky_factor(innovation_covar, self.tolerance, "innovation covariance")
        U = gain @ S_z
        for i in range(U.shape[1]):
            cholesky_update(S_x, U[:, i], -1, self.tolerance)

        return S_x @ S_x.T
