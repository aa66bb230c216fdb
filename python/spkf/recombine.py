"""
SPKF-Lite - Covariance Recombination
====================================
License: AGPL-3.0-or-later

Weighted outer-product sums over sigma deviations:

    P_xx = sum_i Wc[i] (X_i - x)(X_i - x)^T      process covariance
    P_zz = sum_i Wc[i] (Z_i - z)(Z_i - z)^T      innovation covariance
    P_xz = sum_i Wc[i] (X_i - x)(Z_i - z)^T      cross covariance
    K    = P_xz P_zz^-1

Observation noise is carried by the augmented sigma points, so P_zz needs
no "+ R" term. The same holds for Q in P_xx.
Every result is checked for NaN/Inf regardless of FilterConfig.check_finite.
"""

import logging
from typing import Callable, Optional

import numpy as np
import scipy.linalg

from .cholesky import CholeskyFactorCache
from .config import FilterConfig
from .errors import DimensionMismatch, NumericalDivergence, check_finite
from .updates import ClassicCovarianceUpdate, CovarianceUpdatePolicy
from .weights import WeightingPolicy

logger = logging.getLogger(__name__)


class CovarianceRecombiner:
    """Second-moment statistics of propagated sigma sets."""

    def __init__(
        self,
        weights: WeightingPolicy,
        update_policy: Optional[CovarianceUpdatePolicy] = None,
        config: Optional[FilterConfig] = None,
    ):
        self.weights = weights
        self.update_policy = update_policy or ClassicCovarianceUpdate()
        self.config = config or FilterConfig()
        self._Wc = weights.covariance_weights()
        self.regularized_count = 0

    def _finish(self, A: np.ndarray, stage: str) -> np.ndarray:
        if self.config.symmetrize and A.shape[0] == A.shape[1]:
            A = 0.5 * (A + A.T)
        return check_finite(A, stage)

    def _weighted_outer(self, dX: np.ndarray, dZ: np.ndarray) -> np.ndarray:
        if dX.shape[1] != self._Wc.shape[0] or dZ.shape[1] != self._Wc.shape[0]:
            raise DimensionMismatch(
                f"sigma sets have {dX.shape[1]}/{dZ.shape[1]} points, "
                f"weights expect {self._Wc.shape[0]}",
                expected=self._Wc.shape[0],
            )
        return (dX * self._Wc) @ dZ.T

    @staticmethod
    def _obs_deviations(obs_sigmas, obs_mean, residual):
        if residual is None:
            return obs_sigmas - obs_mean[:, np.newaxis]
        return residual(obs_sigmas, obs_mean[:, np.newaxis])

    def process_covar(self, state_sigmas: np.ndarray, state_mean: np.ndarray) -> np.ndarray:
        """P_xx from propagated state sigma points [nx, 2L+1]."""
        dX = state_sigmas - state_mean[:, np.newaxis]
        return self._finish(self._weighted_outer(dX, dX), "process covariance")

    def innovation_covar(
        self,
        obs_sigmas: np.ndarray,
        obs_mean: np.ndarray,
        residual: Optional[Callable] = None,
    ) -> np.ndarray:
        """
        P_zz from observation sigma points [nz, 2L+1].

        ``residual(Z, z)`` forms the deviations when given (e.g. an
        ObservationModel.residual that wraps angles); plain Z - z otherwise.
        """
        dZ = self._obs_deviations(obs_sigmas, obs_mean, residual)
        return self._finish(self._weighted_outer(dZ, dZ), "innovation covariance")

    def cross_covar(
        self,
        state_sigmas: np.ndarray,
        state_mean: np.ndarray,
        obs_sigmas: np.ndarray,
        obs_mean: np.ndarray,
        residual: Optional[Callable] = None,
    ) -> np.ndarray:
        """P_xz [nx, nz]; ``residual`` as for innovation_covar."""
        dX = state_sigmas - state_mean[:, np.newaxis]
        dZ = self._obs_deviations(obs_sigmas, obs_mean, residual)
        return self._finish(self._weighted_outer(dX, dZ), "cross covariance")

    def kalman_gain(self, cross_covar: np.ndarray, innovation_covar: np.ndarray) -> np.ndarray:
        """
        K = P_xz P_zz^-1 via a Cholesky solve of P_zz K^T = P_xz^T.

        A P_zz that is not positive definite (e.g. exactly zero when the
        state is known and the sensor is noiseless) is regularized with
        ``innovation_regularization * I`` before solving, so the gain stays
        defined instead of dividing by zero.
        """
        nz = innovation_covar.shape[0]
        try:
            cho = scipy.linalg.cho_factor(innovation_covar, lower=True, check_finite=False)
        except np.linalg.LinAlgError:
            eps = self.config.innovation_regularization
            self.regularized_count += 1
            logger.warning(
                "Innovation covariance not positive definite; regularizing with %.1e * I", eps
            )
            try:
                cho = scipy.linalg.cho_factor(
                    innovation_covar + eps * np.eye(nz), lower=True, check_finite=False
                )
            except np.linalg.LinAlgError as e:
                raise NumericalDivergence(
                    f"innovation covariance is singular after regularization: {e}",
                    stage="kalman gain",
                ) from e

        K = scipy.linalg.cho_solve(cho, cross_covar.T, check_finite=False).T
        return check_finite(K, "kalman gain")

    def updated_covar(
        self,
        covar: np.ndarray,
        gain: np.ndarray,
        innovation_covar: np.ndarray,
        factor_cache: Optional[CholeskyFactorCache] = None,
    ) -> np.ndarray:
        """Posterior covariance from the configured update policy."""
        P = self.update_policy.update(covar, gain, innovation_covar, factor_cache)
        return self._finish(P, "updated covariance")
