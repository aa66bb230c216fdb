"""
SPKF-Lite - Augmented State
===========================
License: AGPL-3.0-or-later

The augmented vector stacks state, process noise and observation noise:

    x_a = [x; w; v]                         (L = 2*nx + nz)

    P_a = | P  0  0 |        S_a = | chol(P)    0        0     |
          | 0  Q  0 |              |   0     chol(Q)     0     |
          | 0  0  R |              |   0        0     chol(R)  |

Noise is independent of the state, so the square root is block diagonal
and each block is factored on its own. Both buffers are allocated once;
the three diagonal blocks are views into ``S_a``.
"""

from typing import Optional, Tuple

import numpy as np

from .cholesky import CholeskyFactorCache
from .config import FilterConfig
from .errors import check_finite, check_shape


class AugmentedStateBuilder:
    """
    Assembles the augmented mean and block-diagonal square root.

    Example:
        >>> builder = AugmentedStateBuilder(nx=2, nz=1)
        >>> mean, sqrt = builder.build(np.zeros(2), np.eye(2),
        ...                            np.zeros(2), 0.1 * np.eye(2),
        ...                            np.zeros(1), np.eye(1))
        >>> sqrt.shape
        (5, 5)
    """

    def __init__(self, nx: int, nz: int, config: Optional[FilterConfig] = None):
        self.config = config or FilterConfig()
        self.nx = nx
        self.nz = nz
        self.L = 2 * nx + nz
        dtype = self.config.dtype

        self._mean = np.zeros(self.L, dtype=dtype)
        self._sqrt = np.zeros((self.L, self.L), dtype=dtype)

        # Row ranges of the augmented vector
        self.state_slice = slice(0, nx)
        self.proc_noise_slice = slice(nx, 2 * nx)
        self.obs_noise_slice = slice(2 * nx, self.L)

        # Diagonal block views (off-diagonal blocks stay zero)
        self.chol_covar = self._sqrt[self.state_slice, self.state_slice]
        self.chol_proc_covar = self._sqrt[self.proc_noise_slice, self.proc_noise_slice]
        self.chol_obs_covar = self._sqrt[self.obs_noise_slice, self.obs_noise_slice]

        tol = self.config.pd_tolerance
        finite = self.config.check_finite
        self.state_cache = CholeskyFactorCache("state covariance", tol, self.chol_covar, finite)
        self.proc_cache = CholeskyFactorCache("process noise covariance", tol, self.chol_proc_covar, finite)
        self.obs_cache = CholeskyFactorCache("observation noise covariance", tol, self.chol_obs_covar, finite)

    @property
    def mean(self) -> np.ndarray:
        return self._mean

    @property
    def sqrt(self) -> np.ndarray:
        return self._sqrt

    def covariance(self) -> np.ndarray:
        """Augmented covariance S_a @ S_a.T (fresh array)."""
        return self._sqrt @ self._sqrt.T

    def build(
        self,
        state: np.ndarray,
        state_covar: np.ndarray,
        proc_noise_mean: np.ndarray,
        proc_covar: np.ndarray,
        obs_noise_mean: np.ndarray,
        obs_covar: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Populate the augmented mean and square root.

        Returns:
            (augmented_mean [L], augmented_sqrt [L, L]); both are the
            builder's own buffers and are overwritten by the next call
        """
        nx, nz = self.nx, self.nz
        state = check_shape(np.asarray(state), (nx,), "state")
        proc_noise_mean = check_shape(np.asarray(proc_noise_mean), (nx,), "process noise mean")
        obs_noise_mean = check_shape(np.asarray(obs_noise_mean), (nz,), "observation noise mean")
        check_shape(np.asarray(state_covar), (nx, nx), "state covariance")
        check_shape(np.asarray(proc_covar), (nx, nx), "process noise covariance")
        check_shape(np.asarray(obs_covar), (nz, nz), "observation noise covariance")

        if self.config.check_finite:
            check_finite(state, "augmented state assembly")

        self._mean[self.state_slice] = state
        self._mean[self.proc_noise_slice] = proc_noise_mean
        self._mean[self.obs_noise_slice] = obs_noise_mean

        # Each cache writes its factor straight into its diagonal block
        self.state_cache.factor(state_covar)
        self.proc_cache.factor(proc_covar)
        self.obs_cache.factor(obs_covar)

        return self._mean, self._sqrt
