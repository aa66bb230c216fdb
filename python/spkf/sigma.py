"""
SPKF-Lite - Sigma Point Generation
==================================
License: AGPL-3.0-or-later

Sigma points are stored column-wise in one [L, 2L+1] buffer:

    X[:, 0]     = x_a
    X[:, i]     = x_a + sqrt(gamma) * S_a[:, i-1]      i = 1..L
    X[:, i+L]   = x_a - sqrt(gamma) * S_a[:, i-1]

Rows [0, nx) are the state sigma points, [nx, 2nx) the process noise
sigma points and [2nx, L) the observation noise sigma points. The three
row blocks are numpy views, so propagating the state rows in place never
copies the noise rows.
"""

import numpy as np

from .errors import DimensionMismatch, check_shape


class SigmaPointGenerator:
    """Deterministic 2L+1 point sampling of an augmented Gaussian."""

    def __init__(self, nx: int, nz: int, dtype=np.float64):
        if nx <= 0 or nz <= 0:
            raise DimensionMismatch(f"nx and nz must be positive, got nx={nx}, nz={nz}")
        self.nx = nx
        self.nz = nz
        self.L = 2 * nx + nz
        self.n_sigma = 2 * self.L + 1

        self._sigmas = np.zeros((self.L, self.n_sigma), dtype=dtype)
        self.state_sigmas = self._sigmas[:nx]
        self.proc_noise_sigmas = self._sigmas[nx:2 * nx]
        self.obs_noise_sigmas = self._sigmas[2 * nx:]

    @property
    def sigmas(self) -> np.ndarray:
        """Full augmented sigma set [L, 2L+1]."""
        return self._sigmas

    def generate(
        self,
        augmented_mean: np.ndarray,
        augmented_sqrt: np.ndarray,
        gamma: float,
    ) -> np.ndarray:
        """
        Fill the sigma buffer from an augmented mean and square root.

        Args:
            augmented_mean: [L]
            augmented_sqrt: [L, L] lower square root of the augmented covariance
            gamma: Squared spread factor from the weighting policy

        Returns:
            The generator's [L, 2L+1] buffer
        """
        if not gamma > 0:
            raise ValueError(f"gamma must be positive, got {gamma}")
        L = self.L
        mean = check_shape(np.asarray(augmented_mean), (L,), "augmented mean")
        S = check_shape(np.asarray(augmented_sqrt), (L, L), "augmented square root")

        spread = np.sqrt(gamma) * S
        column = mean[:, np.newaxis]

        self._sigmas[:, 0] = mean
        np.add(column, spread, out=self._sigmas[:, 1:L + 1])
        np.subtract(column, spread, out=self._sigmas[:, L + 1:])

        return self._sigmas

    def regenerate(self, builder, state, state_covar, proc_noise_mean, proc_covar,
                   obs_noise_mean, obs_covar, gamma: float) -> np.ndarray:
        """Build the augmented distribution with ``builder`` and sample it."""
        mean, sqrt = builder.build(
            state, state_covar, proc_noise_mean, proc_covar, obs_noise_mean, obs_covar
        )
        return self.generate(mean, sqrt, gamma)


def sigma_point_count(nx: int, nz: int) -> int:
    """Number of augmented sigma points for state/observation sizes nx, nz."""
    return 2 * (2 * nx + nz) + 1
