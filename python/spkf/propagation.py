"""
SPKF-Lite - Sigma Point Propagation
===================================
License: AGPL-3.0-or-later

Pushes sigma points through the process and observation models and forms
the weighted means

    x_pred = Wm[0] * Y[:, 0] + Wm[i] * sum(Y[:, 1:])

Non-finite model output is always reported before it can reach the mean,
whatever FilterConfig.check_finite says.
"""

from typing import Callable, Optional, Tuple

import numpy as np

from .config import FilterConfig
from .errors import DimensionMismatch, check_finite
from .models import as_observation_model
from .weights import WeightingPolicy


class _SigmaPropagator:
    """Shared column loop and weighted mean."""

    stage = "propagation"

    def __init__(self, weights: WeightingPolicy, config: Optional[FilterConfig] = None):
        self.weights = weights
        self.config = config or FilterConfig()

    def _propagate(self, out: np.ndarray, fn: Callable[[int], np.ndarray]) -> np.ndarray:
        dim, n_sigma = out.shape
        if n_sigma != self.weights.n_sigma:
            raise DimensionMismatch(
                f"{n_sigma} sigma points given, weights expect {self.weights.n_sigma}",
                expected=self.weights.n_sigma,
                actual=n_sigma,
            )

        for i in range(n_sigma):
            y = np.asarray(fn(i))
            if y.shape != (dim,):
                raise DimensionMismatch(
                    f"{self.stage}: model returned shape {y.shape} for sigma point {i}, "
                    f"expected ({dim},)",
                    expected=(dim,),
                    actual=y.shape,
                )
            out[:, i] = y

        check_finite(out, self.stage)
        return out

    def _weighted_mean(self, Y: np.ndarray) -> np.ndarray:
        w = self.weights
        return w.wm0 * Y[:, 0] + w.wmi * np.sum(Y[:, 1:], axis=1)


class ProcessPropagator(_SigmaPropagator):
    """Time update of the state sigma points."""

    stage = "process propagation"

    def predict(
        self,
        state_sigma_points: np.ndarray,
        proc_noise_sigma_points: np.ndarray,
        control: np.ndarray,
        dt: float,
        process_model,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Propagate every state sigma point through the process model.

        The state sigma buffer is overwritten in place with the propagated
        points, which the process covariance then reuses.

        Args:
            state_sigma_points: [nx, 2L+1] (overwritten)
            proc_noise_sigma_points: [nx, 2L+1]
            control: Control vector [nu]
            dt: Time step
            process_model: f(state, control, noise, dt) -> next_state

        Returns:
            (propagated state sigma points [nx, 2L+1], predicted mean [nx])
        """
        X = state_sigma_points
        W = proc_noise_sigma_points
        self._propagate(X, lambda i: process_model(X[:, i], control, W[:, i], dt))

        x_pred = check_finite(self._weighted_mean(X), "predicted state mean")
        return X, x_pred


class ObservationPropagator(_SigmaPropagator):
    """Maps state sigma points into observation space."""

    stage = "observation propagation"

    def __init__(
        self,
        nz: int,
        weights: WeightingPolicy,
        config: Optional[FilterConfig] = None,
    ):
        super().__init__(weights, config)
        self.nz = nz
        self._obs_sigmas = np.zeros((nz, weights.n_sigma), dtype=self.config.dtype)
        self._Wm = weights.mean_weights()

    @property
    def obs_sigmas(self) -> np.ndarray:
        """Propagated observation sigma points [nz, 2L+1]."""
        return self._obs_sigmas

    def observe(
        self,
        state_sigma_points: np.ndarray,
        obs_noise_sigma_points: np.ndarray,
        observation_model,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Propagate every state sigma point through the observation model.

        Must be fed sigma points regenerated from the current state and
        covariance, not the propagated set left over from predict.

        Args:
            state_sigma_points: [nx, 2L+1]
            obs_noise_sigma_points: [nz, 2L+1]
            observation_model: ObservationModel or h(state, noise) -> observation

        Returns:
            (observation sigma points [nz, 2L+1], predicted observation [nz])
        """
        h = as_observation_model(observation_model)
        X = state_sigma_points
        V = obs_noise_sigma_points
        Z = self._propagate(self._obs_sigmas, lambda i: h(X[:, i], V[:, i]))

        # The model owns the mean so angular components can average on the circle
        z_pred = check_finite(h.mean(Z, self._Wm), "predicted observation mean")
        return Z, z_pred
