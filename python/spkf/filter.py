"""
SPKF-Lite - Augmented Sigma-Point Kalman Filter
===============================================
License: AGPL-3.0-or-later

Theory:
    The augmented unscented filter samples state, process noise and
    observation noise jointly with 2L+1 sigma points (L = 2*nx + nz).
    Noise enters through the models rather than as additive Q/R terms,
    so non-additive noise is handled exactly as well as the state.

    Key properties:
    - No Jacobian required
    - Exact for linear models (matches the classic Kalman filter)
    - Sigma points regenerated from the current moments on every
      predict and observe

Cycle:
    IDLE -> predict() -> PREDICTED -> observe() -> OBSERVED
         -> correct(z) -> UPDATED -> predict() -> ...
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np

from .augmented import AugmentedStateBuilder
from .config import FilterConfig, SigmaParams
from .errors import DimensionMismatch, check_finite, check_shape
from .models import (
    ConstantVelocityModel,
    RangeBearingModel,
    as_observation_model,
    as_process_model,
)
from .propagation import ObservationPropagator, ProcessPropagator
from .recombine import CovarianceRecombiner
from .sigma import SigmaPointGenerator
from .updates import CovarianceUpdatePolicy
from .weights import ScaledUnscentedWeights, WeightingPolicy

logger = logging.getLogger(__name__)


class FilterPhase(Enum):
    """Position in the predict/observe/correct cycle"""
    IDLE = "idle"
    PREDICTED = "predicted"
    OBSERVED = "observed"
    UPDATED = "updated"


@dataclass(frozen=True)
class FilterDims:
    """Configured dimensions"""
    nx: int  # State
    nu: int  # Control
    nz: int  # Observation

    @property
    def L(self) -> int:
        return 2 * self.nx + self.nz

    @property
    def n_sigma(self) -> int:
        return 2 * self.L + 1


class SigmaPointKalmanFilter:
    """
    Augmented unscented Kalman filter.

    Example:
        >>> F = np.array([[1.0, 0.1], [0.0, 1.0]])
        >>> f = lambda x, u, w, dt: F @ x + w
        >>> h = lambda x, v: x[:1] + v
        >>> kf = SigmaPointKalmanFilter(np.zeros(2), np.eye(2), 0.01 * np.eye(2),
        ...                             np.array([[1.0]]), f, h)
        >>> kf.predict(dt=0.1)
        >>> z_pred = kf.observe()
        >>> innovation = kf.correct(np.array([0.2]))
    """

    def __init__(
        self,
        initial_state: np.ndarray,
        initial_covariance: np.ndarray,
        process_noise_covariance: np.ndarray,
        observation_noise_covariance: np.ndarray,
        process_model,
        observation_model,
        weights: Optional[Union[WeightingPolicy, SigmaParams]] = None,
        covariance_update: Optional[CovarianceUpdatePolicy] = None,
        n_control: int = 0,
        proc_noise_mean: Optional[np.ndarray] = None,
        obs_noise_mean: Optional[np.ndarray] = None,
        config: Optional[FilterConfig] = None,
    ):
        """
        Args:
            initial_state: Prior mean [nx]
            initial_covariance: Prior covariance [nx, nx]
            process_noise_covariance: Q [nx, nx]
            observation_noise_covariance: R [nz, nz]
            process_model: f(x, u, w, dt) -> x_next
            observation_model: h(x, v) -> z
            weights: Weighting policy, or SigmaParams for the scaled
                unscented policy (default alpha=1, beta=2, kappa=0)
            covariance_update: Posterior covariance formula (default classic)
            n_control: Control vector dimension
            proc_noise_mean: Process noise mean [nx] (default zero)
            obs_noise_mean: Observation noise mean [nz] (default zero)
            config: Numerical settings

        Raises:
            DimensionMismatch: inconsistent shapes
            NonPositiveDefiniteCovariance: a covariance cannot be factored
        """
        self.config = config or FilterConfig()
        dtype = self.config.dtype

        x = np.array(initial_state, dtype=dtype).reshape(-1)
        nx = x.shape[0]
        R = np.array(observation_noise_covariance, dtype=dtype)
        if R.ndim != 2 or R.shape[0] != R.shape[1]:
            raise DimensionMismatch(
                f"observation noise covariance must be square, got {R.shape}",
                actual=R.shape,
            )
        nz = R.shape[0]
        if nx == 0 or nz == 0:
            raise DimensionMismatch(f"nx and nz must be positive, got nx={nx}, nz={nz}")
        if n_control < 0:
            raise DimensionMismatch(f"n_control must be >= 0, got {n_control}")

        self.dims = FilterDims(nx=nx, nu=n_control, nz=nz)
        self._x = x
        self._P = check_shape(np.array(initial_covariance, dtype=dtype), (nx, nx), "initial covariance")
        self._Q = check_shape(np.array(process_noise_covariance, dtype=dtype), (nx, nx), "process noise covariance")
        self._R = R
        self._w_mean = (
            np.zeros(nx, dtype=dtype) if proc_noise_mean is None
            else check_shape(np.array(proc_noise_mean, dtype=dtype), (nx,), "process noise mean")
        )
        self._v_mean = (
            np.zeros(nz, dtype=dtype) if obs_noise_mean is None
            else check_shape(np.array(obs_noise_mean, dtype=dtype), (nz,), "observation noise mean")
        )

        self.f = as_process_model(process_model)
        self.h = as_observation_model(observation_model)
        self.weights = self._resolve_weights(weights, self.dims.L)

        self._builder = AugmentedStateBuilder(nx, nz, self.config)
        self._generator = SigmaPointGenerator(nx, nz, dtype)
        self._process = ProcessPropagator(self.weights, self.config)
        self._observation = ObservationPropagator(nz, self.weights, self.config)
        self._recombiner = CovarianceRecombiner(self.weights, covariance_update, self.config)

        # Factor every covariance now so a bad prior fails at construction
        self._builder.build(x, self._P, self._w_mean, self._Q, self._v_mean, self._R)

        self._clear_observation()
        self.phase = FilterPhase.IDLE
        logger.debug(
            "Sigma-point filter: nx=%d nu=%d nz=%d L=%d n_sigma=%d %r",
            nx, n_control, nz, self.dims.L, self.dims.n_sigma, self.weights,
        )

    @staticmethod
    def _resolve_weights(weights, L: int) -> WeightingPolicy:
        if weights is None:
            return ScaledUnscentedWeights(L, SigmaParams(alpha=1.0, beta=2.0, kappa=0.0))
        if isinstance(weights, SigmaParams):
            return ScaledUnscentedWeights(L, weights)
        if isinstance(weights, WeightingPolicy):
            if weights.L != L:
                raise DimensionMismatch(
                    f"weights built for L={weights.L}, filter has L={L}",
                    expected=L,
                    actual=weights.L,
                )
            return weights
        raise TypeError(f"weights must be WeightingPolicy or SigmaParams, got {type(weights).__name__}")

    def _clear_observation(self):
        self._z_pred = None
        self._S = None
        self._Pxz = None
        self._K = None
        self._innovation = None

    def _regenerate(self) -> np.ndarray:
        return self._generator.regenerate(
            self._builder, self._x, self._P, self._w_mean, self._Q,
            self._v_mean, self._R, self.weights.gamma,
        )

    def _vector(self, value, size: int, name: str) -> np.ndarray:
        v = np.asarray(value, dtype=self.config.dtype).reshape(-1)
        return check_shape(v, (size,), name)

    # ==========================================================================
    # Cycle
    # ==========================================================================

    def predict(self, control: Optional[np.ndarray] = None, dt: float = 1.0):
        """
        Time update: propagate the sigma points through the process model.

        State mean and covariance are replaced only if every stage succeeds.
        """
        nu = self.dims.nu
        if control is None:
            u = np.zeros(nu, dtype=self.config.dtype)
        else:
            u = self._vector(control, nu, "control")

        self._regenerate()
        X, x_pred = self._process.predict(
            self._generator.state_sigmas, self._generator.proc_noise_sigmas, u, dt, self.f
        )
        P_pred = self._recombiner.process_covar(X, x_pred)

        self._x[...] = x_pred
        self._P[...] = P_pred
        self._clear_observation()
        self.phase = FilterPhase.PREDICTED
        logger.debug("predict dt=%g trace(P)=%.6g", dt, np.trace(P_pred))

    def observe(self) -> np.ndarray:
        """
        Predict the observation from sigma points regenerated at the
        current state and covariance.

        Returns:
            Predicted observation mean [nz]
        """
        self._regenerate()
        gen = self._generator
        Z, z_pred = self._observation.observe(gen.state_sigmas, gen.obs_noise_sigmas, self.h)
        S = self._recombiner.innovation_covar(Z, z_pred, self.h.residual)
        Pxz = self._recombiner.cross_covar(gen.state_sigmas, self._x, Z, z_pred, self.h.residual)

        self._z_pred = z_pred
        self._S = S
        self._Pxz = Pxz
        self._K = None
        self._innovation = None
        self.phase = FilterPhase.OBSERVED
        return z_pred.copy()

    def correct(self, observation: np.ndarray) -> np.ndarray:
        """
        Measurement update with the innovation z - z_pred.

        Returns:
            Innovation [nz]
        """
        if self.phase is not FilterPhase.OBSERVED:
            raise RuntimeError("Call observe() before correct()")
        z = self._vector(observation, self.dims.nz, "observation")
        if self.config.check_finite:
            check_finite(z, "observation")

        K = self._recombiner.kalman_gain(self._Pxz, self._S)
        innovation = self.h.residual(z, self._z_pred)
        x_upd = check_finite(self._x + K @ innovation, "updated state")
        P_upd = self._recombiner.updated_covar(self._P, K, self._S, self._builder.state_cache)

        self._x[...] = x_upd
        self._P[...] = P_upd
        self._K = K
        self._innovation = innovation
        self.phase = FilterPhase.UPDATED
        logger.debug("correct |innovation|=%.6g trace(P)=%.6g",
                     np.linalg.norm(innovation), np.trace(P_upd))
        return innovation.copy()

    def update(self, observation: np.ndarray) -> np.ndarray:
        """observe() followed by correct(); returns the innovation."""
        self.observe()
        return self.correct(observation)

    def step(
        self,
        observation: np.ndarray,
        control: Optional[np.ndarray] = None,
        dt: float = 1.0,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Full predict/update cycle; returns (state, innovation)."""
        self.predict(control, dt)
        innovation = self.update(observation)
        return self.state, innovation

    def reset(self, state: np.ndarray, covariance: np.ndarray):
        """Re-seed the prior and return to IDLE."""
        nx = self.dims.nx
        x = self._vector(state, nx, "state")
        if self.config.check_finite:
            check_finite(x, "state")
        P = check_shape(np.array(covariance, dtype=self.config.dtype), (nx, nx), "covariance")
        self._builder.state_cache.factor(P)

        self._x[...] = x
        self._P[...] = P
        self._clear_observation()
        self.phase = FilterPhase.IDLE

    # ==========================================================================
    # Accessors
    # ==========================================================================

    @property
    def state(self) -> np.ndarray:
        return self._x.copy()

    @property
    def covar(self) -> np.ndarray:
        return self._P.copy()

    @property
    def proc_covar(self) -> np.ndarray:
        return self._Q.copy()

    @property
    def obs_covar(self) -> np.ndarray:
        return self._R.copy()

    @property
    def predicted_observation(self) -> Optional[np.ndarray]:
        return None if self._z_pred is None else self._z_pred.copy()

    @property
    def innovation_covar(self) -> Optional[np.ndarray]:
        return None if self._S is None else self._S.copy()

    @property
    def cross_covar(self) -> Optional[np.ndarray]:
        return None if self._Pxz is None else self._Pxz.copy()

    @property
    def kalman_gain(self) -> Optional[np.ndarray]:
        return None if self._K is None else self._K.copy()

    @property
    def innovation(self) -> Optional[np.ndarray]:
        return None if self._innovation is None else self._innovation.copy()

    @property
    def n_sigma(self) -> int:
        return self.dims.n_sigma

    @property
    def sigma_points(self) -> np.ndarray:
        """Scratch sigma buffer from the most recent predict/observe."""
        return self._generator.sigmas.copy()


# Convenience function for radar tracking
def create_radar_filter(
    dt: float = 0.1,
    process_noise: float = 0.1,
    measurement_noise_range: float = 10.0,
    measurement_noise_bearing: float = 0.01,
    x0: Optional[np.ndarray] = None,
    P0: Optional[np.ndarray] = None,
    covariance_update: Optional[CovarianceUpdatePolicy] = None,
) -> SigmaPointKalmanFilter:
    """
    Filter configured for 2-D radar tracking (range + bearing).

    State: [x, y, vx, vy]
    Observation: [range, bearing]
    """
    cv = ConstantVelocityModel(n_axes=2)
    if x0 is None:
        x0 = np.array([1000.0, 1000.0, 10.0, 5.0])
    if P0 is None:
        P0 = np.diag([100.0, 100.0, 10.0, 10.0])
    Q = cv.noise_covariance(dt, process_noise)
    R = np.diag([measurement_noise_range**2, measurement_noise_bearing**2])

    return SigmaPointKalmanFilter(
        x0, P0, Q, R,
        process_model=cv,
        observation_model=RangeBearingModel(),
        weights=SigmaParams(alpha=1.0, beta=2.0, kappa=0.0),
        covariance_update=covariance_update,
    )
