"""
SPKF-Lite - Process and Observation Models
==========================================
License: AGPL-3.0-or-later

Models see the noise explicitly, since each sigma point carries its own
process/observation noise sample:

    f(x, u, w, dt) -> x_next
    h(x, v)        -> z

Plain callables are adapted with FunctionProcessModel /
FunctionObservationModel, and additive-noise callables f(x, u, dt) / h(x)
with AdditiveProcessModel / AdditiveObservationModel.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

import numpy as np


class ProcessModel(ABC):
    """State transition x_next = f(x, u, w, dt)."""

    @abstractmethod
    def __call__(self, state: np.ndarray, control: np.ndarray,
                 noise: np.ndarray, dt: float) -> np.ndarray:
        pass


class ObservationModel(ABC):
    """Observation z = h(x, v)."""

    @abstractmethod
    def __call__(self, state: np.ndarray, noise: np.ndarray) -> np.ndarray:
        pass

    def residual(self, observation: np.ndarray, predicted: np.ndarray) -> np.ndarray:
        """
        Innovation z - z_pred (override for angular components).

        Also used for the sigma deviations, where ``observation`` is the
        [nz, 2L+1] sigma set and ``predicted`` a broadcast [nz, 1] column.
        """
        return observation - predicted

    def mean(self, sigmas: np.ndarray, mean_weights: np.ndarray) -> np.ndarray:
        """Weighted mean of observation sigma points [nz, 2L+1] (override for angles)."""
        return sigmas @ mean_weights


class FunctionProcessModel(ProcessModel):
    """Wraps f(x, u, w, dt)."""

    def __init__(self, f: Callable):
        self.f = f

    def __call__(self, state, control, noise, dt):
        return self.f(state, control, noise, dt)


class FunctionObservationModel(ObservationModel):
    """Wraps h(x, v)."""

    def __init__(self, h: Callable):
        self.h = h

    def __call__(self, state, noise):
        return self.h(state, noise)


class AdditiveProcessModel(ProcessModel):
    """x_next = f(x, u, dt) + w"""

    def __init__(self, f: Callable[[np.ndarray, np.ndarray, float], np.ndarray]):
        self.f = f

    def __call__(self, state, control, noise, dt):
        return np.asarray(self.f(state, control, dt)) + noise


class AdditiveObservationModel(ObservationModel):
    """z = h(x) + v"""

    def __init__(self, h: Callable[[np.ndarray], np.ndarray]):
        self.h = h

    def __call__(self, state, noise):
        return np.asarray(self.h(state)) + noise


class LinearProcessModel(ProcessModel):
    """x_next = F x + B u + w"""

    def __init__(self, F: np.ndarray, B: Optional[np.ndarray] = None):
        self.F = np.asarray(F, dtype=np.float64)
        self.B = None if B is None else np.asarray(B, dtype=np.float64)

    def __call__(self, state, control, noise, dt):
        x = self.F @ state + noise
        if self.B is not None and control is not None and control.size:
            x = x + self.B @ control
        return x


class LinearObservationModel(ObservationModel):
    """z = H x + v"""

    def __init__(self, H: np.ndarray):
        self.H = np.asarray(H, dtype=np.float64)

    def __call__(self, state, noise):
        return self.H @ state + noise


class ConstantVelocityModel(ProcessModel):
    """
    Constant velocity kinematics.

    State: [p_1..p_n, v_1..v_n] for ``n_axes`` axes.
    """

    def __init__(self, n_axes: int = 2):
        self.n_axes = n_axes
        self.n_states = 2 * n_axes

    def transition_matrix(self, dt: float) -> np.ndarray:
        n = self.n_axes
        F = np.eye(self.n_states)
        F[:n, n:] = dt * np.eye(n)
        return F

    def noise_covariance(self, dt: float, q: float) -> np.ndarray:
        """Discrete white-noise acceleration covariance (rank n_axes)."""
        n = self.n_axes
        Q = np.zeros((self.n_states, self.n_states))
        Q[:n, :n] = dt**4 / 4 * np.eye(n)
        Q[:n, n:] = Q[n:, :n] = dt**3 / 2 * np.eye(n)
        Q[n:, n:] = dt**2 * np.eye(n)
        return q * Q

    def __call__(self, state, control, noise, dt):
        return self.transition_matrix(dt) @ state + noise


class RangeBearingModel(ObservationModel):
    """
    2-D radar: Cartesian position to (range, bearing).

    Reads state[0], state[1] as x, y relative to ``sensor_pos``.
    """

    def __init__(self, sensor_pos: Optional[np.ndarray] = None):
        self.sensor_pos = np.zeros(2) if sensor_pos is None else np.asarray(sensor_pos, dtype=np.float64)

    def __call__(self, state, noise):
        dx = state[0] - self.sensor_pos[0]
        dy = state[1] - self.sensor_pos[1]
        r = np.sqrt(dx**2 + dy**2)
        theta = np.arctan2(dy, dx)
        return np.array([r, theta]) + noise

    def residual(self, observation, predicted):
        y = observation - predicted
        y[1] = (y[1] + np.pi) % (2 * np.pi) - np.pi
        return y

    def mean(self, sigmas, mean_weights):
        # Bearings straddling +/-pi are averaged on the unit circle
        z = sigmas @ mean_weights
        z[1] = np.arctan2(np.sin(sigmas[1]) @ mean_weights, np.cos(sigmas[1]) @ mean_weights)
        return z


def as_process_model(model) -> ProcessModel:
    """Accept a ProcessModel or a plain f(x, u, w, dt) callable."""
    if isinstance(model, ProcessModel):
        return model
    if callable(model):
        return FunctionProcessModel(model)
    raise TypeError(f"process model must be callable, got {type(model).__name__}")


def as_observation_model(model) -> ObservationModel:
    """Accept an ObservationModel or a plain h(x, v) callable."""
    if isinstance(model, ObservationModel):
        return model
    if callable(model):
        return FunctionObservationModel(model)
    raise TypeError(f"observation model must be callable, got {type(model).__name__}")
