"""
SPKF-Lite - Sigma Point Weighting Policies
==========================================
License: AGPL-3.0-or-later

A weighting policy fixes, for an augmented dimension L:
    gamma       - squared spread factor (sigma = mean +/- sqrt(gamma) * S_i)
    wm0, wmi    - mean weights (centre point, every other point)
    wc0, wci    - covariance weights (centre point, every other point)

Symmetric pairing means every non-central point shares one weight. The
identity map reproduces the input covariance exactly when 2 * gamma * wci
== 1, which all policies below satisfy.
"""

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from .config import SigmaParams


class WeightingPolicy(ABC):
    """Abstract base class for sigma point weighting schemes."""

    def __init__(self, L: int):
        if L <= 0:
            raise ValueError(f"Augmented dimension must be positive, got {L}")
        self.L = L
        self.n_sigma = 2 * L + 1
        self.gamma = 0.0
        self.wm0 = 0.0
        self.wmi = 0.0
        self.wc0 = 0.0
        self.wci = 0.0
        self._compute_weights()
        if self.gamma <= 0:
            raise ValueError(
                f"{type(self).__name__} gives non-positive gamma {self.gamma} for L={L}"
            )

    @abstractmethod
    def _compute_weights(self):
        """Set gamma, wm0, wmi, wc0, wci for self.L"""

    def mean_weights(self) -> np.ndarray:
        """Mean weights for all 2L+1 points."""
        Wm = np.full(self.n_sigma, self.wmi)
        Wm[0] = self.wm0
        return Wm

    def covariance_weights(self) -> np.ndarray:
        """Covariance weights for all 2L+1 points."""
        Wc = np.full(self.n_sigma, self.wci)
        Wc[0] = self.wc0
        return Wc

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(L={self.L}, gamma={self.gamma:.6g}, "
            f"wm0={self.wm0:.6g}, wmi={self.wmi:.6g}, "
            f"wc0={self.wc0:.6g}, wci={self.wci:.6g})"
        )


class ScaledUnscentedWeights(WeightingPolicy):
    """
    Scaled unscented transform (Van der Merwe, 2004).

        lambda = alpha^2 * (L + kappa) - L
        gamma  = L + lambda
        Wm[0]  = lambda / gamma
        Wc[0]  = Wm[0] + (1 - alpha^2 + beta)
        Wm[i]  = Wc[i] = 1 / (2 * gamma)
    """

    def __init__(self, L: int, params: Optional[SigmaParams] = None):
        self.params = params or SigmaParams()
        super().__init__(L)

    def _compute_weights(self):
        L = self.L
        alpha = self.params.alpha
        beta = self.params.beta
        kappa = self.params.kappa

        self.lambda_ = alpha**2 * (L + kappa) - L
        self.gamma = L + self.lambda_
        if self.gamma <= 0:
            return

        self.wm0 = self.lambda_ / self.gamma
        self.wmi = 1.0 / (2 * self.gamma)
        self.wc0 = self.wm0 + (1 - alpha**2 + beta)
        self.wci = self.wmi


class JulierWeights(WeightingPolicy):
    """Original unscented transform (Julier & Uhlmann, 1997): gamma = L + kappa."""

    def __init__(self, L: int, kappa: float = 0.0):
        self.kappa = kappa
        super().__init__(L)

    def _compute_weights(self):
        self.gamma = self.L + self.kappa
        if self.gamma <= 0:
            return
        self.wm0 = self.wc0 = self.kappa / self.gamma
        self.wmi = self.wci = 1.0 / (2 * self.gamma)


class CubatureWeights(WeightingPolicy):
    """
    Third-degree spherical-radial cubature rule (Arasaratnam & Haykin, 2009).

    No tuning parameters and all weights positive. The centre point carries
    zero weight, so 2L+1 points reproduce the 2L-point cubature rule.
    """

    def _compute_weights(self):
        self.gamma = float(self.L)
        self.wm0 = self.wc0 = 0.0
        self.wmi = self.wci = 1.0 / (2 * self.L)
