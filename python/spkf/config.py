"""
SPKF-Lite - Configuration
=========================
License: AGPL-3.0-or-later
"""

from dataclasses import dataclass

import numpy as np


@dataclass
class SigmaParams:
    """Scaled unscented tuning parameters (Van der Merwe formulation)"""
    alpha: float = 1e-3  # Spread of sigma points (1e-4 to 1)
    beta: float = 2.0    # Prior knowledge (2 optimal for Gaussian)
    kappa: float = 0.0   # Secondary scaling (usually 0 or 3-L)

    def __post_init__(self):
        if self.alpha <= 0:
            raise ValueError(f"alpha must be positive, got {self.alpha}")


@dataclass
class FilterConfig:
    """Numerical settings shared by the filter stages."""

    # Pivots with |d| <= pd_tolerance * max(diag) are treated as exact zeros
    pd_tolerance: float = 1e-12

    # Added to the diagonal of a singular innovation covariance before solving
    innovation_regularization: float = 1e-9

    # Force covariances back to 0.5 * (P + P.T) after each stage
    symmetrize: bool = True

    # Reject non-finite inputs (prior, noise covariances, observations).
    # Model outputs, gains and covariances are checked unconditionally.
    check_finite: bool = True

    # Scalar type of every buffer
    dtype: type = np.float64

    def __post_init__(self):
        if self.pd_tolerance < 0:
            raise ValueError(f"pd_tolerance must be >= 0, got {self.pd_tolerance}")
        if self.innovation_regularization <= 0:
            raise ValueError(
                "innovation_regularization must be positive, "
                f"got {self.innovation_regularization}"
            )
        if not np.issubdtype(np.dtype(self.dtype), np.floating):
            raise ValueError(f"dtype must be a floating type, got {self.dtype}")
