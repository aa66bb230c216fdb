"""
SPKF-Lite - Augmented Sigma-Point Kalman Filter
===============================================
License: AGPL-3.0-or-later

Unscented Kalman filtering over the augmented state [x; w; v]:
- CholeskyFactorCache: lower square roots of PSD covariances
- AugmentedStateBuilder: block-diagonal augmented mean/square root
- SigmaPointGenerator: 2L+1 sigma points with zero-copy row views
- ProcessPropagator / ObservationPropagator: model propagation + means
- CovarianceRecombiner: P_xx, P_zz, P_xz, Kalman gain, posterior P
- SigmaPointKalmanFilter: predict / observe / correct cycle

Example:
    >>> from spkf import create_radar_filter
    >>> kf = create_radar_filter(dt=0.1)
    >>> kf.predict(dt=0.1)
    >>> innovation = kf.update(np.array([1415.0, 0.785]))
"""

from .augmented import AugmentedStateBuilder
from .cholesky import CholeskyFactorCache, cholesky_factor, cholesky_update
from .config import FilterConfig, SigmaParams
from .errors import (
    DimensionMismatch,
    NonPositiveDefiniteCovariance,
    NumericalDivergence,
    SPKFError,
)
from .filter import (
    FilterDims,
    FilterPhase,
    SigmaPointKalmanFilter,
    create_radar_filter,
)
from .models import (
    AdditiveObservationModel,
    AdditiveProcessModel,
    ConstantVelocityModel,
    FunctionObservationModel,
    FunctionProcessModel,
    LinearObservationModel,
    LinearProcessModel,
    ObservationModel,
    ProcessModel,
    RangeBearingModel,
)
from .propagation import ObservationPropagator, ProcessPropagator
from .recombine import CovarianceRecombiner
from .sigma import SigmaPointGenerator, sigma_point_count
from .updates import (
    ClassicCovarianceUpdate,
    CovarianceUpdatePolicy,
    SquareRootCovarianceUpdate,
)
from .weights import (
    CubatureWeights,
    JulierWeights,
    ScaledUnscentedWeights,
    WeightingPolicy,
)

__version__ = "1.0.0"
__license__ = "AGPL-3.0-or-later"

__all__ = [
    # Filter
    'SigmaPointKalmanFilter',
    'FilterPhase',
    'FilterDims',
    'create_radar_filter',

    # Core stages
    'CholeskyFactorCache',
    'AugmentedStateBuilder',
    'SigmaPointGenerator',
    'ProcessPropagator',
    'ObservationPropagator',
    'CovarianceRecombiner',
    'cholesky_factor',
    'cholesky_update',
    'sigma_point_count',

    # Policies
    'WeightingPolicy',
    'ScaledUnscentedWeights',
    'JulierWeights',
    'CubatureWeights',
    'CovarianceUpdatePolicy',
    'ClassicCovarianceUpdate',
    'SquareRootCovarianceUpdate',

    # Models
    'ProcessModel',
    'ObservationModel',
    'FunctionProcessModel',
    'FunctionObservationModel',
    'AdditiveProcessModel',
    'AdditiveObservationModel',
    'LinearProcessModel',
    'LinearObservationModel',
    'ConstantVelocityModel',
    'RangeBearingModel',

    # Config / errors
    'FilterConfig',
    'SigmaParams',
    'SPKFError',
    'NonPositiveDefiniteCovariance',
    'NumericalDivergence',
    'DimensionMismatch',
]
