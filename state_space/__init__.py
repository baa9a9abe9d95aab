"""Linear Gaussian state space engine.

This package provides:
- Exact diffuse Kalman filter, smoother and log-likelihood
- Structural trend/seasonal/regression model with maximum likelihood fitting
"""

from .kalman import (
    StateSpaceError,
    StateSpaceSystem,
    FilterOutput,
    SmootherOutput,
    kalman_filter,
    kalman_loglike,
    kalman_smoother
)

from .structural import (
    StateSpaceSpec,
    StructuralFit,
    SmoothedSignal,
    fit_structural
)

__all__ = [
    # Recursions
    'StateSpaceError',
    'StateSpaceSystem',
    'FilterOutput',
    'SmootherOutput',
    'kalman_filter',
    'kalman_loglike',
    'kalman_smoother',

    # Structural model
    'StateSpaceSpec',
    'StructuralFit',
    'SmoothedSignal',
    'fit_structural'
]
