"""Forecasting models behind a common adapter interface.

This package provides:
- ModelAdapter contract and shared regressor policy
- Seasonal ARIMA with drift (statsmodels SARIMAX)
- Random walk with drift (closed form)
- Structural state space model (exact diffuse Kalman filter)
- Name -> adapter registry
"""

from .base import (
    ModelAdapter,
    ModelState,
    ForecastPath,
    ModelFitFailure,
    select_active_regressors,
    future_regressors
)

from .sarima import SarimaAdapter
from .drift import RandomWalkDriftAdapter
from .structural import StructuralAdapter

from .registry import (
    DEFAULT_MODELS,
    build_adapters,
    get_model,
    list_models
)

__all__ = [
    'ModelAdapter',
    'ModelState',
    'ForecastPath',
    'ModelFitFailure',
    'select_active_regressors',
    'future_regressors',
    'SarimaAdapter',
    'RandomWalkDriftAdapter',
    'StructuralAdapter',
    'DEFAULT_MODELS',
    'build_adapters',
    'get_model',
    'list_models'
]
