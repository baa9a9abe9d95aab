"""Structural state space adapter ("Kalman").

Fits local linear trend + quarterly dummy seasonal + regressors by maximum
likelihood and forecasts by smoothing the window extended with missing
observations for the forecast steps.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from state_space import StateSpaceError, StateSpaceSpec, fit_structural

from .base import (
    ModelAdapter, ModelState, ForecastPath, ModelFitFailure,
    select_active_regressors, window_regressors, future_regressors, normal_interval
)

logger = logging.getLogger(__name__)


class StructuralAdapter(ModelAdapter):
    """Unobserved components model estimated with the exact diffuse Kalman filter.

    Parameters
    ----------
    seasonal_period : int
        Seasons per year.
    estimate_slope : bool
        Estimate the slope disturbance variance (fixed at zero otherwise).
    init_scale : float
        Initial variances are ``var(y) * init_scale``.
    maxiter : int
        Optimiser iteration cap.
    interval_level : float
        Prediction interval coverage in percent.
    """

    name = "Kalman"

    def __init__(self,
                 seasonal_period: int = 4,
                 estimate_slope: bool = True,
                 init_scale: float = 10.0,
                 maxiter: int = 500,
                 interval_level: float = 95.0):
        super().__init__(interval_level)
        self.seasonal_period = int(seasonal_period)
        self.estimate_slope = bool(estimate_slope)
        self.init_scale = float(init_scale)
        self.maxiter = int(maxiter)

    def build_spec(self, regressors=()) -> StateSpaceSpec:
        return StateSpaceSpec(
            seasonal_period=self.seasonal_period,
            estimate_slope=self.estimate_slope,
            regressor_names=tuple(regressors),
        )

    def fit(self, window: pd.Series, exog: Optional[pd.DataFrame] = None) -> ModelState:
        y = window.to_numpy(dtype=float)
        active = select_active_regressors(exog)
        x = window_regressors(exog, active)
        try:
            fitted = fit_structural(y, x, spec=self.build_spec(active),
                                    init_scale=self.init_scale, maxiter=self.maxiter)
        except StateSpaceError as e:
            raise ModelFitFailure(f"structural model estimation failed: {e}") from e

        return ModelState(
            model=self.name,
            origin=window.index[-1],
            train_size=len(y),
            params=dict(fitted.params),
            regressors=active,
            endog=y,
            exog=x,
            payload=fitted,
        )

    def forecast(self, state: ModelState, steps: int,
                 future_exog: Optional[pd.DataFrame] = None) -> ForecastPath:
        y_ext = np.concatenate([state.endog, np.full(steps, np.nan)])
        x_ext = None
        if state.regressors:
            x_ext = np.vstack([state.exog, future_regressors(state, steps, future_exog)])

        try:
            signal = state.payload.smooth(y_ext, x_ext)
        except StateSpaceError as e:
            raise ModelFitFailure(f"structural model smoothing failed: {e}") from e

        mean = signal.mean[-steps:]
        lower, upper = normal_interval(mean, signal.prediction_var[-steps:], self.interval_level)
        return ForecastPath(mean=mean, lower=lower, upper=upper, level=self.interval_level,
                            info={"loglike": state.payload.loglike})
