"""Random walk with drift, ARIMA(0,1,0) + constant.

Closed form: the drift is the mean first difference (or, with regressors,
the intercept of an OLS regression of ``diff(y)`` on ``diff(x)``). The
h-step forecast is ``y_T + h * drift + (x_{T+h} - x_T)' beta``.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm

from .base import (
    ModelAdapter, ModelState, ForecastPath, ModelFitFailure,
    select_active_regressors, window_regressors, future_regressors, normal_interval
)

logger = logging.getLogger(__name__)


class RandomWalkDriftAdapter(ModelAdapter):
    """Random walk with drift benchmark ("RW")."""

    name = "RW"

    def fit(self, window: pd.Series, exog: Optional[pd.DataFrame] = None) -> ModelState:
        y = window.to_numpy(dtype=float)
        n = len(y)
        if n < 3:
            raise ModelFitFailure(f"random walk with drift needs at least 3 observations, got {n}")

        active = select_active_regressors(exog)
        x = window_regressors(exog, active)
        dy = np.diff(y)

        if x is None:
            drift = float(dy.mean())
            sigma2 = float(dy.var(ddof=1))
            beta = np.zeros(0)
        else:
            design = sm.add_constant(np.diff(x, axis=0), has_constant="add")
            if design.shape[1] >= len(dy):
                raise ModelFitFailure("not enough differences to estimate drift and regressor effects")
            res = sm.OLS(dy, design).fit()
            drift = float(res.params[0])
            beta = np.asarray(res.params[1:], dtype=float)
            sigma2 = float(res.scale)

        if not np.isfinite(drift) or not np.isfinite(sigma2):
            raise ModelFitFailure("random walk drift estimate is not finite")

        params = {"drift": drift, "sigma2": sigma2}
        params.update({f"beta.{name}": float(b) for name, b in zip(active, beta)})
        return ModelState(
            model=self.name,
            origin=window.index[-1],
            train_size=n,
            params=params,
            regressors=active,
            endog=y,
            exog=x,
            payload=beta,
        )

    def forecast(self, state: ModelState, steps: int,
                 future_exog: Optional[pd.DataFrame] = None) -> ForecastPath:
        h = np.arange(1, steps + 1, dtype=float)
        mean = state.endog[-1] + h * state.params["drift"]

        x_future = future_regressors(state, steps, future_exog)
        if x_future is not None:
            mean = mean + (x_future - state.exog[-1]) @ state.payload

        # Drift estimation error adds h/(n-1) per step
        n = state.train_size
        variance = state.params["sigma2"] * h * (1.0 + h / (n - 1))
        lower, upper = normal_interval(mean, variance, self.interval_level)
        return ForecastPath(mean=mean, lower=lower, upper=upper, level=self.interval_level)
