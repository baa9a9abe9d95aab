"""Seasonal ARIMA (1,1,1)(1,0,1)[4] with drift via statsmodels SARIMAX."""

import logging
import warnings
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.statespace.sarimax import SARIMAX

from .base import (
    ModelAdapter, ModelState, ForecastPath, ModelFitFailure,
    select_active_regressors, window_regressors, future_regressors
)

logger = logging.getLogger(__name__)


class SarimaAdapter(ModelAdapter):
    """SARIMAX adapter ("ARMA").

    Parameters
    ----------
    order : tuple
        Non-seasonal (p, d, q).
    seasonal_order : tuple
        Seasonal (P, D, Q, s).
    trend : str
        Deterministic term of the differenced equation; ``'c'`` with d=1 is
        a drift in levels.
    maxiter : int
        Iteration cap for the L-BFGS likelihood optimiser.
    fallback_maxiter : int
        Iteration cap for the Nelder-Mead refit of a degenerate optimum.
    interval_level : float
        Prediction interval coverage in percent.

    Notes
    -----
    A fit whose optimiser reports non-convergence is rejected with
    ``ModelFitFailure`` instead of returning a partially optimised model.
    An optimum whose log-likelihood collapses to zero (coefficients pinned
    at the unit circle) is refitted once with Nelder-Mead and rejected if it
    stays degenerate. Forecasts with a non-finite covariance are rejected
    the same way.
    """

    name = "ARMA"

    def __init__(self,
                 order: Tuple[int, int, int] = (1, 1, 1),
                 seasonal_order: Tuple[int, int, int, int] = (1, 0, 1, 4),
                 trend: Optional[str] = "c",
                 maxiter: int = 200,
                 fallback_maxiter: int = 2000,
                 interval_level: float = 95.0):
        super().__init__(interval_level)
        self.order = tuple(int(v) for v in order)
        self.seasonal_order = tuple(int(v) for v in seasonal_order)
        self.trend = trend
        self.maxiter = int(maxiter)
        self.fallback_maxiter = int(fallback_maxiter)

    def _estimate(self, model: SARIMAX, method: str, maxiter: int):
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", ConvergenceWarning)
                warnings.simplefilter("ignore", UserWarning)
                res = model.fit(disp=False, method=method, maxiter=maxiter)
        except (np.linalg.LinAlgError, ValueError, IndexError) as e:
            raise ModelFitFailure(f"SARIMAX estimation failed: {e}") from e

        if not res.mle_retvals.get("converged", True):
            raise ModelFitFailure(
                f"SARIMAX optimiser ({method}) did not converge within {maxiter} iterations"
            )
        return res

    @staticmethod
    def _degenerate_reason(res) -> Optional[str]:
        """Describe why a converged optimum is unusable, or None if it is fine."""
        params = np.asarray(res.params, dtype=float)
        if not np.isfinite(params).all() or not np.isfinite(res.llf):
            return "estimates are not finite"
        # A collapsed likelihood at the stationarity boundary
        if np.isclose(res.llf, 0.0, atol=1e-8):
            return "log-likelihood collapsed to zero"
        return None

    def fit(self, window: pd.Series, exog: Optional[pd.DataFrame] = None) -> ModelState:
        y = window.to_numpy(dtype=float)
        active = select_active_regressors(exog)
        x = window_regressors(exog, active)

        try:
            model = SARIMAX(
                y,
                x,
                order=self.order,
                seasonal_order=self.seasonal_order,
                trend=self.trend,
                simple_differencing=False,
            )
        except (np.linalg.LinAlgError, ValueError, IndexError) as e:
            raise ModelFitFailure(f"SARIMAX specification failed: {e}") from e

        res = self._estimate(model, "lbfgs", self.maxiter)
        problem = self._degenerate_reason(res)
        if problem is not None:
            logger.debug("SARIMAX lbfgs optimum rejected (%s), refitting with Nelder-Mead", problem)
            res = self._estimate(model, "nm", self.fallback_maxiter)
            problem = self._degenerate_reason(res)
            if problem is not None:
                raise ModelFitFailure(f"SARIMAX optimum is degenerate: {problem}")

        params = np.asarray(res.params, dtype=float)
        return ModelState(
            model=self.name,
            origin=window.index[-1],
            train_size=len(y),
            params=dict(zip(model.param_names, params.tolist())),
            regressors=active,
            endog=y,
            exog=x,
            payload=res,
        )

    def forecast(self, state: ModelState, steps: int,
                 future_exog: Optional[pd.DataFrame] = None) -> ForecastPath:
        res = state.payload
        fc = res.get_forecast(steps=steps, exog=future_regressors(state, steps, future_exog))
        alpha = 1.0 - self.interval_level / 100.0
        mean = np.asarray(fc.predicted_mean, dtype=float)
        variance = np.asarray(fc.var_pred_mean, dtype=float)
        ci = np.asarray(fc.conf_int(alpha=alpha), dtype=float)
        if not (np.isfinite(mean).all() and np.isfinite(variance).all() and np.isfinite(ci).all()):
            raise ModelFitFailure("SARIMAX forecast covariance is singular")
        return ForecastPath(
            mean=mean,
            lower=ci[:, 0],
            upper=ci[:, 1],
            level=self.interval_level,
            info={"aic": float(res.aic)},
        )
