"""Common contract for forecasting models evaluated in the backtest.

Every model is wrapped in a :class:`ModelAdapter` exposing two operations,
``fit`` and ``forecast``. The evaluator only talks to this interface; model
specifics never leak into the rolling-origin loop.

Regressor policy (shared by all adapters)
-----------------------------------------
- A regressor column with no variation inside the fit window is dropped,
  its coefficient is not identified from that window.
- Forecasting needs one value per step for every active regressor. Values
  come from ``future_exog`` when supplied and default to zero, which is the
  "indicator switched off" scenario for dummy regressors.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats

logger = logging.getLogger(__name__)


class ModelFitFailure(RuntimeError):
    """Raised when a model cannot be estimated on a window.

    The evaluator treats it as recoverable: the (model, origin) pair is
    skipped and evaluation continues.
    """


@dataclass(frozen=True, eq=False)
class ModelState:
    """Fitted model for one (model, origin) pair. Never reused across origins."""

    model: str
    origin: pd.Timestamp
    train_size: int
    params: Dict[str, float]
    regressors: Tuple[str, ...]
    endog: np.ndarray
    exog: Optional[np.ndarray] = None
    payload: Any = None


@dataclass(frozen=True, eq=False)
class ForecastPath:
    """Point forecasts for steps 1..H with an optional prediction interval."""

    mean: np.ndarray
    lower: Optional[np.ndarray] = None
    upper: Optional[np.ndarray] = None
    level: Optional[float] = None
    info: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        for name in ("lower", "upper"):
            bound = getattr(self, name)
            if bound is not None and len(bound) != len(self.mean):
                raise ValueError(f"{name} has {len(bound)} values but mean has {len(self.mean)}")

    def __len__(self) -> int:
        return len(self.mean)


def select_active_regressors(exog: Optional[pd.DataFrame]) -> Tuple[str, ...]:
    """Names of regressor columns that vary inside the window."""
    if exog is None or exog.shape[1] == 0:
        return ()
    active = []
    for col in exog.columns:
        values = exog[col].to_numpy(dtype=float)
        if len(values) and np.ptp(values) > 0:
            active.append(str(col))
        else:
            logger.debug("Dropping regressor '%s': no variation in fit window", col)
    return tuple(active)


def window_regressors(exog: Optional[pd.DataFrame], active: Tuple[str, ...]) -> Optional[np.ndarray]:
    if not active:
        return None
    return exog.loc[:, list(active)].to_numpy(dtype=float)


def future_regressors(state: ModelState, steps: int,
                      future_exog: Optional[pd.DataFrame] = None) -> Optional[np.ndarray]:
    """Regressor matrix (steps x active regressors) for the forecast period.

    Columns missing from ``future_exog`` (or all columns when it is None)
    are filled with zeros.
    """
    if not state.regressors:
        return None
    out = np.zeros((steps, len(state.regressors)))
    if future_exog is None:
        return out
    if len(future_exog) < steps:
        raise ValueError(f"future_exog has {len(future_exog)} rows, need {steps}")
    for j, name in enumerate(state.regressors):
        if name in future_exog.columns:
            out[:, j] = future_exog[name].to_numpy(dtype=float)[:steps]
    return out


def normal_interval(mean: np.ndarray, variance: np.ndarray, level: float) -> Tuple[np.ndarray, np.ndarray]:
    """Central Gaussian prediction interval at ``level`` percent."""
    z = stats.norm.ppf(0.5 + level / 200.0)
    half = z * np.sqrt(np.maximum(variance, 0.0))
    return mean - half, mean + half


class ModelAdapter(ABC):
    """Interface between the rolling-origin evaluator and a forecasting model.

    Parameters
    ----------
    interval_level : float
        Coverage of the prediction interval in percent.
    """

    name: str = "model"

    def __init__(self, interval_level: float = 95.0):
        if not 0 < interval_level < 100:
            raise ValueError("interval_level must be between 0 and 100")
        self.interval_level = float(interval_level)

    @abstractmethod
    def fit(self, window: pd.Series, exog: Optional[pd.DataFrame] = None) -> ModelState:
        """Estimate the model on ``window`` (and aligned ``exog`` rows).

        Raises
        ------
        ModelFitFailure
            If estimation fails for this window.
        """

    @abstractmethod
    def forecast(self, state: ModelState, steps: int,
                 future_exog: Optional[pd.DataFrame] = None) -> ForecastPath:
        """Forecast ``steps`` quarters beyond the end of the fit window."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
