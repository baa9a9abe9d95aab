# okp_forecaster_src/transform_utils.py

import logging
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from helpers.temporal import shift_quarters

logger = logging.getLogger(__name__)

YOY_LAG = 4
GROWTH_POLICIES = ("actual_before_origin", "prefer_actual", "forecast_only")
FORECAST_GROWTH_COLUMNS = [
    "origin", "target_date", "horizon", "model", "point_forecast",
    "denominator_date", "denominator", "denominator_source", "yoy_growth",
]


def _ratio_growth(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    numerator = np.asarray(numerator, dtype=float)
    denominator = np.asarray(denominator, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        growth = numerator / denominator - 1.0
    growth[~np.isfinite(growth)] = np.nan
    return growth


def compute_yoy_growth(series: pd.Series, lag: int = YOY_LAG) -> pd.DataFrame:
    """
    Year-over-year growth of a quarterly series.

    Parameters
    ----------
    series : pd.Series
        Values indexed by quarter-start dates.
    lag : int
        Quarters between numerator and denominator (4 for year-over-year).

    Returns
    -------
    pd.DataFrame
        Columns ``date, value, yoy_growth`` with ``value[t] / value[t - lag] - 1``.
        Growth is NaN when the lagged date is not in the series or the
        denominator is zero.

    Examples
    --------
    >>> idx = pd.date_range("2019-01-01", periods=5, freq="QS")
    >>> round(compute_yoy_growth(pd.Series([100, 1, 1, 1, 110.0], index=idx))["yoy_growth"].iloc[-1], 6)
    0.1
    """
    lagged_dates = [shift_quarters(d, -lag) for d in series.index]
    denominator = series.reindex(lagged_dates).to_numpy(dtype=float)
    return pd.DataFrame({
        "date": series.index,
        "value": series.to_numpy(dtype=float),
        "yoy_growth": _ratio_growth(series.to_numpy(dtype=float), denominator),
    })


def _denominator(lag_date: pd.Timestamp,
                 origin: pd.Timestamp,
                 path_values: Dict[pd.Timestamp, float],
                 actual_values: Dict[pd.Timestamp, float],
                 policy: str) -> Tuple[float, Optional[str]]:
    """Pick the lagged value and say where it came from."""
    if policy == "actual_before_origin":
        if lag_date <= origin:
            if lag_date in actual_values:
                return actual_values[lag_date], "actual"
            return np.nan, None
        if lag_date in path_values:
            return path_values[lag_date], "forecast"
        return np.nan, None
    if policy == "prefer_actual":
        if lag_date in actual_values:
            return actual_values[lag_date], "actual"
        if lag_date in path_values:
            return path_values[lag_date], "forecast"
        return np.nan, None
    # forecast_only
    if lag_date in path_values:
        return path_values[lag_date], "forecast"
    return np.nan, None


def compute_forecast_yoy_growth(forecasts: pd.DataFrame,
                                actual: pd.Series,
                                lag: int = YOY_LAG,
                                policy: str = "actual_before_origin") -> pd.DataFrame:
    """
    Year-over-year growth along each (model, origin) forecast path.

    The numerator is always the forecast for the target date. Where the
    denominator comes from is set by ``policy``:

    - ``actual_before_origin``: realised value when the lagged date is at or
      before the origin, otherwise the same path's forecast
    - ``prefer_actual``: realised value whenever one exists, otherwise the
      same path's forecast
    - ``forecast_only``: the same path's forecast only (NaN for lagged dates
      before the first forecast step)

    Parameters
    ----------
    forecasts : pd.DataFrame
        Forecast records (``origin, target_date, horizon, model, point_forecast``).
    actual : pd.Series
        Realised values indexed by quarter-start dates.
    lag : int
        Growth lag in quarters.
    policy : str
        Denominator policy, one of ``GROWTH_POLICIES``.

    Returns
    -------
    pd.DataFrame
        Forecast keys plus ``denominator_date``, ``denominator``,
        ``denominator_source`` (``actual``/``forecast``/None) and ``yoy_growth``.
    """
    if policy not in GROWTH_POLICIES:
        raise ValueError(f"Unknown growth policy '{policy}'. Available: {GROWTH_POLICIES}")
    if forecasts.empty:
        return pd.DataFrame(columns=FORECAST_GROWTH_COLUMNS)

    actual_values = {pd.Timestamp(d): float(v) for d, v in actual.items()}
    rows = []
    for (model, origin), path in forecasts.groupby(["model", "origin"], sort=True):
        origin = pd.Timestamp(origin)
        path_values = {pd.Timestamp(d): float(v) for d, v in zip(path["target_date"], path["point_forecast"])}
        for row in path.sort_values("horizon").itertuples(index=False):
            lag_date = shift_quarters(row.target_date, -lag)
            value, source = _denominator(lag_date, origin, path_values, actual_values, policy)
            rows.append({
                "origin": origin,
                "target_date": pd.Timestamp(row.target_date),
                "horizon": int(row.horizon),
                "model": model,
                "point_forecast": float(row.point_forecast),
                "denominator_date": lag_date,
                "denominator": value,
                "denominator_source": source,
            })

    out = pd.DataFrame(rows)
    out["yoy_growth"] = _ratio_growth(out["point_forecast"].to_numpy(), out["denominator"].to_numpy())
    logger.debug("Computed %d forecast growth rates with policy '%s'", len(out), policy)
    return out[FORECAST_GROWTH_COLUMNS]


class GrowthCalculator:
    """
    Year-over-year growth for actual and forecast tables with one policy.

    Parameters
    ----------
    policy : str
        Denominator policy for forecast paths (see ``compute_forecast_yoy_growth``).
    lag : int
        Growth lag in quarters.
    """

    def __init__(self, policy: str = "actual_before_origin", lag: int = YOY_LAG):
        if policy not in GROWTH_POLICIES:
            raise ValueError(f"Unknown growth policy '{policy}'. Available: {GROWTH_POLICIES}")
        self.policy = policy
        self.lag = int(lag)

    def actual_growth(self, actual: pd.Series) -> pd.DataFrame:
        return compute_yoy_growth(actual, lag=self.lag)

    def forecast_growth(self, forecasts: pd.DataFrame, actual: pd.Series) -> pd.DataFrame:
        return compute_forecast_yoy_growth(forecasts, actual, lag=self.lag, policy=self.policy)
