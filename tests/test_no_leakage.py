import pandas as pd
import numpy as np

import pytest


@pytest.mark.parametrize("model", ["RW", "Kalman"])
def test_future_values_do_not_change_earlier_forecasts(model):
    """
    Rewriting observations after an origin must leave the forecasts made at
    that origin untouched: each fit only sees data up to its origin.
    """
    from backtesting import BacktestConfig, run_rolling_origin_backtest
    from forecast_models import build_adapters

    rng = np.random.default_rng(42)
    idx = pd.date_range("2013-01-01", periods=30, freq="QS")
    season = np.tile([4.0, -1.0, 2.0, -5.0], 8)[:30]
    y = pd.Series(80.0 + 0.6 * np.arange(30) + season + rng.normal(0, 0.4, size=30), index=idx)

    y_changed = y.copy()
    y_changed.iloc[24:] += 25.0

    config = BacktestConfig(min_train_size=20, forecast_horizon=4)
    base = run_rolling_origin_backtest(y, build_adapters([model]), config=config).forecasts_frame()
    other = run_rolling_origin_backtest(y_changed, build_adapters([model]), config=config).forecasts_frame()

    cutoff = idx[23]
    early_base = base[base["origin"] <= cutoff].reset_index(drop=True)
    early_other = other[other["origin"] <= cutoff].reset_index(drop=True)

    assert len(early_base) == 5 * 4
    pd.testing.assert_frame_equal(early_base, early_other)
    # Later origins do see the shift
    assert not np.allclose(base["point_forecast"].iloc[-4:], other["point_forecast"].iloc[-4:])
