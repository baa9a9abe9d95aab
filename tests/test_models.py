import types

import numpy as np
import pandas as pd

import pytest


def _quarterly(values, start="2010-01-01"):
    idx = pd.date_range(start, periods=len(values), freq="QS", name="date")
    return pd.Series(np.asarray(values, dtype=float), index=idx, name="value")


def _seasonal(n=40, seed=42):
    rng = np.random.default_rng(seed)
    t = np.arange(n)
    season = np.tile([5.0, -2.0, 3.0, -6.0], n // 4 + 1)[:n]
    return _quarterly(200.0 + 1.2 * t + season + rng.normal(0, 0.8, size=n))


def test_random_walk_continues_a_linear_series_exactly():
    from forecast_models import RandomWalkDriftAdapter

    y = _quarterly(10.0 + 2.0 * np.arange(20))
    adapter = RandomWalkDriftAdapter()
    state = adapter.fit(y)
    path = adapter.forecast(state, 8)

    expected = y.iloc[-1] + 2.0 * np.arange(1, 9)
    np.testing.assert_allclose(path.mean, expected)
    assert state.params["drift"] == pytest.approx(2.0)
    assert state.origin == y.index[-1]
    # Zero residual variance collapses the interval onto the point forecast
    np.testing.assert_allclose(path.lower, path.mean)
    np.testing.assert_allclose(path.upper, path.mean)


def test_random_walk_drift_is_mean_first_difference():
    from forecast_models import RandomWalkDriftAdapter

    y = _seasonal(24)
    state = RandomWalkDriftAdapter().fit(y)
    assert state.params["drift"] == pytest.approx((y.iloc[-1] - y.iloc[0]) / (len(y) - 1))


def test_random_walk_interval_widens_with_horizon():
    from forecast_models import RandomWalkDriftAdapter

    adapter = RandomWalkDriftAdapter(interval_level=80)
    path = adapter.forecast(adapter.fit(_seasonal(24)), 8)
    width = path.upper - path.lower
    assert np.all(np.diff(width) > 0)
    assert path.level == 80.0


def test_random_walk_with_indicator_regressor():
    from forecast_models import RandomWalkDriftAdapter

    n = 20
    x = np.zeros(n)
    x[10:15] = 1.0
    y = _quarterly(5.0 + np.arange(n) + 3.0 * x)
    exog = pd.DataFrame({"covid": x}, index=y.index)

    adapter = RandomWalkDriftAdapter()
    state = adapter.fit(y, exog)
    assert state.regressors == ("covid",)
    assert state.params["drift"] == pytest.approx(1.0)
    assert state.params["beta.covid"] == pytest.approx(3.0)

    # Indicator switched on for the whole forecast period
    future = pd.DataFrame({"covid": np.ones(4)})
    path = adapter.forecast(state, 4, future)
    np.testing.assert_allclose(path.mean, y.iloc[-1] + np.arange(1, 5) + 3.0)

    # Default: indicator off, same as the last window value
    path_off = adapter.forecast(state, 4)
    np.testing.assert_allclose(path_off.mean, y.iloc[-1] + np.arange(1, 5))


def test_constant_regressor_is_dropped_from_the_window():
    from forecast_models import RandomWalkDriftAdapter

    y = _seasonal(24)
    exog = pd.DataFrame({"covid": np.zeros(len(y))}, index=y.index)
    state = RandomWalkDriftAdapter().fit(y, exog)
    assert state.regressors == ()
    assert state.exog is None


def test_future_regressors_default_to_zero():
    from forecast_models.base import ModelState, future_regressors

    state = ModelState(model="RW", origin=pd.Timestamp("2020-01-01"), train_size=10,
                       params={}, regressors=("covid", "lockdown"), endog=np.zeros(10))
    np.testing.assert_array_equal(future_regressors(state, 3), np.zeros((3, 2)))

    partial = pd.DataFrame({"covid": [1.0, 1.0, 0.0]})
    out = future_regressors(state, 3, partial)
    np.testing.assert_array_equal(out[:, 0], [1.0, 1.0, 0.0])
    np.testing.assert_array_equal(out[:, 1], [0.0, 0.0, 0.0])

    with pytest.raises(ValueError):
        future_regressors(state, 4, partial)


def test_random_walk_needs_three_observations():
    from forecast_models import ModelFitFailure, RandomWalkDriftAdapter

    with pytest.raises(ModelFitFailure):
        RandomWalkDriftAdapter().fit(_quarterly([1.0, 2.0]))


def test_sarima_forecast_path_has_horizon_length():
    from forecast_models import SarimaAdapter

    adapter = SarimaAdapter(maxiter=500)
    state = adapter.fit(_seasonal(40))
    path = adapter.forecast(state, 8)

    assert len(path) == 8
    assert np.isfinite(path.mean).all()
    assert np.all(path.lower < path.mean)
    assert np.all(path.mean < path.upper)
    assert "intercept" in state.params
    # Forecasts stay near the level of the last observations
    assert np.all(np.abs(path.mean - 250.0) < 60.0)


class _CollapsedResults:
    """Optimum pinned at the unit circle: zero log-likelihood, no usable covariance."""

    params = np.array([0.17, 0.99999992, -0.99999984, 0.999999999, -0.9999995, 1658.6])
    aic = 12.0
    mle_retvals = {"converged": True}

    def __init__(self, llf=-0.0):
        self.llf = llf

    def get_forecast(self, steps, exog=None):
        return types.SimpleNamespace(
            predicted_mean=9.0e16 + np.arange(steps, dtype=float),
            var_pred_mean=np.full(steps, np.nan),
            conf_int=lambda alpha: np.full((steps, 2), np.nan),
        )


def _fake_sarimax(monkeypatch, llf=-0.0):
    import forecast_models.sarima as sarima

    methods = []

    class _FakeSARIMAX:
        param_names = ["intercept", "ar.L1", "ma.L1", "ar.S.L4", "ma.S.L4", "sigma2"]

        def __init__(self, *args, **kwargs):
            pass

        def fit(self, disp=False, method="lbfgs", maxiter=50):
            methods.append(method)
            return _CollapsedResults(llf)

    monkeypatch.setattr(sarima, "SARIMAX", _FakeSARIMAX)
    return methods


def test_sarima_collapsed_optimum_is_refitted_then_rejected(monkeypatch):
    from forecast_models import ModelFitFailure, SarimaAdapter

    methods = _fake_sarimax(monkeypatch)
    with pytest.raises(ModelFitFailure, match="degenerate"):
        SarimaAdapter().fit(_seasonal(40))
    assert methods == ["lbfgs", "nm"]


def test_sarima_singular_forecast_covariance_is_a_fit_failure(monkeypatch):
    from forecast_models import ModelFitFailure, SarimaAdapter

    methods = _fake_sarimax(monkeypatch, llf=-79.6)
    adapter = SarimaAdapter()
    state = adapter.fit(_seasonal(40))
    assert methods == ["lbfgs"]

    with pytest.raises(ModelFitFailure, match="singular"):
        adapter.forecast(state, 3)


def test_degenerate_sarima_origins_are_skipped_by_the_evaluator(monkeypatch):
    from backtesting import BacktestConfig, run_rolling_origin_backtest
    from forecast_models import RandomWalkDriftAdapter, SarimaAdapter

    _fake_sarimax(monkeypatch)
    y = _seasonal(32)
    result = run_rolling_origin_backtest(y, [SarimaAdapter(), RandomWalkDriftAdapter()],
                                         config=BacktestConfig(min_train_size=20, forecast_horizon=4))
    df = result.forecasts_frame()

    assert set(df["model"]) == {"RW"}
    assert len(result.failures) == len(result.origins)
    assert all(f.model == "ARMA" for f in result.failures)
    assert len(df) == 4 * len(result.origins)


def test_sarima_iteration_cap_is_a_fit_failure():
    from forecast_models import ModelFitFailure, SarimaAdapter

    with pytest.raises(ModelFitFailure):
        SarimaAdapter(maxiter=1).fit(_seasonal(40))


def test_structural_adapter_forecasts_seasonal_pattern():
    from forecast_models import StructuralAdapter

    full = _seasonal(44, seed=3)
    window, future = full.iloc[:36], full.iloc[36:]
    adapter = StructuralAdapter()
    state = adapter.fit(window)
    path = adapter.forecast(state, 8)

    assert len(path) == 8
    assert state.model == "Kalman"
    assert np.sqrt(np.mean((path.mean - future.to_numpy()) ** 2)) < 4.0
    assert np.all(path.lower < path.mean)


def test_structural_adapter_wraps_estimation_errors():
    from forecast_models import ModelFitFailure, StructuralAdapter

    with pytest.raises(ModelFitFailure):
        StructuralAdapter().fit(_quarterly([1.0, 2.0, 3.0, 4.0]))


def test_registry_builds_adapters_in_requested_order():
    from forecast_models import build_adapters, get_model, list_models
    from okp_forecaster_src.config_utils import ConfigurationManager

    assert list_models() == ["Kalman", "ARMA", "RW"]
    assert get_model("rw").name == "RW"
    with pytest.raises(ValueError):
        get_model("prophet")

    assert [a.name for a in build_adapters()] == ["Kalman", "ARMA", "RW"]
    assert [a.name for a in build_adapters(["RW", "kalman", "RW"])] == ["RW", "Kalman"]

    cfg = ConfigurationManager({"models": {"arma": {"maxiter": 50}, "kalman": {"estimate_slope": False}}})
    arma, kalman = build_adapters(["ARMA", "Kalman"], cfg, interval_level=80)
    assert arma.maxiter == 50
    assert arma.interval_level == 80.0
    assert kalman.estimate_slope is False
