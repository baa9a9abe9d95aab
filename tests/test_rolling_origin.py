import numpy as np
import pandas as pd

import pytest

from forecast_models.base import ForecastPath, ModelAdapter, ModelFitFailure, ModelState


def _quarterly(values, start="2012-01-01"):
    idx = pd.date_range(start, periods=len(values), freq="QS", name="date")
    return pd.Series(np.asarray(values, dtype=float), index=idx, name="value")


class RecordingAdapter(ModelAdapter):
    """Naive forecaster that remembers every window it was fitted on."""

    name = "Naive"

    def __init__(self, fail_at=()):
        super().__init__()
        self.fail_at = {pd.Timestamp(d) for d in fail_at}
        self.windows = []
        self.future_exog = []

    def fit(self, window, exog=None):
        self.windows.append(window.copy())
        if window.index[-1] in self.fail_at:
            raise ModelFitFailure("synthetic failure")
        return ModelState(model=self.name, origin=window.index[-1], train_size=len(window),
                          params={}, regressors=(), endog=window.to_numpy())

    def forecast(self, state, steps, future_exog=None):
        self.future_exog.append(future_exog)
        return ForecastPath(mean=np.full(steps, state.endog[-1]))


def test_origin_indices_cover_every_quarter_plus_final():
    from backtesting.rolling_origin import BacktestConfig, RollingOriginEvaluator

    evaluator = RollingOriginEvaluator([RecordingAdapter()], BacktestConfig(min_train_size=20, forecast_horizon=8))
    assert evaluator.historical_origin_indices(36) == list(range(20, 29))
    assert evaluator.origin_indices(36) == list(range(20, 29)) + [36]

    no_final = RollingOriginEvaluator(
        [RecordingAdapter()], BacktestConfig(min_train_size=20, forecast_horizon=8, include_final_origin=False)
    )
    assert no_final.origin_indices(36) == list(range(20, 29))


def test_boundary_length_gives_one_historical_origin():
    from backtesting.rolling_origin import BacktestConfig, RollingOriginEvaluator

    y = _quarterly(np.arange(28) + 1.0)
    result = RollingOriginEvaluator([RecordingAdapter()], BacktestConfig()).evaluate(y)

    assert result.n_historical_origins == 1
    assert result.origins == [y.index[19], y.index[27]]
    assert len(result.records) == 2 * 8


def test_short_series_only_gets_the_final_origin():
    from backtesting.rolling_origin import BacktestConfig, RollingOriginEvaluator

    y = _quarterly(np.arange(24) + 1.0)
    result = RollingOriginEvaluator([RecordingAdapter()], BacktestConfig()).evaluate(y)

    assert result.n_historical_origins == 0
    assert result.origins == [y.index[-1]]
    assert len(result.records) == 8


def test_series_shorter_than_min_train_size_is_rejected():
    from backtesting.rolling_origin import BacktestConfig, RollingOriginEvaluator

    with pytest.raises(ValueError, match="Insufficient"):
        RollingOriginEvaluator([RecordingAdapter()], BacktestConfig()).evaluate(_quarterly(np.arange(10.0)))


def test_records_follow_origin_and_horizon_arithmetic():
    from backtesting.rolling_origin import BacktestConfig, RollingOriginEvaluator
    from helpers.temporal import quarters_between

    y = _quarterly(np.arange(30) + 1.0)
    result = RollingOriginEvaluator([RecordingAdapter()], BacktestConfig(forecast_horizon=4)).evaluate(y)
    df = result.forecasts_frame()

    assert (df.groupby(["model", "origin"]).size() == 4).all()
    assert np.array_equal(quarters_between(df["origin"], df["target_date"]), df["horizon"].to_numpy())
    assert list(df.columns) == ["origin", "target_date", "horizon", "model", "point_forecast", "lower", "upper"]
    assert df.equals(df.sort_values(["model", "origin", "horizon"]).reset_index(drop=True))
    # Naive forecast equals the last value of the training window
    first = df[df["origin"] == y.index[19]]
    assert (first["point_forecast"] == y.iloc[19]).all()


def test_windows_never_see_data_after_the_origin():
    from backtesting.rolling_origin import BacktestConfig, RollingOriginEvaluator

    adapter = RecordingAdapter()
    y = _quarterly(np.arange(32) + 1.0)
    RollingOriginEvaluator([adapter], BacktestConfig()).evaluate(y)

    ends = [w.index[-1] for w in adapter.windows]
    assert ends == list(y.index[19:24]) + [y.index[-1]]
    assert all(w.index[0] == y.index[0] for w in adapter.windows)


def test_rolling_windows_have_constant_length():
    from backtesting.rolling_origin import BacktestConfig, RollingOriginEvaluator

    adapter = RecordingAdapter()
    config = BacktestConfig(min_train_size=12, window_type="rolling", max_train_size=16)
    RollingOriginEvaluator([adapter], config).evaluate(_quarterly(np.arange(30) + 1.0))

    lengths = [len(w) for w in adapter.windows]
    assert lengths[0] == 12
    assert lengths[-1] == 16
    assert max(lengths) == 16


def test_fit_failure_skips_only_that_origin():
    from backtesting.rolling_origin import BacktestConfig, RollingOriginEvaluator

    y = _quarterly(np.arange(30) + 1.0)
    bad_origin = y.index[21]
    result = RollingOriginEvaluator([RecordingAdapter(fail_at=[bad_origin])], BacktestConfig()).evaluate(y)
    df = result.forecasts_frame()

    assert bad_origin not in set(df["origin"])
    assert df["origin"].nunique() == len(result.origins) - 1
    assert len(result.failures) == 1
    assert result.failures[0].origin == bad_origin
    assert result.failures_frame()["reason"].iloc[0] == "synthetic failure"
    assert result.success_rate == pytest.approx(1 - 1 / len(result.origins))


def test_actual_regressor_policy_passes_realised_values():
    from backtesting.rolling_origin import BacktestConfig, RollingOriginEvaluator

    y = _quarterly(np.arange(24) + 1.0)
    x = pd.DataFrame({"covid": np.r_[np.zeros(21), np.ones(3)]}, index=y.index)

    adapter = RecordingAdapter()
    config = BacktestConfig(forecast_horizon=4, future_regressor_policy="actual")
    RollingOriginEvaluator([adapter], config).evaluate(y, x)

    first = adapter.future_exog[0]
    assert first["covid"].tolist() == [0.0, 1.0, 1.0, 1.0]
    # Beyond the sample the indicator is assumed off
    assert adapter.future_exog[-1]["covid"].tolist() == [0.0, 0.0, 0.0, 0.0]

    zero_adapter = RecordingAdapter()
    RollingOriginEvaluator([zero_adapter], BacktestConfig(forecast_horizon=4)).evaluate(y, x)
    assert all(f is None for f in zero_adapter.future_exog)


def test_parallel_run_matches_sequential_run():
    from backtesting.rolling_origin import BacktestConfig, RollingOriginEvaluator
    from forecast_models import RandomWalkDriftAdapter

    rng = np.random.default_rng(42)
    y = _quarterly(100 + np.cumsum(rng.normal(0.5, 1.0, size=32)))

    seq = RollingOriginEvaluator([RandomWalkDriftAdapter()], BacktestConfig(n_jobs=1)).evaluate(y)
    par = RollingOriginEvaluator([RandomWalkDriftAdapter()], BacktestConfig(n_jobs=2)).evaluate(y)

    pd.testing.assert_frame_equal(seq.forecasts_frame(), par.forecasts_frame())


def test_config_validation_and_config_manager_overrides():
    from backtesting.rolling_origin import BacktestConfig
    from okp_forecaster_src.config_utils import ConfigurationManager

    with pytest.raises(ValueError):
        BacktestConfig(window_type="sliding")
    with pytest.raises(ValueError):
        BacktestConfig(min_train_size=20, max_train_size=10)
    with pytest.raises(ValueError):
        BacktestConfig(future_regressor_policy="guess")

    cfg = ConfigurationManager({"backtesting": {"rolling_origin": {"min_train_size": 12, "forecast_horizon": 4}}})
    config = BacktestConfig.from_config_manager(cfg, forecast_horizon=6, window_type=None)
    assert config.min_train_size == 12
    assert config.forecast_horizon == 6
    assert config.window_type == "expanding"


def test_duplicate_model_names_are_rejected():
    from backtesting.rolling_origin import RollingOriginEvaluator

    with pytest.raises(ValueError, match="Duplicate"):
        RollingOriginEvaluator([RecordingAdapter(), RecordingAdapter()])
