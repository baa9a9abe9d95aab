import pandas as pd
import numpy as np

import pytest


def _actual(n=6, start="2020-01-01"):
    idx = pd.date_range(start, periods=n, freq="QS", name="date")
    return pd.Series(np.arange(n, dtype=float) * 10.0, index=idx, name="value")


def _forecasts(origin, horizons, model="RW", value=1.0):
    from helpers.temporal import shift_quarters

    origin = pd.Timestamp(origin)
    return pd.DataFrame({
        "origin": [origin] * len(horizons),
        "target_date": [shift_quarters(origin, h) for h in horizons],
        "horizon": list(horizons),
        "model": model,
        "point_forecast": value,
    })


def test_realised_values_join_on_target_date():
    # Import lazily to keep import path stable under pytest
    from backtesting.alignment import ALIGNED_COLUMNS, ForecastAligner

    actual = _actual(n=5)
    forecasts = _forecasts("2020-04-01", [1, 2, 3, 4])
    aligned = ForecastAligner().align(forecasts, actual)

    assert list(aligned.columns) == ALIGNED_COLUMNS
    # 2020Q3..2021Q2: only the first three target dates are observed
    assert aligned["realized"].iloc[:3].tolist() == [20.0, 30.0, 40.0]
    assert np.isnan(aligned["realized"].iloc[3])
    assert aligned["lower"].isna().all()


def test_rows_are_sorted_by_model_origin_horizon():
    from backtesting.alignment import ForecastAligner

    forecasts = pd.concat([
        _forecasts("2020-07-01", [2, 1], model="RW"),
        _forecasts("2020-04-01", [1, 2], model="RW"),
        _forecasts("2020-04-01", [1, 2], model="Kalman"),
    ], ignore_index=True)
    aligned = ForecastAligner().align(forecasts, _actual())

    assert aligned["model"].tolist() == ["Kalman", "Kalman", "RW", "RW", "RW", "RW"]
    assert aligned["horizon"].tolist() == [1, 2, 1, 2, 1, 2]


def test_horizon_filter_drops_longer_steps():
    from backtesting.alignment import ForecastAligner

    aligned = ForecastAligner(horizon=2).align(_forecasts("2020-01-01", [1, 2, 3, 4]), _actual())
    assert aligned["horizon"].tolist() == [1, 2]


def test_inconsistent_horizon_raises():
    from backtesting.alignment import AlignmentInconsistency, ForecastAligner

    forecasts = _forecasts("2020-01-01", [1, 2, 3])
    forecasts.loc[1, "horizon"] = 5
    with pytest.raises(AlignmentInconsistency, match="inconsistent horizon"):
        ForecastAligner().align(forecasts, _actual())


def test_duplicate_key_raises():
    from backtesting.alignment import AlignmentInconsistency, ForecastAligner

    forecasts = _forecasts("2020-01-01", [1, 2])
    forecasts = pd.concat([forecasts, forecasts.iloc[[0]]], ignore_index=True)
    with pytest.raises(AlignmentInconsistency, match="share a key"):
        ForecastAligner().align(forecasts, _actual())


def test_missing_columns_raise():
    from backtesting.alignment import AlignmentInconsistency, ForecastAligner

    with pytest.raises(AlignmentInconsistency):
        ForecastAligner().align(_forecasts("2020-01-01", [1]).drop(columns=["horizon"]), _actual())
