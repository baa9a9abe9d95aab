import json
from pathlib import Path

import numpy as np
import pandas as pd

import pytest


def _write_series(path: Path, n=28, start="2015-03-31"):
    rng = np.random.default_rng(42)
    dates = pd.date_range(start, periods=n, freq="QE")
    season = np.tile([3.0, -1.0, 1.5, -3.5], n // 4 + 1)[:n]
    values = 900.0 + 6.0 * np.arange(n) + season + rng.normal(0, 1.0, size=n)
    pd.DataFrame({"Date": dates.strftime("%Y-%m-%d"), "Value": values}).to_csv(path, index=False)
    return path


def test_cli_writes_tables_and_eval_log(tmp_path: Path, capsys):
    from okp_forecaster_src.main import main

    series = _write_series(tmp_path / "okp.csv")
    out_dir = tmp_path / "out"
    eval_md = tmp_path / "eval.md"

    main([
        "--series-csv", str(series),
        "--output-dir", str(out_dir),
        "--models", "rw,kalman",
        "--no-plots",
        "--eval-md", str(eval_md),
        "--log-level", "WARNING",
    ])

    for name in ("rmse", "coverage", "forecasts", "aligned", "yoy_forecast", "kalman_smoothed"):
        assert (out_dir / f"{name}.csv").exists()
    rmse = pd.read_csv(out_dir / "rmse.csv")
    assert set(rmse["model"]) == {"RW", "Kalman"}
    assert list(rmse.columns) == ["model", "horizon", "rmse", "sample_count"]

    fingerprint = json.loads((out_dir / "fingerprint.json").read_text())
    assert fingerprint["n_obs"] == 28
    assert fingerprint["date_range"][0] == "2015-01-01"

    printed = capsys.readouterr().out
    assert "Performance Summary" in printed
    assert "Performance Summary" in eval_md.read_text()
    assert not (out_dir / "figures").exists()


def test_workflow_honours_cli_overrides_and_renders_figures(tmp_path: Path):
    from okp_forecaster_src.main import run_evaluation_workflow, setup_cli_parser

    series = _write_series(tmp_path / "okp.csv", n=24)
    out_dir = tmp_path / "out"
    args = setup_cli_parser().parse_args([
        "--series-csv", str(series),
        "--output-dir", str(out_dir),
        "--models", "RW",
        "--horizon", "4",
        "--min-train-size", "16",
        "--no-regressor",
        "--quiet",
    ])
    result = run_evaluation_workflow(args)

    assert result.backtest.config.forecast_horizon == 4
    assert result.backtest.n_historical_origins == 5
    assert list(result.metrics["horizon"]) == [1, 2, 3, 4]
    assert (out_dir / "figures" / "rmse_by_horizon.png").exists()
    assert (out_dir / "figures" / "forecast_paths.png").exists()


def test_cli_reports_input_errors_without_traceback(tmp_path: Path):
    from okp_forecaster_src.main import main

    with pytest.raises(SystemExit, match="Input error"):
        main(["--series-csv", str(tmp_path / "missing.csv"), "--no-plots", "--quiet"])

    gap = tmp_path / "gap.csv"
    pd.DataFrame({"Date": ["2020-03-31", "2020-06-30", "2020-12-31"], "Value": [1.0, 2.0, 3.0]}).to_csv(gap, index=False)
    with pytest.raises(SystemExit, match="gap"):
        main(["--series-csv", str(gap), "--no-plots", "--quiet", "--output-dir", str(tmp_path / "o")])


def test_models_argument_parsing():
    from okp_forecaster_src.parsing_utils import parse_models_arg

    assert parse_models_arg("rw, kalman") == ["RW", "Kalman"]
    assert parse_models_arg("") == ["Kalman", "ARMA", "RW"]
    with pytest.raises(ValueError):
        parse_models_arg("ets")
