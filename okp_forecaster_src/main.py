# okp_forecaster_src/main.py

"""
Rolling-origin forecast evaluation for quarterly OKP costs per insured.

This is the main entry point of the OKP forecast evaluation.

Purpose
-------
- Load a quarterly cost series from CSV and validate the quarterly grid
- Build the COVID indicator regressor (2020Q2-2021Q4 by default)
- Refit the structural Kalman model, seasonal ARIMA with drift and a random
  walk with drift at every forecast origin and forecast 8 quarters ahead
- Score forecasts against realised values as RMSE per model and horizon
- Report year-over-year growth of actual and forecast paths
- Save tables, RMSE and fan charts to the output directory

Configuration-Driven Workflow
-----------------------------
Defaults live in okp_forecaster_src/defaults.yaml. A YAML file passed with
--config is merged over them, and CLI arguments override both.
"""

import argparse
import logging
import warnings
from pathlib import Path
from typing import List, Optional

from backtesting.alignment import AlignmentInconsistency
from backtesting.evaluation_pipeline import EvaluationResult, run_full_pipeline
from backtesting.metrics_aggregation import create_performance_summary
from backtesting.rolling_origin import BacktestConfig
from helpers.log_utils import append_eval_log
from validation.data_integrity import DataIntegrityError

from .config_utils import ConfigurationError, load_config, get_config_value
from .data_utils import load_cost_series_csv, build_indicator_regressor
from .file_utils import write_result_tables
from .parsing_utils import parse_models_arg, validate_growth_policy, validate_log_level
from .plotting_utils import plot_rmse_by_horizon, plot_forecast_paths

logger = logging.getLogger(__name__)


def setup_cli_parser() -> argparse.ArgumentParser:
    """
    Set up the command-line argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        description="Rolling-origin evaluation of Kalman, seasonal ARIMA and random walk forecasts "
                    "for a quarterly cost series."
    )

    # Data and output arguments
    parser.add_argument(
        "--series-csv", type=str, required=True,
        help="CSV with one row per quarter (date and value columns)."
    )
    parser.add_argument("--date-column", type=str, default=None, help="Name of the date column.")
    parser.add_argument("--value-column", type=str, default=None, help="Name of the value column.")
    parser.add_argument(
        "--config", type=str, default=None,
        help="YAML file merged over the packaged defaults."
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Directory for result tables and figures."
    )
    parser.add_argument("--no-plots", action="store_true", help="Skip figure rendering.")
    parser.add_argument(
        "--eval-md", type=str, default=None,
        help="Append the run summary to this markdown evaluation log."
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity level."
    )
    parser.add_argument("--quiet", action="store_true", help="Do not print the summary tables.")

    # Evaluation arguments
    parser.add_argument("--horizon", type=int, default=None, help="Forecast horizon H in quarters.")
    parser.add_argument("--min-train-size", type=int, default=None, help="Minimum training window L_min.")
    parser.add_argument(
        "--window-type", type=str, default=None, choices=["expanding", "rolling"],
        help="Training window type."
    )
    parser.add_argument("--max-train-size", type=int, default=None, help="Window length for rolling windows.")
    parser.add_argument(
        "--models", type=str, default=None,
        help="Comma-separated models to evaluate (Kalman, ARMA, RW)."
    )
    parser.add_argument("--n-jobs", type=int, default=None, help="Worker processes for model fits.")

    # Regressor and growth arguments
    parser.add_argument("--regressor-start", type=str, default=None, help="First date of the COVID indicator.")
    parser.add_argument("--regressor-end", type=str, default=None, help="Last date of the COVID indicator.")
    parser.add_argument("--no-regressor", action="store_true", help="Evaluate without the COVID indicator.")
    parser.add_argument(
        "--future-regressor-policy", type=str, default=None, choices=["zero", "actual"],
        help="Regressor values assumed over forecast periods."
    )
    parser.add_argument(
        "--growth-policy", type=str, default=None,
        choices=["actual_before_origin", "prefer_actual", "forecast_only"],
        help="Where year-over-year denominators of forecast paths come from."
    )
    return parser


def setup_logging(log_level: str) -> None:
    """
    Configure logging with specified level and warning filters.

    Parameters
    ----------
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = validate_log_level(log_level)
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    # Configure warnings based on log level
    if level == "DEBUG":
        warnings.resetwarnings()
        warnings.filterwarnings("default")
    else:
        from statsmodels.tools.sm_exceptions import ConvergenceWarning
        warnings.filterwarnings("ignore", category=ConvergenceWarning)
        warnings.filterwarnings("ignore", category=FutureWarning)
        warnings.filterwarnings("ignore", category=UserWarning, module="statsmodels")


def format_run_summary(result: EvaluationResult) -> str:
    """Console summary: RMSE table, skipped fits and the latest Kalman growth path."""
    lines = [create_performance_summary(result.metrics, result.coverage)]

    if not result.failures.empty:
        lines.append("")
        lines.append(f"Skipped fits: {len(result.failures)}")
        for row in result.failures.itertuples(index=False):
            lines.append(f"  {row.model} @ {row.origin.date()}: {row.reason}")

    latest = result.latest_growth_path("Kalman")
    if not latest.empty:
        lines.append("")
        lines.append(f"Kalman YoY growth path from origin {latest['origin'].iloc[0].date()}:")
        lines.append("-" * 30)
        for row in latest.itertuples(index=False):
            growth = "n/a" if row.yoy_growth != row.yoy_growth else f"{row.yoy_growth:+.2%}"
            lines.append(f"  {row.target_date.date()}  h={row.horizon}  {row.point_forecast:10.2f}  {growth}")
    return "\n".join(lines)


def run_evaluation_workflow(args: argparse.Namespace) -> EvaluationResult:
    """
    Execute the evaluation for one series CSV.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed CLI arguments

    Returns
    -------
    EvaluationResult
        All result tables of the run
    """
    config_manager = load_config(args.config)

    date_column = get_config_value(config_manager, "data.date_column", "Date", args, "date_column")
    value_column = get_config_value(config_manager, "data.value_column", "Value", args, "value_column")
    series_path = Path(args.series_csv)
    endog = load_cost_series_csv(series_path, date_column, value_column)
    logger.info("Loaded %d quarterly observations (%s..%s)", len(endog),
                endog.index[0].date(), endog.index[-1].date())

    exog = None
    if not args.no_regressor and config_manager.get("regressors.covid.enabled", True):
        exog = build_indicator_regressor(
            endog.index,
            start=get_config_value(config_manager, "regressors.covid.start", "2020-04-01", args, "regressor_start"),
            end=get_config_value(config_manager, "regressors.covid.end", "2021-12-31", args, "regressor_end"),
            name="covid",
        )

    backtest_config = BacktestConfig.from_config_manager(
        config_manager,
        forecast_horizon=args.horizon,
        min_train_size=args.min_train_size,
        window_type=args.window_type,
        max_train_size=args.max_train_size,
        n_jobs=args.n_jobs,
        future_regressor_policy=args.future_regressor_policy,
    )
    models = parse_models_arg(args.models, config_manager.get("models.enabled") or ("Kalman", "ARMA", "RW"))
    growth_policy = validate_growth_policy(
        get_config_value(config_manager, "growth.policy", "actual_before_origin", args, "growth_policy")
    )

    result = run_full_pipeline(
        endog,
        exog,
        config=backtest_config,
        models=models,
        config_manager=config_manager,
        growth_policy=growth_policy,
        source=str(series_path),
    )

    out_dir = Path(get_config_value(config_manager, "output.directory", "output", args, "output_dir"))
    write_result_tables(result, out_dir)

    if not args.no_plots and config_manager.get("output.plots", True):
        palette = config_manager.get("output.palette")
        plot_rmse_by_horizon(result.metrics, out_dir / "figures" / "rmse_by_horizon.png", palette)
        plot_forecast_paths(result.forecasts, result.actual, out_dir / "figures" / "forecast_paths.png",
                            smoothed=result.smoothed, palette=palette)

    summary = format_run_summary(result)
    if not args.quiet:
        print(summary)
    if args.eval_md:
        append_eval_log(str(series_path), summary, Path(args.eval_md))
    return result


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entry point for the OKP forecast evaluation.

    Input and configuration problems end the program with a message instead
    of a traceback.
    """
    parser = setup_cli_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    try:
        run_evaluation_workflow(args)
    except (FileNotFoundError, DataIntegrityError, ConfigurationError) as e:
        raise SystemExit(f"Input error: {e}") from e
    except AlignmentInconsistency as e:
        raise SystemExit(f"Forecast table is inconsistent: {e}") from e


if __name__ == "__main__":
    main()
