# okp_forecaster_src/__init__.py

"""
OKP Forecaster - rolling-origin evaluation of quarterly cost forecasts

Key Components
--------------
- config_utils: YAML configuration and CLI override support
- data_utils: CSV loading and indicator regressors
- parsing_utils: Command-line argument parsing and validation
- transform_utils: Year-over-year growth of actual and forecast tables
- plotting_utils: RMSE-by-horizon and forecast path charts
- file_utils: Result tables on disk
- main: Command-line entry point and workflow orchestration

Usage
-----
    # Command-line usage
    python -m okp_forecaster_src.main --series-csv data/okp_costs.csv

    # Programmatic usage
    from backtesting import run_full_pipeline
    from okp_forecaster_src import load_cost_series_csv, build_indicator_regressor
"""

__version__ = "1.0.0"

# Modules below do not import the backtesting package, so the pipeline
# can import transform_utils without a cycle.
from .config_utils import ConfigurationManager, ConfigurationError, load_config, get_config_value
from .data_utils import load_cost_series_csv, build_indicator_regressor
from .transform_utils import GrowthCalculator, compute_yoy_growth, compute_forecast_yoy_growth

__all__ = [
    "ConfigurationManager",
    "ConfigurationError",
    "load_config",
    "get_config_value",
    "load_cost_series_csv",
    "build_indicator_regressor",
    "GrowthCalculator",
    "compute_yoy_growth",
    "compute_forecast_yoy_growth",
    "__version__",
]
