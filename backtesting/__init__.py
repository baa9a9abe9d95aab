"""Rolling-origin forecast evaluation for the OKP forecaster.

This package provides time series backtesting including:
- Walk-forward forecast generation over model adapters
- Alignment of forecasts with realised values
- RMSE per (model, horizon) and coverage reporting
- End-to-end evaluation pipeline
"""

from .rolling_origin import (
    RollingOriginEvaluator,
    BacktestResult,
    BacktestConfig,
    ForecastRecord,
    FitFailure,
    WorkItem,
    run_rolling_origin_backtest
)

from .alignment import (
    ForecastAligner,
    AlignmentInconsistency
)

from .metrics_aggregation import (
    MetricsAggregator,
    MetricRow,
    root_mean_squared_error,
    rmse_table,
    aggregate_forecast_errors,
    create_performance_summary
)

from .evaluation_pipeline import (
    EvaluationPipeline,
    EvaluationResult,
    run_full_pipeline
)

__all__ = [
    # Core backtesting
    'RollingOriginEvaluator',
    'BacktestResult',
    'BacktestConfig',
    'ForecastRecord',
    'FitFailure',
    'WorkItem',
    'run_rolling_origin_backtest',

    # Alignment
    'ForecastAligner',
    'AlignmentInconsistency',

    # Metrics aggregation
    'MetricsAggregator',
    'MetricRow',
    'root_mean_squared_error',
    'rmse_table',
    'aggregate_forecast_errors',
    'create_performance_summary',

    # Pipeline
    'EvaluationPipeline',
    'EvaluationResult',
    'run_full_pipeline'
]

# Version info
__version__ = '1.0.0'
