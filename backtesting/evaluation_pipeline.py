"""End-to-end forecast evaluation pipeline.

This module ties the pieces together: data validation, rolling-origin
forecasting, alignment with realised values, RMSE aggregation, coverage
reporting and year-over-year growth. Results are returned as an immutable
``EvaluationResult``; nothing is kept in module-level state.

Features:
- Fatal data checks before any model is fitted
- Configuration system integration (YAML + CLI overrides)
- Coverage report for (model, horizon) combinations without data
- Year-over-year growth of actual and forecast paths
- Full-sample smoothed signal of the structural model
- Data fingerprint for provenance
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

import pandas as pd

from forecast_models import ModelAdapter, ModelFitFailure, StructuralAdapter, build_adapters
from okp_forecaster_src.transform_utils import GrowthCalculator
from validation.data_integrity import (
    DataFingerprint, validate_quarterly_series, validate_regressors
)

from .alignment import ForecastAligner
from .metrics_aggregation import MetricsAggregator
from .rolling_origin import BacktestConfig, BacktestResult, RollingOriginEvaluator

logger = logging.getLogger(__name__)

ACTUAL_LABEL = "Actual"
SMOOTHED_LABEL = "Kalman_Smoothed"


@dataclass(frozen=True, eq=False)
class EvaluationResult:
    """Everything a run produces, as tables."""

    metrics: pd.DataFrame
    coverage: pd.DataFrame
    forecasts: pd.DataFrame
    aligned: pd.DataFrame
    actual: pd.DataFrame
    failures: pd.DataFrame
    yoy_actual: pd.DataFrame
    yoy_forecast: pd.DataFrame
    smoothed: Optional[pd.DataFrame]
    fingerprint: DataFingerprint
    backtest: BacktestResult

    def latest_growth_path(self, model: str = "Kalman") -> pd.DataFrame:
        """YoY growth path of ``model`` from its most recent origin."""
        rows = self.yoy_forecast[self.yoy_forecast["model"] == model]
        if rows.empty:
            return rows
        return rows[rows["origin"] == rows["origin"].max()].reset_index(drop=True)


class EvaluationPipeline:
    """Forecast evaluation pipeline.

    Parameters
    ----------
    config_manager : ConfigurationManager, optional
        Source of backtest, model and growth settings
    backtest_config : BacktestConfig, optional
        Explicit backtest settings (take precedence over the config manager)
    models : sequence of str, optional
        Model names; defaults to ``models.enabled`` or all models
    adapters : sequence of ModelAdapter, optional
        Pre-built adapters, bypassing ``models``
    growth_policy : str, optional
        Denominator policy for forecast growth rates
    smooth : bool
        Also fit the structural model on the full sample
    """

    def __init__(self,
                 config_manager=None,
                 backtest_config: Optional[BacktestConfig] = None,
                 models: Optional[Sequence[str]] = None,
                 adapters: Optional[Sequence[ModelAdapter]] = None,
                 growth_policy: Optional[str] = None,
                 smooth: bool = True):
        self.config_manager = config_manager
        self.config = backtest_config or BacktestConfig.from_config_manager(config_manager)
        if adapters is None:
            if models is None and config_manager is not None:
                models = config_manager.get("models.enabled")
            adapters = build_adapters(models, config_manager, interval_level=self.config.interval_level)
        self.adapters: List[ModelAdapter] = list(adapters)

        if growth_policy is None and config_manager is not None:
            growth_policy = config_manager.get("growth.policy")
        lag = config_manager.get("growth.lag", 4) if config_manager is not None else 4
        self.growth = GrowthCalculator(policy=growth_policy or "actual_before_origin", lag=lag)
        self.smooth = smooth

    @property
    def model_names(self) -> List[str]:
        return [a.name for a in self.adapters]

    def run(self, endog: pd.Series, exog: Optional[pd.DataFrame] = None,
            source: Optional[str] = None) -> EvaluationResult:
        """Run the complete evaluation.

        Parameters
        ----------
        endog : pd.Series
            Quarterly observations
        exog : pd.DataFrame, optional
            Regressors on the same dates
        source : str, optional
            Label recorded in the data fingerprint

        Returns
        -------
        EvaluationResult

        Raises
        ------
        DataIntegrityError
            Invalid input data (nothing is fitted)
        AlignmentInconsistency
            Corrupt forecast table
        """
        start_time = datetime.now()
        endog = validate_quarterly_series(endog)
        exog = validate_regressors(exog, endog.index)
        fingerprint = DataFingerprint.from_series(endog, source=source)
        logger.info("Evaluating %d quarters (%s..%s, fingerprint %s) with models %s",
                    len(endog), endog.index[0].date(), endog.index[-1].date(),
                    fingerprint.hash, self.model_names)

        evaluator = RollingOriginEvaluator(self.adapters, self.config)
        backtest = evaluator.evaluate(endog, exog)
        forecasts = backtest.forecasts_frame()

        horizon = self.config.forecast_horizon
        aligned = ForecastAligner(horizon).align(forecasts, endog)

        aggregator = MetricsAggregator(horizon)
        metrics = aggregator.aggregate(aligned)
        historical_origins = backtest.origins[:backtest.n_historical_origins]
        coverage = aggregator.coverage_report(aligned, self.model_names, horizon,
                                              historical_origins, endog.index)

        actual = pd.DataFrame({"date": endog.index, "value": endog.to_numpy(), "model": ACTUAL_LABEL})
        yoy_actual = self.growth.actual_growth(endog)
        yoy_forecast = self.growth.forecast_growth(forecasts, endog)
        smoothed = self.smooth_full_sample(endog, exog) if self.smooth else None

        logger.info("Evaluation finished in %.1fs: %d forecast rows, %d metric rows, %d skipped fits",
                    (datetime.now() - start_time).total_seconds(), len(forecasts), len(metrics),
                    len(backtest.failures))

        return EvaluationResult(
            metrics=metrics,
            coverage=coverage,
            forecasts=forecasts,
            aligned=aligned,
            actual=actual,
            failures=backtest.failures_frame(),
            yoy_actual=yoy_actual,
            yoy_forecast=yoy_forecast,
            smoothed=smoothed,
            fingerprint=fingerprint,
            backtest=backtest,
        )

    def _structural_adapter(self) -> StructuralAdapter:
        for adapter in self.adapters:
            if isinstance(adapter, StructuralAdapter):
                return adapter
        return build_adapters(["Kalman"], self.config_manager, self.config.interval_level)[0]

    def smooth_full_sample(self, endog: pd.Series, exog: Optional[pd.DataFrame] = None) -> Optional[pd.DataFrame]:
        """Smoothed signal of the structural model fitted on all observations.

        Returns None (with a warning) when the full-sample fit fails.
        """
        adapter = self._structural_adapter()
        try:
            state = adapter.fit(endog, exog)
        except ModelFitFailure as e:
            logger.warning("Full-sample structural fit failed, no smoothed series: %s", e)
            return None
        signal = state.payload.smooth(state.endog, state.exog)
        return pd.DataFrame({
            "date": endog.index,
            "value": signal.mean,
            "level": signal.component("level"),
            "seasonal": signal.component("seasonal"),
            "model": SMOOTHED_LABEL,
        })


def run_full_pipeline(endog: pd.Series,
                      exog: Optional[pd.DataFrame] = None,
                      config: Optional[BacktestConfig] = None,
                      models: Optional[Sequence[str]] = None,
                      config_manager=None,
                      growth_policy: Optional[str] = None,
                      smooth: bool = True,
                      source: Optional[str] = None) -> EvaluationResult:
    """Convenience function to run the complete evaluation.

    Parameters
    ----------
    endog : pd.Series
        Quarterly observations
    exog : pd.DataFrame, optional
        Regressors on the same dates
    config : BacktestConfig, optional
        Backtest settings
    models : sequence of str, optional
        Model names (default: Kalman, ARMA, RW)
    config_manager : ConfigurationManager, optional
        Configuration source
    growth_policy : str, optional
        Denominator policy for forecast growth rates
    smooth : bool
        Also produce the full-sample smoothed series
    source : str, optional
        Data source label for the fingerprint

    Returns
    -------
    EvaluationResult
    """
    pipeline = EvaluationPipeline(config_manager=config_manager, backtest_config=config,
                                  models=models, growth_policy=growth_policy, smooth=smooth)
    return pipeline.run(endog, exog, source=source)
