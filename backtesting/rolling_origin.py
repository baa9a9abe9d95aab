"""Rolling-origin (walk-forward) forecast generation.

Every model is refit at every forecast origin using only observations up to
that origin, then asked for an H-step forecast path. Origins advance one
quarter at a time; none is skipped.

Features:
- Expanding (default) or rolling training windows with a minimum length
- Historical origins ``t >= min_train_size`` with ``t + H <= n`` plus a final
  production origin at ``t = n``
- Explicit (model, origin) work items, run sequentially or on a process pool
  and merged in a deterministic order
- Recoverable fit failures: logged, recorded, evaluation continues
- Integration with the configuration system
"""

import logging
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field, asdict
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from forecast_models.base import ModelAdapter, ModelFitFailure
from helpers.temporal import shift_quarters

logger = logging.getLogger(__name__)

FORECAST_COLUMNS = ["origin", "target_date", "horizon", "model", "point_forecast", "lower", "upper"]
FAILURE_COLUMNS = ["model", "origin", "reason"]

WINDOW_TYPES = ("expanding", "rolling")
REGRESSOR_POLICIES = ("zero", "actual")


@dataclass
class BacktestConfig:
    """Configuration for rolling-origin evaluation."""

    # Core parameters
    min_train_size: int = 20            # Minimum training observations (L_min)
    forecast_horizon: int = 8           # Steps ahead to forecast (H)

    # Window configuration
    window_type: str = "expanding"      # "expanding" or "rolling"
    max_train_size: Optional[int] = None # Window length for rolling windows
    include_final_origin: bool = True   # Forecast from the last observation too

    # Forecast settings
    interval_level: float = 95.0        # Prediction interval coverage (%)
    future_regressor_policy: str = "zero"  # "zero" or "actual"

    # Execution
    n_jobs: int = 1                     # >1 uses a process pool
    show_progress: bool = False         # tqdm progress bar

    def __post_init__(self):
        if int(self.min_train_size) < 1:
            raise ValueError("min_train_size must be positive")
        if int(self.forecast_horizon) < 1:
            raise ValueError("forecast_horizon must be positive")
        if self.window_type not in WINDOW_TYPES:
            raise ValueError(f"window_type must be one of {WINDOW_TYPES}, got {self.window_type!r}")
        if self.max_train_size is not None and int(self.max_train_size) < int(self.min_train_size):
            raise ValueError("max_train_size cannot be smaller than min_train_size")
        if self.future_regressor_policy not in REGRESSOR_POLICIES:
            raise ValueError(
                f"future_regressor_policy must be one of {REGRESSOR_POLICIES}, got {self.future_regressor_policy!r}"
            )
        if int(self.n_jobs) < 1:
            raise ValueError("n_jobs must be at least 1")

    @classmethod
    def from_config_manager(cls, config_manager=None, **overrides) -> 'BacktestConfig':
        """Create BacktestConfig from configuration manager.

        Parameters
        ----------
        config_manager : ConfigurationManager, optional
            Configuration manager instance
        **overrides
            Explicit values (e.g. from the CLI); ``None`` values are ignored

        Returns
        -------
        BacktestConfig
            Configured backtest configuration
        """
        values = asdict(cls())
        if config_manager is not None:
            rolling_config = config_manager.get("backtesting.rolling_origin", {}) or {}
            for key in values:
                if key in rolling_config and rolling_config[key] is not None:
                    values[key] = rolling_config[key]
            logger.debug("Loaded backtest configuration from config manager")
        values.update({k: v for k, v in overrides.items() if v is not None and k in values})
        return cls(**values)

    @property
    def rolling_length(self) -> int:
        return int(self.max_train_size or self.min_train_size)


@dataclass(frozen=True)
class ForecastRecord:
    """One point forecast made at ``origin`` for ``target_date``."""

    origin: pd.Timestamp
    target_date: pd.Timestamp
    horizon: int
    model: str
    point_forecast: float
    lower: float = float("nan")
    upper: float = float("nan")

    def __post_init__(self):
        if self.horizon < 1:
            raise ValueError("horizon must be at least 1")


@dataclass(frozen=True)
class FitFailure:
    """A (model, origin) pair skipped because estimation failed."""

    model: str
    origin: pd.Timestamp
    reason: str


@dataclass(frozen=True)
class WorkItem:
    """Fit ``model`` on observations ``[train_start, origin_index)``."""

    model: str
    origin_index: int                   # window length t (1-based end position)
    train_start: int = 0
    is_final: bool = False


@dataclass
class BacktestResult:
    """Complete results from rolling-origin evaluation."""

    config: BacktestConfig
    models: Tuple[str, ...]
    records: List[ForecastRecord]
    failures: List[FitFailure] = field(default_factory=list)
    origins: List[pd.Timestamp] = field(default_factory=list)
    n_historical_origins: int = 0
    n_work_items: int = 0
    total_execution_time: Optional[float] = None

    @property
    def success_rate(self) -> float:
        """Share of work items that produced a forecast path."""
        if not self.n_work_items:
            return 0.0
        return 1.0 - len(self.failures) / self.n_work_items

    def forecasts_frame(self) -> pd.DataFrame:
        """Forecast records as a DataFrame in (model, origin, horizon) order."""
        if not self.records:
            return pd.DataFrame(columns=FORECAST_COLUMNS)
        return pd.DataFrame([asdict(r) for r in self.records], columns=FORECAST_COLUMNS)

    def failures_frame(self) -> pd.DataFrame:
        if not self.failures:
            return pd.DataFrame(columns=FAILURE_COLUMNS)
        return pd.DataFrame([asdict(f) for f in self.failures], columns=FAILURE_COLUMNS)


def _future_exog(exog: Optional[pd.DataFrame], origin_index: int, steps: int,
                 policy: str) -> Optional[pd.DataFrame]:
    """Regressor rows for the forecast period of one origin."""
    if exog is None or policy == "zero":
        return None
    realised = exog.iloc[origin_index:origin_index + steps].to_numpy(dtype=float)
    values = np.zeros((steps, exog.shape[1]))
    values[:len(realised)] = realised
    return pd.DataFrame(values, columns=exog.columns)


def run_work_item(adapter: ModelAdapter,
                  item: WorkItem,
                  endog: pd.Series,
                  exog: Optional[pd.DataFrame],
                  config: BacktestConfig) -> Tuple[List[ForecastRecord], Optional[FitFailure]]:
    """Fit and forecast one (model, origin) pair.

    Returns H records and no failure, or no records and the failure.
    """
    window = endog.iloc[item.train_start:item.origin_index]
    exog_window = exog.iloc[item.train_start:item.origin_index] if exog is not None else None
    origin = window.index[-1]
    horizon = config.forecast_horizon

    try:
        state = adapter.fit(window, exog_window)
        path = adapter.forecast(state, horizon,
                                _future_exog(exog, item.origin_index, horizon, config.future_regressor_policy))
        if len(path) != horizon:
            raise ModelFitFailure(f"expected {horizon} forecasts, got {len(path)}")
        if not np.isfinite(path.mean).all():
            raise ModelFitFailure("forecast path contains non-finite values")
    except ModelFitFailure as e:
        logger.warning("Skipping %s at origin %s: %s", adapter.name, origin.date(), e)
        return [], FitFailure(model=adapter.name, origin=origin, reason=str(e))

    lower = path.lower if path.lower is not None else np.full(horizon, np.nan)
    upper = path.upper if path.upper is not None else np.full(horizon, np.nan)
    records = [
        ForecastRecord(
            origin=origin,
            target_date=shift_quarters(origin, h),
            horizon=h,
            model=adapter.name,
            point_forecast=float(path.mean[h - 1]),
            lower=float(lower[h - 1]),
            upper=float(upper[h - 1]),
        )
        for h in range(1, horizon + 1)
    ]
    logger.debug("%s origin %s: %d records (train_size=%d)", adapter.name, origin.date(),
                 len(records), state.train_size)
    return records, None


class RollingOriginEvaluator:
    """Walk-forward evaluator over a set of model adapters.

    Parameters
    ----------
    adapters : sequence of ModelAdapter
        Models to evaluate; names must be unique.
    config : BacktestConfig, optional
        Backtesting configuration. If None, uses defaults.
    """

    def __init__(self, adapters: Sequence[ModelAdapter], config: Optional[BacktestConfig] = None):
        self.adapters: Dict[str, ModelAdapter] = {}
        for adapter in adapters:
            if adapter.name in self.adapters:
                raise ValueError(f"Duplicate model name '{adapter.name}'")
            self.adapters[adapter.name] = adapter
        if not self.adapters:
            raise ValueError("At least one model adapter is required")
        self.config = config or BacktestConfig()

    def historical_origin_indices(self, n: int) -> List[int]:
        """Window lengths t with t >= min_train_size and t + H <= n."""
        first = self.config.min_train_size
        last = n - self.config.forecast_horizon
        return list(range(first, last + 1))

    def origin_indices(self, n: int) -> List[int]:
        indices = self.historical_origin_indices(n)
        if self.config.include_final_origin and n >= self.config.min_train_size and n not in indices:
            indices.append(n)
        return indices

    def _train_start(self, origin_index: int) -> int:
        if self.config.window_type == "rolling":
            return max(0, origin_index - self.config.rolling_length)
        return 0

    def iter_work_items(self, n: int) -> Iterator[WorkItem]:
        """Yield one work item per (model, origin) in deterministic order."""
        historical = set(self.historical_origin_indices(n))
        for name in self.adapters:
            for t in self.origin_indices(n):
                yield WorkItem(model=name, origin_index=t,
                               train_start=self._train_start(t), is_final=t not in historical)

    def evaluate(self, endog: pd.Series, exog: Optional[pd.DataFrame] = None) -> BacktestResult:
        """Run the walk-forward evaluation.

        Parameters
        ----------
        endog : pd.Series
            Validated quarterly series
        exog : pd.DataFrame, optional
            Regressors aligned with ``endog``

        Returns
        -------
        BacktestResult
            Forecast records sorted by (model, origin, horizon) and the
            failures sorted by (model, origin)
        """
        start_time = time.perf_counter()
        self._validate_inputs(endog, exog)
        n = len(endog)

        n_historical = len(self.historical_origin_indices(n))
        if n_historical == 0:
            logger.warning("No historical origins: %d observations < min_train_size %d + horizon %d",
                           n, self.config.min_train_size, self.config.forecast_horizon)

        items = list(self.iter_work_items(n))
        logger.info("Starting rolling-origin evaluation: %d model(s) x %d origin(s), horizon %d",
                    len(self.adapters), len(self.origin_indices(n)), self.config.forecast_horizon)

        records: List[ForecastRecord] = []
        failures: List[FitFailure] = []
        for item_records, failure in self._execute(items, endog, exog):
            records.extend(item_records)
            if failure is not None:
                failures.append(failure)

        records.sort(key=lambda r: (r.model, r.origin, r.horizon))
        failures.sort(key=lambda f: (f.model, f.origin))

        result = BacktestResult(
            config=self.config,
            models=tuple(self.adapters),
            records=records,
            failures=failures,
            origins=[endog.index[t - 1] for t in self.origin_indices(n)],
            n_historical_origins=n_historical,
            n_work_items=len(items),
            total_execution_time=time.perf_counter() - start_time,
        )
        logger.info("Rolling-origin evaluation completed: %d/%d work items successful (%.1f%%)",
                    len(items) - len(failures), len(items), result.success_rate * 100)
        return result

    def _execute(self, items: List[WorkItem], endog: pd.Series, exog: Optional[pd.DataFrame]):
        progress = dict(total=len(items), desc="Rolling origins", disable=not self.config.show_progress)
        if self.config.n_jobs <= 1 or len(items) <= 1:
            for item in tqdm(items, **progress):
                yield run_work_item(self.adapters[item.model], item, endog, exog, self.config)
            return

        with ProcessPoolExecutor(max_workers=self.config.n_jobs) as pool:
            futures = [
                pool.submit(run_work_item, self.adapters[item.model], item, endog, exog, self.config)
                for item in items
            ]
            for future in tqdm(as_completed(futures), **progress):
                yield future.result()

    def _validate_inputs(self, endog: pd.Series, exog: Optional[pd.DataFrame]) -> None:
        """Validate input data for backtesting."""
        if endog.empty:
            raise ValueError("Endogenous series cannot be empty")
        if not isinstance(endog.index, pd.DatetimeIndex):
            raise ValueError("Endogenous series must have a DatetimeIndex")

        total_obs = len(endog)
        if total_obs < self.config.min_train_size:
            raise ValueError(
                f"Insufficient data: {total_obs} obs, need at least {self.config.min_train_size}"
            )
        if exog is not None and len(exog) != total_obs:
            raise ValueError("Exogenous variables must have same length as endogenous series")


def run_rolling_origin_backtest(endog: pd.Series,
                                adapters: Sequence[ModelAdapter],
                                exog: Optional[pd.DataFrame] = None,
                                config: Optional[BacktestConfig] = None) -> BacktestResult:
    """Convenience function to run rolling-origin evaluation.

    Parameters
    ----------
    endog : pd.Series
        Validated quarterly series
    adapters : sequence of ModelAdapter
        Models to evaluate
    exog : pd.DataFrame, optional
        Regressors aligned with ``endog``
    config : BacktestConfig, optional
        Backtesting configuration

    Returns
    -------
    BacktestResult
        Complete evaluation results
    """
    return RollingOriginEvaluator(adapters, config).evaluate(endog, exog)
